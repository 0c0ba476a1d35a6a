from __future__ import annotations

import asyncio
import logging
import signal

from .application.wallet.dtos import GenerateTopupRequestDTO, TopupStatusResponseDTO
from .client.poller import PaymentPoller, PollState
from .envs.client_env import get_settings
from .infrastructure.wallet.topup_client import TopupApiClient


def _print_update(result: TopupStatusResponseDTO) -> None:
    line = f"[{result.status.value}] {result.amount} {result.currency.value}"
    if result.new_balance is not None:
        line += f" | balance: {result.new_balance}"
    if result.message:
        line += f" | {result.message}"
    print(line)


async def run_topup() -> PollState:
    settings = get_settings()

    async with TopupApiClient(settings.api_base_url, settings.bearer_token) as client:
        topup = await client.generate_topup(
            GenerateTopupRequestDTO(amount=settings.amount, currency=settings.currency)
        )
        print(f"Transaction: {topup.transaction_id}")
        print(f"Scan this KHQR payload: {topup.qr_code}")
        print(f"Expires at: {topup.expires_at.isoformat()}")

        poller = PaymentPoller(
            client,
            topup.transaction_id,
            topup.expires_at,
            interval=settings.poll_interval_seconds,
            on_update=_print_update,
        )
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, poller.cancel)
        except NotImplementedError:
            pass  # Signal handlers are unavailable on Windows event loops
        return await poller.run()


def main() -> None:
    """Generate a top-up QR and poll it until it settles or expires."""
    logging.basicConfig(level=logging.INFO)
    state = asyncio.run(run_topup())
    print(f"Finished: {state.value}")


if __name__ == "__main__":
    main()
