from __future__ import annotations

import logging
import os
import sys

import uvicorn

from .envs.api_env import get_settings

# uvloop has no Windows build
EVENT_LOOP = "asyncio" if sys.platform == "win32" else "uvloop"


def _setup_prometheus_multiproc_dir() -> None:
    """Prepare the Prometheus multiprocess directory before Uvicorn forks workers.

    This ensures each process writes to a clean directory so metrics can be
    correctly aggregated by the multiprocess collector.
    """
    prom_dir = os.environ.get("PROMETHEUS_MULTIPROC_DIR")
    if not prom_dir:
        return

    os.makedirs(prom_dir, exist_ok=True)
    for filename in os.listdir(prom_dir):
        file_path = os.path.join(prom_dir, filename)
        if os.path.isfile(file_path):
            os.remove(file_path)


def main() -> None:
    """Main entry point for the top-up API."""

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.api_debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print(f"Starting {settings.app_name} v{settings.app_version}")
    print(f"Environment: {settings.environment}")
    print(f"Database: {settings.database_url}")
    print(f"Settlement authority: {settings.bakong_api_base_url}")
    print(
        "Strict payment verification: "
        f"{'on' if settings.strict_payment_verification else 'OFF'}"
    )
    print(f"API will be available at: http://{settings.api_host}:{settings.api_port}")
    print(f"API Documentation: http://{settings.api_host}:{settings.api_port}/docs")

    # Uvicorn doesn't support multi-worker with reload
    reload = settings.api_debug
    workers = 1 if reload else settings.api_workers

    _setup_prometheus_multiproc_dir()

    uvicorn.run(
        "qrsettle.api.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=reload,
        workers=workers,
        loop=EVENT_LOOP,
        log_level="info",
    )


if __name__ == "__main__":
    main()
