"""In-memory implementation of KeyValueStore for testing."""

from __future__ import annotations

import json
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List, Optional

from qrsettle.infrastructure.storage import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """In-memory implementation of KeyValueStore for fast testing.

    Registered Lua scripts are emulated in Python by name. No emulation
    awaits, so each script runs atomically with respect to other coroutines
    on the same event loop, as it would inside Redis.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._sorted_sets: dict[str, list[tuple[str, float]]] = {}
        self._script_cache: dict[str, str] = {}
        self._script_sources: dict[str, str] = {}
        self.script_calls: list[str] = []
        self._scripts: Dict[str, Callable[[List[str], List[str]], list[Any]]] = {
            "create_transaction": self._execute_create_transaction,
            "attach_payload": self._execute_attach_payload,
            "transition_status": self._execute_transition_status,
            "credit_transaction": self._execute_credit_transaction,
        }

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        return [self._data.get(key) for key in keys]

    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        """Get range from sorted set (already sorted descending)."""
        members = [m for m, _ in self._sorted_sets.get(key, [])]
        # Redis zrevrange is inclusive on both ends
        slice_end = None if end == -1 else end + 1
        return members[start:slice_end]

    async def zrangebyscore(
        self, key: str, min_score: float, max_score: float, *, limit: int
    ) -> list[str]:
        ascending = sorted(self._sorted_sets.get(key, []), key=lambda x: x[1])
        return [m for m, s in ascending if min_score <= s <= max_score][:limit]

    async def register_script(self, name: str, script: str) -> str:
        """Register a script (return mock SHA1)."""
        self._script_cache[name] = f"sha1_{name}"
        self._script_sources[name] = script
        return f"sha1_{name}"

    async def run_script(self, name: str, keys: List[str], args: List[str]) -> Any:
        """Execute script by name."""
        if name not in self._script_cache:
            raise ValueError(f"Script '{name}' not registered")
        if name not in self._scripts:
            raise NotImplementedError(f"Script '{name}' has no in-memory emulation")
        self.script_calls.append(name)
        return self._scripts[name](keys, args)

    def balance_minor_units(self, key: str) -> int:
        return int(self._data.get(key, "0"))

    def clear(self) -> None:
        """Clear all data (useful for test teardown)."""
        self._data.clear()
        self._sorted_sets.clear()
        self._script_cache.clear()
        self._script_sources.clear()
        self.script_calls.clear()

    # Sorted-set helpers shared by the emulated scripts

    def _zadd(self, key: str, score: float, member: str) -> bool:
        entries = self._sorted_sets.setdefault(key, [])
        existed = any(m == member for m, _ in entries)
        entries[:] = [(m, s) for m, s in entries if m != member]
        entries.append((member, score))
        entries.sort(key=lambda x: x[1], reverse=True)
        return not existed

    def _zrem(self, key: str, member: str) -> int:
        entries = self._sorted_sets.get(key)
        if not entries:
            return 0
        original_len = len(entries)
        entries[:] = [(m, s) for m, s in entries if m != member]
        return 1 if len(entries) < original_len else 0

    # Script emulations

    def _execute_create_transaction(
        self, keys: List[str], args: List[str]
    ) -> list[Any]:
        tx_key, user_index_key, pending_index_key = keys
        tx_json, tx_id, created_score, expires_score = args

        current_raw = self._data.get(tx_key)
        if current_raw:
            return [0, current_raw]

        self._data[tx_key] = tx_json
        self._zadd(user_index_key, float(created_score), tx_id)
        self._zadd(pending_index_key, float(expires_score), tx_id)
        return [1, tx_json]

    def _execute_attach_payload(self, keys: List[str], args: List[str]) -> list[Any]:
        tx_key, hash_index_key = keys
        qr_code_data, correlation_hash, updated_at = args

        current_raw = self._data.get(tx_key)
        if not current_raw:
            return [2, ""]

        tx = json.loads(current_raw)
        if tx.get("correlation_hash") is not None:
            return [0, current_raw]
        if tx["status"] != "pending":
            return [3, current_raw]

        tx["qr_code_data"] = qr_code_data
        tx["correlation_hash"] = correlation_hash
        tx["updated_at"] = updated_at
        new_val = json.dumps(tx)
        self._data[tx_key] = new_val
        self._data[hash_index_key] = tx["id"]
        return [1, new_val]

    def _execute_transition_status(
        self, keys: List[str], args: List[str]
    ) -> list[Any]:
        tx_key, pending_index_key = keys
        target, updated_at = args

        current_raw = self._data.get(tx_key)
        if not current_raw:
            return [2, ""]

        tx = json.loads(current_raw)
        if tx["status"] != "pending":
            return [0, current_raw]

        tx["status"] = target
        tx["updated_at"] = updated_at
        new_val = json.dumps(tx)
        self._data[tx_key] = new_val
        self._zrem(pending_index_key, tx["id"])
        return [1, new_val]

    def _execute_credit_transaction(
        self, keys: List[str], args: List[str]
    ) -> list[Any]:
        tx_key, balance_key, history_key, pending_index_key = keys
        user_id, currency, settled_at, external_id, history_json, history_score = args

        current_raw = self._data.get(tx_key)
        if not current_raw:
            return [2, "", ""]

        tx = json.loads(current_raw)
        if tx["user_id"] != user_id or tx["currency"] != currency:
            return [2, "", ""]

        current_balance = int(self._data.get(balance_key, "0"))
        if tx["status"] == "completed":
            return [0, current_raw, current_balance]
        if tx["status"] != "pending":
            return [3, current_raw, current_balance]

        tx["status"] = "completed"
        tx["settled_at"] = settled_at
        tx["updated_at"] = settled_at
        if external_id != "":
            tx["external_transaction_id"] = external_id
        new_val = json.dumps(tx)
        minor_units = int(
            (Decimal(tx["amount"]) * 100).to_integral_value(rounding=ROUND_HALF_UP)
        )

        self._data[tx_key] = new_val
        new_balance = current_balance + minor_units
        self._data[balance_key] = str(new_balance)
        self._zadd(history_key, float(history_score), history_json)
        self._zrem(pending_index_key, tx["id"])
        return [1, new_val, new_balance]
