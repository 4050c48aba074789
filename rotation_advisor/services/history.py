"""Bounded, persisted execution ledger."""
from __future__ import annotations

import logging

from ..interfaces.storage import KeyValueStore
from ..models import ExecutionRecord

logger = logging.getLogger(__name__)

MAX_HISTORY_RECORDS = 50


class HistoryStore:
    """Execution records and cumulative profit for one strategy.

    Keys are namespaced by *prefix* so both strategies can share a store.
    Every write goes straight to the backing store.
    """

    def __init__(
        self,
        store: KeyValueStore,
        prefix: str,
        max_records: int = MAX_HISTORY_RECORDS,
    ) -> None:
        self._store = store
        self._history_key = f"{prefix}.history"
        self._profit_key = f"{prefix}.total_profit"
        self.max_records = max_records
        self._records = self._load()

    def _load(self) -> list[ExecutionRecord]:
        records: list[ExecutionRecord] = []
        for raw in self._store.get(self._history_key, []) or []:
            try:
                records.append(ExecutionRecord.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Dropping unreadable history record: %s", e)
        return records[-self.max_records:]

    def _persist(self) -> None:
        self._store.set(self._history_key, [r.to_dict() for r in self._records])

    @property
    def records(self) -> tuple[ExecutionRecord, ...]:
        return tuple(self._records)

    @property
    def total_profit(self) -> float:
        return float(self._store.get(self._profit_key, 0.0) or 0.0)

    def append(self, record: ExecutionRecord) -> None:
        self._records.append(record)
        overflow = len(self._records) - self.max_records
        if overflow > 0:
            del self._records[:overflow]
        self._persist()

    def add_profit(self, amount: float) -> float:
        total = self.total_profit + amount
        self._store.set(self._profit_key, total)
        return total

    def clear(self) -> None:
        self._records = []
        self._store.delete(self._history_key)
        self._store.delete(self._profit_key)
        logger.info("Execution history cleared")
