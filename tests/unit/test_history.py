"""Unit tests for the bounded execution ledger and its stores."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from rotation_advisor.models import ExecutionRecord, PlanKind, PlanSnapshot
from rotation_advisor.services.history import MAX_HISTORY_RECORDS, HistoryStore
from rotation_advisor.storage import JsonFileStore, MemoryStore


def _record(n: int) -> ExecutionRecord:
    return ExecutionRecord(
        id=f"yield_{n}",
        timestamp=float(n),
        plan=PlanSnapshot(
            kind=PlanKind.YIELD,
            from_chain_id=42161,
            from_chain_name="Arbitrum",
            to_chain_id=8453,
            to_chain_name="Base",
            token="USDC",
            venue="aave-v3",
            improvement=6.0,
            amount_usd=1000.0,
            gas_cost_usd=5.0,
            net_benefit=55.0,
            break_even_days=30.4,
        ),
    )


class TestHistoryStore:
    def test_starts_empty(self, memory_store: MemoryStore) -> None:
        history = HistoryStore(memory_store, "yield")
        assert history.records == ()
        assert history.total_profit == 0.0

    def test_oldest_evicted_past_limit(self, memory_store: MemoryStore) -> None:
        history = HistoryStore(memory_store, "yield")
        for n in range(MAX_HISTORY_RECORDS + 1):
            history.append(_record(n))

        assert len(history.records) == MAX_HISTORY_RECORDS
        assert history.records[0].id == "yield_1"
        assert history.records[-1].id == f"yield_{MAX_HISTORY_RECORDS}"
        assert len(memory_store.get("yield.history")) == MAX_HISTORY_RECORDS

    def test_profit_accumulates(self, memory_store: MemoryStore) -> None:
        history = HistoryStore(memory_store, "arbitrage")
        assert history.add_profit(4.5) == pytest.approx(4.5)
        assert history.add_profit(-1.5) == pytest.approx(3.0)
        assert memory_store.get("arbitrage.total_profit") == pytest.approx(3.0)

    def test_prefixes_are_independent(self, memory_store: MemoryStore) -> None:
        HistoryStore(memory_store, "yield").append(_record(1))
        assert HistoryStore(memory_store, "arbitrage").records == ()

    def test_clear(self, memory_store: MemoryStore) -> None:
        history = HistoryStore(memory_store, "yield")
        history.append(_record(1))
        history.add_profit(10.0)

        history.clear()

        assert history.records == ()
        assert history.total_profit == 0.0
        assert memory_store.get("yield.history") is None

    def test_unreadable_records_dropped(self, memory_store: MemoryStore) -> None:
        memory_store.set("yield.history", [{"id": "broken"}, _record(2).to_dict()])
        history = HistoryStore(memory_store, "yield")
        assert [r.id for r in history.records] == ["yield_2"]

    def test_survives_restart(self, tmp_path: Path) -> None:
        path = tmp_path / "state" / "advisor.json"
        history = HistoryStore(JsonFileStore(path), "yield")
        history.append(_record(1))
        history.add_profit(12.5)

        reloaded = HistoryStore(JsonFileStore(path), "yield")

        assert reloaded.records == history.records
        assert reloaded.total_profit == pytest.approx(12.5)


class TestJsonFileStore:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path / "none.json")
        assert store.get("anything", "default") == "default"

    def test_writes_are_durable(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        JsonFileStore(path).set("yield.config", {"max_gas_cost": 10.0})

        assert json.loads(path.read_text()) == {"yield.config": {"max_gas_cost": 10.0}}
        assert not path.with_suffix(".json.tmp").exists()

    def test_delete(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        store = JsonFileStore(path)
        store.set("a", 1)
        store.set("b", 2)
        store.delete("a")
        store.delete("missing")
        assert JsonFileStore(path).get("a") is None
        assert JsonFileStore(path).get("b") == 2

    def test_corrupt_file_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        path.write_text("{not json")
        assert JsonFileStore(path).get("a") is None

    def test_non_object_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "store.json"
        path.write_text("[1, 2, 3]")
        assert JsonFileStore(path).get("a") is None
