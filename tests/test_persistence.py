from __future__ import annotations

from decimal import Decimal

import pytest

from tradedesk.alerts import AlertStore
from tradedesk.ledger import Ledger
from tradedesk.persistence import DEVICE_NAMESPACE, LEDGER_NAMESPACE, InMemoryStateStore, SqlStateStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    if request.param == "memory":
        yield InMemoryStateStore()
        return
    sql_store = SqlStateStore("sqlite://")
    yield sql_store
    sql_store.dispose()


def test_save_load_delete_and_keys(store):
    store.save(LEDGER_NAMESPACE, "b", {"value": "2"})
    store.save(LEDGER_NAMESPACE, "a", {"value": "1"})
    store.save(DEVICE_NAMESPACE, "c", {"value": "3"})
    store.save(LEDGER_NAMESPACE, "a", {"value": "1b"})

    assert store.load(LEDGER_NAMESPACE, "a") == {"value": "1b"}
    assert store.load(LEDGER_NAMESPACE, "missing") is None
    assert store.keys(LEDGER_NAMESPACE) == ["a", "b"]
    assert store.delete(LEDGER_NAMESPACE, "a") is True
    assert store.delete(LEDGER_NAMESPACE, "a") is False
    assert store.keys(LEDGER_NAMESPACE) == ["b"]
    assert store.keys(DEVICE_NAMESPACE) == ["c"]


def test_in_memory_store_rejects_unserializable_records():
    with pytest.raises(TypeError):
        InMemoryStateStore().save(LEDGER_NAMESPACE, "a", {"value": Decimal("1")})


def test_ledger_and_alerts_survive_restart(store):
    ledger = Ledger("user-1", initial_balance="1000", store=store)
    ledger.execute_trade("ete", "ETE", "buy", "152.50", "15.25")
    alerts = AlertStore(store=store)
    alerts.register_device("dev-1", "token-1", "ios")
    rule = alerts.add_alert("dev-1", "ete", "ETE", "above", "16").alert

    restored_ledger = Ledger.restore("user-1", store)
    restored_alerts = AlertStore.restore(store)

    assert restored_ledger.holding("ete").shares == Decimal("10")
    assert restored_ledger.balance == Decimal("847.50")
    assert [a.id for a in restored_alerts.get_alerts("dev-1")] == [rule.id]
    assert restored_alerts.get_alerts("dev-1")[0].threshold == Decimal("16")
