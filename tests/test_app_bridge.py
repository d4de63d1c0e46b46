import pytest

import app
from core.persistence import FallbackSlot, MemoryStorage, PersistenceBridge
from core.selection_store import SelectionStore


def test_get_bridge_without_bridge_raises(monkeypatch):
    monkeypatch.setattr(app, "get_store", lambda: SelectionStore())

    with pytest.raises(RuntimeError, match="initialise_state"):
        app.get_bridge()


def test_get_bridge_returns_store_bridge(monkeypatch):
    bridge = PersistenceBridge(MemoryStorage(), FallbackSlot())
    store = SelectionStore(bridge)
    monkeypatch.setattr(app, "get_store", lambda: store)

    assert app.get_bridge() is bridge
