from __future__ import annotations

import json

from tether.preferences import DEFAULT_STORAGE_KEY, Preferences
from tether.storage import InMemoryKeyValueStore, StorageError


def test_defaults_to_enabled_without_store():
    prefs = Preferences()
    assert prefs.is_enabled() is True
    assert prefs() is True


def test_set_enabled_persists_and_notifies():
    store = InMemoryKeyValueStore()
    prefs = Preferences(store=store, clock=lambda: 42.0)
    seen: list[bool] = []
    remove = prefs.add_listener(seen.append)

    prefs.set_enabled(False)

    assert prefs.is_enabled() is False
    assert seen == [False]
    assert json.loads(store.get_item(DEFAULT_STORAGE_KEY)) == {
        "ai_enabled": False,
        "updated_at": 42.0,
    }
    assert Preferences(store=store).is_enabled() is False

    remove()
    prefs.set_enabled(True)
    assert seen == [False]


def test_unreadable_record_defaults_to_enabled():
    store = InMemoryKeyValueStore()
    store.set_item(DEFAULT_STORAGE_KEY, json.dumps({"ai_enabled": "maybe"}))
    assert Preferences(store=store).is_enabled() is True

    store.set_item(DEFAULT_STORAGE_KEY, "{")
    assert Preferences(store=store).is_enabled() is True


def test_failing_listener_and_store_do_not_break_toggle():
    class _BrokenStore(InMemoryKeyValueStore):
        def set_item(self, key: str, value: str) -> None:
            raise StorageError("read-only")

    prefs = Preferences(store=_BrokenStore())
    seen: list[bool] = []

    def explode(_enabled: bool) -> None:
        raise RuntimeError("listener bug")

    prefs.add_listener(explode)
    prefs.add_listener(seen.append)
    prefs.set_enabled(False)

    assert prefs.is_enabled() is False
    assert seen == [False]
