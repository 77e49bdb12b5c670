import gc
import json
import logging
import stat

import pytest

from wallet_storage import (
    STORAGE_KEYS,
    ChangeBroadcaster,
    JsonFileStorage,
    MemoryStorage,
    wallet_keys,
    wipe_wallet_data,
)


class TestMemoryStorage:
    def test_missing_key_returns_none(self):
        assert MemoryStorage().get("nope") is None

    def test_values_are_copied_in_and_out(self):
        storage = MemoryStorage()
        value = {"keys": [1, 2]}
        storage.set("k", value)
        value["keys"].append(3)
        assert storage.get("k") == {"keys": [1, 2]}
        storage.get("k")["keys"].append(4)
        assert storage.get("k") == {"keys": [1, 2]}

    def test_non_json_values_rejected(self):
        with pytest.raises(TypeError):
            MemoryStorage().set("k", b"raw bytes")

    def test_remove_and_clear(self):
        storage = MemoryStorage({"a": 1, "b": 2})
        storage.remove("a")
        storage.remove("missing")
        assert storage.keys() == ["b"]
        storage.clear()
        assert storage.keys() == []


class TestJsonFileStorage:
    def test_round_trip_through_disk(self, tmp_path):
        path = tmp_path / "state" / "wallet.json"
        JsonFileStorage(path).set("wallet_vault", {"keys": []})
        assert JsonFileStorage(path).get("wallet_vault") == {"keys": []}
        assert json.loads(path.read_text(encoding="utf-8")) == {"wallet_vault": {"keys": []}}

    def test_file_mode_is_private(self, tmp_path):
        path = tmp_path / "wallet.json"
        JsonFileStorage(path).set("k", 1)
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_no_temp_files_left_behind(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "wallet.json")
        for i in range(3):
            storage.set(f"k{i}", i)
        assert [p.name for p in tmp_path.iterdir()] == ["wallet.json"]

    def test_missing_or_empty_file_is_empty_store(self, tmp_path):
        path = tmp_path / "wallet.json"
        assert JsonFileStorage(path).keys() == []
        path.write_text("  \n", encoding="utf-8")
        assert JsonFileStorage(path).get("k") is None

    def test_non_object_document_rejected(self, tmp_path):
        path = tmp_path / "wallet.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError, match="JSON object"):
            JsonFileStorage(path).get("k")


class TestChangeBroadcaster:
    def test_publish_reaches_subscribers_until_unsubscribed(self):
        seen = []
        broadcaster = ChangeBroadcaster()
        unsubscribe = broadcaster.subscribe(lambda key, source: seen.append((key, source)))
        broadcaster.publish("wallet_vault", "a")
        unsubscribe()
        broadcaster.publish("wallet_vault", "b")
        assert seen == [("wallet_vault", "a")]

    def test_failing_subscriber_does_not_stop_delivery(self, caplog):
        seen = []
        broadcaster = ChangeBroadcaster()

        def broken(key, source):
            raise RuntimeError("boom")

        broadcaster.subscribe(broken)
        broadcaster.subscribe(lambda key, source: seen.append(key))
        with caplog.at_level(logging.ERROR, logger="wallet.storage"):
            broadcaster.publish("wallet_vault")
        assert seen == ["wallet_vault"]
        assert "boom" in caplog.text

    def test_bound_methods_are_held_weakly(self):
        class Listener:
            def __init__(self):
                self.seen = []

            def on_change(self, key, source):
                self.seen.append(key)

        broadcaster = ChangeBroadcaster()
        kept = Listener()
        broadcaster.subscribe(kept.on_change)
        broadcaster.subscribe(Listener().on_change)
        broadcaster.subscribe(lambda key, source: None)
        gc.collect()
        assert len(broadcaster) == 2
        broadcaster.publish("wallet_vault")
        assert kept.seen == ["wallet_vault"]
        assert len(broadcaster._subscribers) == 2


def test_wipe_wallet_data_only_touches_wallet_keys():
    storage = MemoryStorage({
        STORAGE_KEYS["VAULT"]: {"keys": []},
        STORAGE_KEYS["SOLANA_PATH_STYLE"]: "primary",
        "other_app": 1,
    })
    assert sorted(wallet_keys(storage)) == sorted([STORAGE_KEYS["VAULT"], STORAGE_KEYS["SOLANA_PATH_STYLE"]])
    assert wipe_wallet_data(storage) == 2
    assert storage.keys() == ["other_app"]
