"""
Storage port for wallet state, with in-memory and JSON-file backends.

The core only depends on ``StoragePort`` (get/set/remove/clear of
JSON-serializable values). Concurrent writers get last-write-wins semantics;
``ChangeBroadcaster`` tells other open instances to reload instead of
attempting any locking.
"""
import inspect
import json
import logging
import os
import tempfile
import weakref
from pathlib import Path
from typing import Any, Callable, Protocol

logger = logging.getLogger("wallet.storage")

STORAGE_PREFIX = "wallet_"

STORAGE_KEYS = {
    "VAULT": "wallet_vault",
    "SOLANA_PATH_STYLE": "wallet_solana_derivation_path",
    "SOLANA_ACCOUNT_INDEX": "wallet_solana_account_index",
    "PIN_HASH": "wallet_pin_hash",
}


class StoragePort(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def clear(self) -> None: ...

    def keys(self) -> list[str]: ...


def _copy(value: Any) -> Any:
    # JSON round-trip both copies and enforces serializability.
    return json.loads(json.dumps(value))


class MemoryStorage:
    """Dict-backed store; values are copied in and out."""

    def __init__(self, initial: dict | None = None):
        self._data: dict[str, Any] = {k: _copy(v) for k, v in (initial or {}).items()}

    def get(self, key: str) -> Any:
        if key not in self._data:
            return None
        return _copy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = _copy(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStorage:
    """Single JSON document on disk, rewritten atomically on every change."""

    def __init__(self, path):
        self.path = Path(path).expanduser()

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        raw = self.path.read_bytes()
        if not raw.strip():
            return {}
        data = json.loads(raw.decode("utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Storage file {self.path} does not contain a JSON object")
        return data

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".wallet-", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Any:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = _copy(value)
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def clear(self) -> None:
        self._save({})

    def keys(self) -> list[str]:
        return list(self._load())


class ChangeBroadcaster:
    """Cross-instance invalidation signal: "key X changed, reload it".

    Bound-method subscribers are held weakly, so an instance dropped without
    unsubscribing is pruned on the next publish.
    """

    def __init__(self):
        self._subscribers: list[Callable[[], Callable[[str, Any], None] | None]] = []

    def __len__(self) -> int:
        return sum(1 for ref in self._subscribers if ref() is not None)

    def subscribe(self, callback: Callable[[str, Any], None]) -> Callable[[], None]:
        if inspect.ismethod(callback):
            ref = weakref.WeakMethod(callback)
        else:
            def ref():
                return callback
        self._subscribers.append(ref)

        def unsubscribe() -> None:
            if ref in self._subscribers:
                self._subscribers.remove(ref)

        return unsubscribe

    def publish(self, key: str, source: Any = None) -> None:
        for ref in list(self._subscribers):
            callback = ref()
            if callback is None:
                if ref in self._subscribers:
                    self._subscribers.remove(ref)
                continue
            try:
                callback(key, source)
            except Exception as err:
                logger.error("Change subscriber failed for key=%s: %s", key, err)


def wallet_keys(storage: StoragePort) -> list[str]:
    return [k for k in storage.keys() if k.startswith(STORAGE_PREFIX)]


def wipe_wallet_data(storage: StoragePort) -> int:
    """Remove every wallet_* key; returns the number of keys removed."""
    keys = wallet_keys(storage)
    for key in keys:
        storage.remove(key)
    logger.info("Wiped %d wallet storage key(s)", len(keys))
    return len(keys)


__all__ = [
    "ChangeBroadcaster",
    "JsonFileStorage",
    "MemoryStorage",
    "STORAGE_KEYS",
    "StoragePort",
    "wallet_keys",
    "wipe_wallet_data",
]
