"""
Persistence Layer - durable local snapshots of cart and wishlist.

Two independently keyed, versioned JSON documents:

    {prefix}cart      {"version": 1, "cart": {...CartSession...}}
    {prefix}wishlist  {"version": 1, "entries": [...WishlistEntry...]}

Loads never raise: missing, corrupt or foreign-version data yields an empty
collection. Writes happen synchronously on every committed store change and
are best effort; failures are logged and dropped.
"""

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from storefront.cart.models import CartSession
from storefront.errors import ERROR_STORAGE_WRITE, PersistenceError
from storefront.logging import get_logger
from storefront.wishlist.models import WishlistEntry

logger = get_logger(__name__)

SNAPSHOT_VERSION = 1


class StorageBackend:
    """Key/value string storage. Implementations raise PersistenceError."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError


class MemoryStorage(StorageBackend):
    """In-process storage, for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class FileStorage(StorageBackend):
    """One JSON file per key under ``directory``, replaced atomically."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self.directory / f"{safe}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"{ERROR_STORAGE_WRITE}: {path}: {e}") from e


class RedisStorage(StorageBackend):
    """Upstash Redis (REST) storage for server-rendered sessions."""

    def __init__(self, url: str, token: str):
        from upstash_redis import Redis

        self.redis = Redis(url=url, token=token)

    def get(self, key: str) -> Optional[str]:
        try:
            return self.redis.get(key)
        except Exception as e:
            raise PersistenceError(f"Redis GET {key} failed: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            self.redis.set(key, value)
        except Exception as e:
            raise PersistenceError(f"{ERROR_STORAGE_WRITE}: Redis SET {key}: {e}") from e


def storage_from_settings(settings) -> StorageBackend:
    """Redis when Upstash credentials are configured, files otherwise."""
    if settings.uses_redis:
        return RedisStorage(settings.redis_url, settings.redis_token)
    return FileStorage(settings.state_dir)


class SnapshotStore:
    """Reads and writes the cart and wishlist snapshots."""

    def __init__(self, storage: StorageBackend, prefix: str = "storefront:"):
        self.storage = storage
        self.cart_key = f"{prefix}cart"
        self.wishlist_key = f"{prefix}wishlist"

    def _read(self, key: str) -> Optional[dict]:
        try:
            raw = self.storage.get(key)
        except PersistenceError as e:
            logger.warning(f"Snapshot {key} unreadable: {e}")
            return None
        if not raw:
            return None
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupted snapshot {key}: {e}")
            return None
        if not isinstance(document, dict) or document.get("version") != SNAPSHOT_VERSION:
            logger.warning(f"Ignoring snapshot {key} with unsupported layout")
            return None
        return document

    def _write(self, key: str, document: dict) -> bool:
        document = {"version": SNAPSHOT_VERSION, **document}
        try:
            self.storage.set(key, json.dumps(document, separators=(",", ":")))
            return True
        except PersistenceError as e:
            logger.error(f"Snapshot {key} not saved: {e}")
            return False

    def load_cart(self) -> CartSession:
        """Hydrate the cart; any problem yields an empty cart."""
        document = self._read(self.cart_key)
        if document is None:
            return CartSession()
        try:
            return CartSession.from_dict(document["cart"])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Corrupted cart snapshot: {e}")
            return CartSession()

    def load_wishlist(self) -> List[WishlistEntry]:
        """Hydrate the wishlist; any problem yields an empty list."""
        document = self._read(self.wishlist_key)
        if document is None:
            return []
        try:
            entries = [WishlistEntry.from_dict(raw) for raw in document["entries"]]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Corrupted wishlist snapshot: {e}")
            return []
        seen = set()
        unique = []
        for entry in entries:
            if entry.key not in seen:
                seen.add(entry.key)
                unique.append(entry)
        return unique

    def save_cart(self, session: CartSession) -> bool:
        return self._write(self.cart_key, {"cart": session.to_dict()})

    def save_wishlist(self, entries: Iterable[WishlistEntry]) -> bool:
        return self._write(self.wishlist_key, {"entries": [e.to_dict() for e in entries]})

    def watch(self, cart_store, wishlist_store) -> None:
        """Write a snapshot after every committed change of either store."""
        cart_store.subscribe(lambda store: self.save_cart(store.session))
        wishlist_store.subscribe(lambda store: self.save_wishlist(store.entries))
