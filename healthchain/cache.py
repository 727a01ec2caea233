"""
Local identifier cache for policies and service requests.

Remembers which record ids belong to an account on a chain so resolution
can skip RPC work, or fall back to something when the node is unreachable.
The cache is only ever a hint; the contract stays the source of truth.

Keys have the form ``<namespace>_<chainId>_<lowercased owner>`` and values
are JSON arrays of integers.

Every read-modify-write runs under the store's lock, and JsonFileStore
replaces the file atomically, so concurrent API requests never see or
produce a half-written file.
"""

import json
import logging
import os
import tempfile
import threading
import time
from typing import Dict, Iterable, Optional, Set

from healthchain.models import RecordKind

logger = logging.getLogger(__name__)

NAMESPACES = {
    RecordKind.POLICY: "PC_policies",
    RecordKind.SERVICE_REQUEST: "PC_requests",
}

# One lock per cache file, shared by every store opened on it
_PATH_LOCKS: Dict[str, threading.RLock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def _lock_for(path: str) -> threading.RLock:
    with _PATH_LOCKS_GUARD:
        return _PATH_LOCKS.setdefault(os.path.abspath(path), threading.RLock())


class MemoryStore:
    """Key-value store kept in memory, for tests and short-lived processes."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.lock = threading.RLock()

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        with self.lock:
            self.values[key] = value


class JsonFileStore:
    """Key-value store persisted as a single JSON file on disk."""

    def __init__(self, path: str):
        self.path = path
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.lock = _lock_for(path)

    @staticmethod
    def _empty() -> Dict:
        return {"entries": {}, "metadata": {"last_updated": time.time()}}

    def _load(self) -> Dict:
        """
        Read the whole file.

        Raises:
            ValueError: The file is not a JSON object
            OSError: The file could not be read
        """
        if not os.path.exists(self.path):
            return self._empty()
        with open(self.path, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return data

    def _write(self, data: Dict) -> None:
        fd, tmp_path = tempfile.mkstemp(
            dir=os.path.dirname(self.path) or ".",
            prefix=os.path.basename(self.path) + ".",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def _set_aside(self, error: Exception) -> Dict:
        """Move an unreadable file out of the way so its contents survive"""
        corrupt_path = f"{self.path}.corrupt"
        logger.error(f"Cache file {self.path} is unreadable ({error}); moved to {corrupt_path}")
        os.replace(self.path, corrupt_path)
        return self._empty()

    def get(self, key: str) -> Optional[str]:
        with self.lock:
            try:
                data = self._load()
            except (OSError, ValueError) as e:
                logger.error(f"Error loading cache file {self.path}: {e}")
                return None
        return data.get("entries", {}).get(key)

    def set(self, key: str, value: str) -> None:
        with self.lock:
            try:
                try:
                    data = self._load()
                except ValueError as e:
                    data = self._set_aside(e)
                data.setdefault("entries", {})[key] = value
                data["metadata"] = {"last_updated": time.time()}
                self._write(data)
            except OSError as e:
                logger.error(f"Error saving cache file {self.path}: {e}")


def cache_key(kind: RecordKind, chain_id, owner: str) -> str:
    return f"{NAMESPACES[kind]}_{chain_id}_{owner.lower()}"


class IdentifierCache:
    """Record ids known per (chain, owner, kind), persisted through a key-value store."""

    def __init__(self, store=None):
        self.store = store if store is not None else MemoryStore()

    def get(self, chain_id, owner: str, kind: RecordKind = RecordKind.POLICY) -> Set[int]:
        if not owner:
            return set()
        raw = self.store.get(cache_key(kind, chain_id, owner))
        if not raw:
            return set()
        try:
            return {int(record_id) for record_id in json.loads(raw)}
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache entry for {owner}: {e}")
            return set()

    def add(self, chain_id, owner: str, record_id: int, kind: RecordKind = RecordKind.POLICY) -> None:
        """Remember one id; adding an id that is already known is a no-op."""
        self.merge(chain_id, owner, [record_id], kind)

    def merge(self, chain_id, owner: str, record_ids: Iterable[int],
              kind: RecordKind = RecordKind.POLICY) -> Set[int]:
        """Union ``record_ids`` into the entry and return the merged set."""
        if not owner:
            return set()
        with self.store.lock:
            existing = self.get(chain_id, owner, kind)
            merged = existing | {int(record_id) for record_id in record_ids}
            if merged != existing:
                self.store.set(cache_key(kind, chain_id, owner), json.dumps(sorted(merged)))
                logger.debug(f"Cached {len(merged) - len(existing)} new {kind.value} id(s) for {owner.lower()}")
        return merged
