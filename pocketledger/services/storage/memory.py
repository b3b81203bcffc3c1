"""
In-Memory Collection Store

Used by tests and by the default ``memory`` backend.

Records are round-tripped through JSON on every read and write, so
anything that would not survive a real backend fails here too, and
callers never share mutable state with the store.
"""

import json
from typing import Optional

from pocketledger.services.storage.interface import (
    CollectionStore,
    Record,
    StorageError,
)


class InMemoryCollectionStore(CollectionStore):
    """Dict-backed collection store."""

    def __init__(self, initial: Optional[dict[str, list[Record]]] = None):
        self._data: dict[str, str] = {}
        for collection, records in (initial or {}).items():
            self._data[collection] = self._encode(collection, records)

    @staticmethod
    def _encode(collection: str, records: list[Record]) -> str:
        try:
            return json.dumps(records)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Records for '{collection}' are not JSON-serializable: {e}")

    async def get(self, collection: str) -> list[Record]:
        raw = self._data.get(collection)
        if raw is None:
            return []
        return json.loads(raw)

    async def set(self, collection: str, records: list[Record]) -> None:
        self._data[collection] = self._encode(collection, records)

    def collections(self) -> list[str]:
        """Names of every collection written so far."""
        return sorted(self._data)
