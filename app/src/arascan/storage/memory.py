import copy
import itertools
from typing import Any

from arascan.exceptions import UnknownCollectionError

from .protocols import COLLECTIONS, SortSpec, UpsertResult


def _matches(document: dict[str, Any], filter: dict[str, Any] | None) -> bool:
    if not filter:
        return True
    return all(key in document and document[key] == value for key, value in filter.items())


def _sort_key(field: str):
    def key(document: dict[str, Any]) -> tuple[bool, Any]:
        value = document.get(field)
        return (value is None, value)

    return key


class InMemoryRecordStore:
    """
    Record store that keeps documents in memory. Useful for testing and development.
    """

    def __init__(self, collections: tuple[str, ...] = COLLECTIONS) -> None:
        self._data: dict[str, dict[Any, dict[str, Any]]] = {name: {} for name in collections}
        self._ids = itertools.count(1)

    def _collection(self, name: str) -> dict[Any, dict[str, Any]]:
        if name not in self._data:
            raise UnknownCollectionError(name)
        return self._data[name]

    async def upsert(self, collection: str, filter: dict[str, Any], patch: dict[str, Any]) -> UpsertResult:
        documents = self._collection(collection)
        for document in documents.values():
            if _matches(document, filter):
                changed = {key: value for key, value in patch.items() if document.get(key, object()) != value}
                document.update(copy.deepcopy(changed))
                return UpsertResult(matched=1, modified=1 if changed else 0)

        document = copy.deepcopy({**filter, **patch})
        document_id = document.setdefault("_id", next(self._ids))
        documents[document_id] = document
        return UpsertResult(matched=0, modified=0, upserted_id=document_id)

    async def find_one(self, collection: str, filter: dict[str, Any]) -> dict[str, Any] | None:
        for document in self._collection(collection).values():
            if _matches(document, filter):
                return copy.deepcopy(document)
        return None

    async def count(self, collection: str, filter: dict[str, Any] | None = None) -> int:
        return sum(1 for document in self._collection(collection).values() if _matches(document, filter))

    async def scan(
        self,
        collection: str,
        filter: dict[str, Any] | None = None,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        documents = [d for d in self._collection(collection).values() if _matches(d, filter)]
        # Stable sorts applied from the least significant key.
        for field, direction in reversed(sort or []):
            documents.sort(key=_sort_key(field), reverse=direction < 0)
        end = None if limit is None else skip + limit
        return [copy.deepcopy(d) for d in documents[skip:end]]

    async def close(self) -> None:
        pass
