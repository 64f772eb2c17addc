"""Protocol definitions for the record store."""

from dataclasses import dataclass
from typing import Any, Protocol

BLOCKS = "blocks"
EVENTS = "events"
TRANSFERS = "transfers"
ACCOUNTS = "accounts"
STAKING_TXS = "staking_txs"
METADATA = "metadata"
PROCESSED = "processed"

COLLECTIONS = (BLOCKS, EVENTS, TRANSFERS, ACCOUNTS, STAKING_TXS, METADATA, PROCESSED)

# Sort specification: (field, direction) pairs, direction is 1 or -1.
SortSpec = list[tuple[str, int]]


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of an upsert, mirroring the matched/modified/upserted triple of document stores."""

    matched: int
    modified: int
    upserted_id: Any = None

    @property
    def changed(self) -> bool:
        """True when the upsert inserted a document or altered an existing one."""
        return self.upserted_id is not None or self.modified > 0


class RecordStore(Protocol):
    """
    Document-oriented store over named collections.

    Documents are plain dicts; the `_id` key addresses the primary key of a
    collection. Filters are equality matches on top-level fields.
    """

    async def upsert(self, collection: str, filter: dict[str, Any], patch: dict[str, Any]) -> UpsertResult:
        """
        Update the first document matching `filter` with `patch`, inserting
        `filter | patch` when nothing matches.

        Raises:
            RecordStoreError: If the write fails.

        """
        ...

    async def find_one(self, collection: str, filter: dict[str, Any]) -> dict[str, Any] | None:
        """Return the first document matching `filter`, or None."""
        ...

    async def count(self, collection: str, filter: dict[str, Any] | None = None) -> int:
        """Count the documents matching `filter`."""
        ...

    async def scan(
        self,
        collection: str,
        filter: dict[str, Any] | None = None,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return a sorted page of documents matching `filter`."""
        ...

    async def close(self) -> None:
        """Release any connection held by the store."""
        ...
