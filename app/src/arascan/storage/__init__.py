from .memory import InMemoryRecordStore
from .protocols import (
    ACCOUNTS,
    BLOCKS,
    COLLECTIONS,
    EVENTS,
    METADATA,
    PROCESSED,
    STAKING_TXS,
    TRANSFERS,
    RecordStore,
    SortSpec,
    UpsertResult,
)

__all__ = [
    # Collections
    "ACCOUNTS",
    "BLOCKS",
    "COLLECTIONS",
    "EVENTS",
    "METADATA",
    "PROCESSED",
    "STAKING_TXS",
    "TRANSFERS",
    # Backends
    "InMemoryRecordStore",
    # Protocols
    "RecordStore",
    "SortSpec",
    "UpsertResult",
]
