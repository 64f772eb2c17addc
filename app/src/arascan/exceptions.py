class ArascanError(Exception):
    """Base class for all indexer errors."""


class DecodeError(ArascanError):
    """Raised when a call index cannot be resolved against the runtime metadata."""

    def __init__(self, call_index: str, reason: str = "unknown call index"):
        self.call_index = call_index
        self.reason = reason
        super().__init__(f"Could not decode call {call_index}: {reason}")


class LedgerConnectionError(ArascanError):
    """Raised when the chain node cannot be reached or a request fails."""

    def __init__(self, uri: str, original_error: Exception) -> None:
        self.uri = uri
        self.original_error = original_error
        super().__init__(f"Ledger request to {uri} failed")

    def __repr__(self) -> str:
        return f"LedgerConnectionError(uri={self.uri!r}, original_error={self.original_error!r})"


class RecordStoreError(ArascanError):
    """Raised when a record store operation fails."""


class StoreConnectionError(RecordStoreError):
    """Raised when the record store itself is unreachable."""


class UnknownCollectionError(RecordStoreError):
    """Raised when an operation targets a collection the store does not know."""

    def __init__(self, collection: str):
        self.collection = collection
        super().__init__(f"Unknown collection: {collection}")


class BlockCommitError(ArascanError):
    """Raised when the final block row could not be persisted."""

    def __init__(self, block_number: int, original_error: Exception) -> None:
        self.block_number = block_number
        self.original_error = original_error
        super().__init__(f"Block {block_number} could not be committed")

    def __repr__(self) -> str:
        return f"BlockCommitError(block_number={self.block_number}, original_error={self.original_error!r})"
