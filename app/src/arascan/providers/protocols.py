"""Protocol definition for the read-only ledger client."""

from collections.abc import Awaitable, Callable
from typing import Protocol

from arascan.dto import AccountState, BlockHeader, CallMeta, ChainEvent, HeadNotice, RawBlock, StakingSnapshot

HeadCallback = Callable[[HeadNotice], Awaitable[None]]


class LedgerClient(Protocol):
    """Read-only façade over a chain node."""

    async def get_block(self, block_hash: str) -> RawBlock:
        """
        Fetch a block by hash.

        Raises:
            LedgerConnectionError: If the node cannot be reached.

        """
        ...

    async def get_header(self, block_hash: str | None = None) -> BlockHeader:
        """Fetch the header of `block_hash`, or of the best head when None."""
        ...

    async def get_finalized_header(self) -> BlockHeader:
        """Fetch the header of the latest finalized block."""
        ...

    async def get_block_hash(self, block_number: int) -> str | None:
        """Resolve a block number to its hash."""
        ...

    async def subscribe_new_heads(self, on_head: HeadCallback) -> None:
        """Invoke `on_head` for every new head until the subscription ends."""
        ...

    def decode_call(self, call_index: str) -> CallMeta:
        """
        Resolve a call index to its (section, method).

        Raises:
            DecodeError: If the call index is not part of the runtime metadata.

        """
        ...

    async def events_at(self, block_hash: str) -> list[ChainEvent]:
        """Fetch the events emitted while executing `block_hash`."""
        ...

    async def query_account_state(self, address: str, *, with_identity: bool = False) -> AccountState:
        """Query the current balance (and optionally the identity) of an account."""
        ...

    async def query_staking_snapshot(self) -> StakingSnapshot:
        """Query the current era, session index and validator set."""
        ...
