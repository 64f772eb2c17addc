"""Substrate node client."""

from collections.abc import Awaitable, Callable
from typing import Any, Self

import structlog
from async_substrate_interface import AsyncSubstrateInterface
from async_substrate_interface.errors import SubstrateRequestException

from arascan.exceptions import LedgerConnectionError

logger = structlog.get_logger()

_TRANSPORT_ERRORS = (SubstrateRequestException, OSError, TimeoutError)


class SubstrateClient:
    """Client for issuing raw RPC and storage requests to a Substrate node."""

    def __init__(self, uri: str, ss58_format: int = 42):
        self._uri = uri
        self._ss58_format = ss58_format
        self._substrate: AsyncSubstrateInterface | None = None

    @property
    def uri(self) -> str:
        return self._uri

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        if self._substrate is not None:
            return
        substrate = AsyncSubstrateInterface(self._uri, ss58_format=self._ss58_format)
        try:
            await substrate.initialize()
        except _TRANSPORT_ERRORS as e:
            raise LedgerConnectionError(self._uri, e) from e
        self._substrate = substrate
        logger.info("Connected to chain node", uri=self._uri)

    async def close(self) -> None:
        if self._substrate is None:
            return
        substrate, self._substrate = self._substrate, None
        await substrate.close()

    async def _call(self, method: str, *args, **kwargs) -> Any:
        await self.connect()
        try:
            return await getattr(self._substrate, method)(*args, **kwargs)
        except _TRANSPORT_ERRORS as e:
            raise LedgerConnectionError(self._uri, e) from e

    async def get_block(self, block_hash: str) -> dict[str, Any]:
        """
        Fetches a block with its decoded extrinsics.
        """
        return await self._call("get_block", block_hash=block_hash)

    async def get_block_header(self, block_hash: str) -> dict[str, Any]:
        return await self._call("get_block_header", block_hash=block_hash)

    async def get_block_hash(self, block_number: int) -> str | None:
        """
        Retrieves the block hash for a given block number.
        """
        return await self._call("get_block_hash", block_number)

    async def get_chain_head(self) -> str:
        return await self._call("get_chain_head")

    async def get_chain_finalised_head(self) -> str:
        return await self._call("get_chain_finalised_head")

    async def get_events(self, block_hash: str) -> list[Any]:
        """
        Fetches the decoded `System.Events` of a block.
        """
        return await self._call("get_events", block_hash=block_hash)

    async def query(self, module: str, storage_function: str, params: list[Any] | None = None) -> Any:
        """
        Queries current runtime storage, returning the decoded value.
        """
        result = await self._call("query", module, storage_function, params or [])
        return getattr(result, "value", result)

    async def subscribe_block_headers(self, handler: Callable[..., Awaitable[Any]]) -> Any:
        return await self._call("subscribe_block_headers", handler, finalized_only=False)
