"""Ledger provider normalizing Substrate node responses into DTOs."""

import os
import re
from typing import Any, Self

import structlog

from arascan.dto import (
    AccountState,
    BlockHeader,
    CallMeta,
    ChainEvent,
    HeadNotice,
    RawBlock,
    RawExtrinsic,
    StakingSnapshot,
)
from arascan.exceptions import DecodeError
from arascan.providers.protocols import HeadCallback
from arascan.providers.substrate import SubstrateClient

logger = structlog.get_logger()

IDENTITY_FIELDS = ("display", "legal", "web", "riot", "email", "twitter")


def _name(obj: Any) -> str | None:
    """Return a string name for a call module / function / event regardless of the decoded shape."""
    if obj is None:
        return None
    if hasattr(obj, "name"):
        return obj.name
    if isinstance(obj, bytes):
        return obj.decode()
    if isinstance(obj, dict):
        return obj.get("name")
    return str(obj)


def section_name(module: str) -> str:
    """`ImOnline` -> `imOnline`, matching the section naming of call indexes."""
    return module[:1].lower() + module[1:]


def method_name(function: str) -> str:
    """`transfer_keep_alive` -> `transferKeepAlive`."""
    head, *rest = function.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def address_of(value: Any) -> str | None:
    """Unwrap a `MultiAddress` (`{"Id": "5F..."}`) into its SS58 string."""
    if isinstance(value, dict):
        value = value.get("Id") or next(iter(value.values()), None)
    return str(value) if value else None


def to_int(value: Any) -> int:
    if isinstance(value, str) and value.startswith("0x"):
        return int(value, 16)
    return int(value)


def jsonable(value: Any) -> Any:
    """Convert decoded SCALE values into JSON-compatible structures."""
    if isinstance(value, bytes | bytearray):
        return "0x" + bytes(value).hex()
    if isinstance(value, dict):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [jsonable(v) for v in value]
    if value is None or isinstance(value, bool | int | float | str):
        return value
    if hasattr(value, "value"):
        return jsonable(value.value)
    return str(value)


def decode_hex_field(value: Any) -> str:
    """Decode a hex-encoded identity field (`{"Raw": "0x..."}` or a bare string)."""
    if isinstance(value, dict):
        if not value:
            return ""
        value = next(iter(value.values()))
    if not isinstance(value, str):
        return str(value) if value else ""
    if value == "None":
        return ""
    if not re.fullmatch(r"0x[0-9a-fA-F]*", value):
        return value
    try:
        return bytes.fromhex(value.removeprefix("0x")).decode("utf-8", errors="replace").strip("\x00")
    except ValueError:
        return value


def _phase_index(record: dict[str, Any]) -> int | None:
    phase = record.get("phase")
    if isinstance(phase, dict):
        return int(phase["ApplyExtrinsic"]) if "ApplyExtrinsic" in phase else None
    if phase not in (None, "ApplyExtrinsic"):
        return None
    index = record.get("extrinsic_idx", record.get("extrinsic_index"))
    return int(index) if index is not None else None


def _event_data(attributes: Any) -> list[Any]:
    if attributes is None:
        return []
    if isinstance(attributes, dict):
        return [jsonable(v) for v in attributes.values()]
    if isinstance(attributes, list | tuple):
        return [jsonable(v) for v in attributes]
    return [jsonable(attributes)]


def normalize_identity(registration: Any) -> dict[str, Any] | None:
    """Flatten an `Identity.IdentityOf` registration into display fields."""
    if not registration:
        return None
    # Newer runtimes store (Registration, Option<Username>).
    if isinstance(registration, list | tuple):
        registration = registration[0]
    if not isinstance(registration, dict):
        return None
    info = registration.get("info", {})
    identity = {field: decode_hex_field(info.get(field)) for field in IDENTITY_FIELDS}
    identity["judgements"] = jsonable(registration.get("judgements", []))
    return identity


class LedgerProvider:
    """Provider for reading blocks, events and runtime state from a Substrate chain."""

    def __init__(self, client: SubstrateClient) -> None:
        """
        Initialize the LedgerProvider with a Substrate client.

        Args:
            client: The Substrate client to use for node requests

        """
        self.client = client
        self._calls: dict[str, CallMeta] = {}

    async def __aenter__(self) -> Self:
        await self.client.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.client.close()

    async def close(self) -> None:
        await self.client.close()

    def _extrinsic(self, index: int, extrinsic: Any) -> RawExtrinsic:
        value = getattr(extrinsic, "value", extrinsic) or {}
        call = value.get("call", {})
        call_index = str(call.get("call_index") or f"unknown:{index}")
        module = _name(call.get("call_module"))
        function = _name(call.get("call_function"))
        meta = None
        if module and function:
            meta = CallMeta(section=section_name(module), method=method_name(function))
            # Runtime upgrades may reassign an index, the latest fetched block wins.
            self._calls[call_index] = meta

        args = {arg["name"]: jsonable(arg.get("value")) for arg in call.get("call_args", []) if "name" in arg}
        nonce = value.get("nonce")
        return RawExtrinsic(
            index=index,
            call_index=call_index,
            signer=address_of(jsonable(value.get("address"))),
            nonce=int(nonce) if nonce is not None else None,
            args=args,
            raw=jsonable(value),
            call=meta,
        )

    async def get_block(self, block_hash: str) -> RawBlock:
        """
        Retrieve a block and its extrinsics.

        Args:
            block_hash: The block hash to retrieve

        Returns:
            RawBlock with a normalized header and extrinsics

        """
        data = await self.client.get_block(block_hash)
        header = data["header"]
        extrinsics = [self._extrinsic(i, e) for i, e in enumerate(data.get("extrinsics") or [])]
        return RawBlock(
            header=BlockHeader(
                number=to_int(header["number"]),
                hash=header.get("hash") or block_hash,
                parent_hash=header.get("parentHash", ""),
            ),
            extrinsics=extrinsics,
        )

    async def get_header(self, block_hash: str | None = None) -> BlockHeader:
        """
        Retrieve a block header, defaulting to the best head.

        Args:
            block_hash: The block hash, or None for the current chain head

        """
        if block_hash is None:
            block_hash = await self.client.get_chain_head()
        data = await self.client.get_block_header(block_hash)
        header = data.get("header", data)
        return BlockHeader(
            number=to_int(header["number"]),
            hash=header.get("hash") or block_hash,
            parent_hash=header.get("parentHash", ""),
        )

    async def get_finalized_header(self) -> BlockHeader:
        block_hash = await self.client.get_chain_finalised_head()
        return await self.get_header(block_hash)

    async def get_block_hash(self, block_number: int) -> str | None:
        """
        Retrieve the block hash for a given block number.

        Returns:
            The block hash as a string, or None if not found

        """
        return await self.client.get_block_hash(block_number)

    async def subscribe_new_heads(self, on_head: HeadCallback) -> None:
        async def handler(obj: dict[str, Any], update_nr: int, subscription_id: str) -> None:
            header = obj.get("header", obj)
            await on_head(HeadNotice(number=to_int(header["number"]), hash=header.get("hash")))

        await self.client.subscribe_block_headers(handler)

    def decode_call(self, call_index: str) -> CallMeta:
        """
        Resolve a call index seen in a fetched block to its (section, method).

        Raises:
            DecodeError: If the runtime metadata did not describe the call.

        """
        try:
            return self._calls[call_index]
        except KeyError:
            raise DecodeError(call_index) from None

    async def events_at(self, block_hash: str) -> list[ChainEvent]:
        """
        Retrieve the events of a block, in emission order.
        """
        records = await self.client.get_events(block_hash) or []
        events = []
        for index, record in enumerate(records):
            record = getattr(record, "value", record)
            event = record.get("event") or record
            module = _name(event.get("module_id"))
            event_id = _name(event.get("event_id"))
            if not module or not event_id:
                logger.warning("Skipping undecodable event", block_hash=block_hash, event_index=index)
                continue
            events.append(
                ChainEvent(
                    index=index,
                    phase_index=_phase_index(record),
                    section=section_name(module),
                    method=event_id,
                    data=_event_data(event.get("attributes")),
                ),
            )
        return events

    async def query_account_state(self, address: str, *, with_identity: bool = False) -> AccountState:
        """
        Query the current balance of an account, and its identity when requested.
        """
        info = await self.client.query("System", "Account", [address]) or {}
        balance = {key: str(value) for key, value in (info.get("data") or {}).items()}

        identity = None
        if with_identity:
            registration = await self.client.query("Identity", "IdentityOf", [address])
            identity = normalize_identity(registration)

        return AccountState(balance=balance, identity=identity)

    async def query_staking_snapshot(self) -> StakingSnapshot:
        era = await self.client.query("Staking", "CurrentEra")
        session = await self.client.query("Session", "CurrentIndex")
        validators = await self.client.query("Session", "Validators") or []
        return StakingSnapshot(
            era=int(era) if era is not None else None,
            session=int(session or 0),
            validators=[str(v) for v in validators],
        )


def ledger_provider(uri: str | None = None, ss58_format: int | None = None) -> LedgerProvider:
    """
    Factory function to create a LedgerProvider instance.

    Args:
        uri: The node WebSocket URI. If not provided, reads from
             SUBSTRATE_URL environment variable.
        ss58_format: Address format of the chain. If not provided, reads from
                     SS58_FORMAT environment variable.

    Returns:
        LedgerProvider instance

    """
    uri = uri or os.getenv("SUBSTRATE_URL", "ws://127.0.0.1:9944")
    ss58_format = ss58_format if ss58_format is not None else int(os.getenv("SS58_FORMAT", "42"))
    return LedgerProvider(SubstrateClient(uri, ss58_format=ss58_format))
