"""Data transfer objects shared by the ledger provider and the ingestion services."""

import json
import zlib
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BlockHeader(BaseModel):
    """Header fields the indexer needs to walk and key blocks."""

    model_config = ConfigDict(frozen=True)

    number: int
    hash: str
    parent_hash: str = ""


class CallMeta(BaseModel):
    """Decoded (section, method) of a call index."""

    model_config = ConfigDict(frozen=True)

    section: str
    method: str

    def __str__(self) -> str:
        return f"{self.section}.{self.method}"


class RawExtrinsic(BaseModel):
    """One extrinsic as returned by the node, before classification."""

    model_config = ConfigDict(frozen=True)

    index: int
    call_index: str
    signer: str | None = None
    nonce: int | None = None
    args: dict[str, Any] = Field(default_factory=dict)
    raw: Any = None
    # Call decoded against the runtime that produced this block.
    call: CallMeta | None = None


class RawBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    header: BlockHeader
    extrinsics: list[RawExtrinsic] = Field(default_factory=list)

    @property
    def number(self) -> int:
        return self.header.number

    def raw_extrinsics(self) -> list[Any]:
        """Return the extrinsics in the shape persisted on the block row."""
        return [extrinsic.raw if extrinsic.raw is not None else extrinsic.model_dump() for extrinsic in self.extrinsics]


class ChainEvent(BaseModel):
    """
    A runtime event emitted while executing a block.

    `phase_index` is the extrinsic index of an `ApplyExtrinsic` phase, or None
    for initialization/finalization events.
    """

    model_config = ConfigDict(frozen=True)

    index: int
    phase_index: int | None = None
    section: str
    method: str
    data: list[Any] = Field(default_factory=list)

    def content_hash(self) -> int:
        """CRC32 of the canonical JSON payload, used as the event dedup key."""
        payload = json.dumps(self.data, sort_keys=True, separators=(",", ":"), default=str)
        return zlib.crc32(payload.encode("utf-8"))


class AccountState(BaseModel):
    """Current on-chain state of an account."""

    model_config = ConfigDict(frozen=True)

    balance: dict[str, str] = Field(default_factory=dict)
    identity: dict[str, Any] | None = None


class StakingSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    era: int | None = None
    session: int = 0
    validators: list[str] = Field(default_factory=list)


class ChainStats(BaseModel):
    """Singleton aggregate persisted under `metadata/stats`."""

    model_config = ConfigDict(frozen=True)

    era: int | None = None
    session: int = 0
    validators: list[str] = Field(default_factory=list)
    finalized_block_count: int = 0


class HeadNotice(BaseModel):
    """A new-head notification; the hash is resolved by the watcher when missing."""

    model_config = ConfigDict(frozen=True)

    number: int
    hash: str | None = None


class Cursor(BaseModel):
    """Persisted resume point of the backfill sequencer."""

    model_config = ConfigDict(frozen=True)

    number: int
    hash: str


class OutcomeStatus(StrEnum):
    PROCESSED = "processed"
    SKIPPED = "skipped"


class IngestOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: OutcomeStatus
    header: BlockHeader

    @property
    def skipped(self) -> bool:
        return self.status is OutcomeStatus.SKIPPED
