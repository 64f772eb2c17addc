from dataclasses import dataclass
from typing import Any

from arascan.dto import CallMeta
from arascan.exceptions import DecodeError
from arascan.providers.ledger import IDENTITY_FIELDS, decode_hex_field
from arascan.providers.protocols import LedgerClient

SET_IDENTITY = CallMeta(section="identity", method="setIdentity")


@dataclass(frozen=True)
class InspectedExtrinsic:
    index: int
    call: str
    signer: str | None = None
    identity: dict[str, Any] | None = None


async def inspect_block(ledger: LedgerClient, block_number: int) -> list[InspectedExtrinsic]:
    """
    Describe the extrinsics of a block without writing anything.

    `identity.setIdentity` calls also carry their decoded display fields.

    Raises:
        ValueError: If the block does not exist on chain.

    """
    block_hash = await ledger.get_block_hash(block_number)
    if block_hash is None:
        raise ValueError(f"Block {block_number} not found on chain")

    block = await ledger.get_block(block_hash)
    inspected = []
    for extrinsic in block.extrinsics:
        call = extrinsic.call
        if call is None:
            try:
                call = ledger.decode_call(extrinsic.call_index)
            except DecodeError:
                inspected.append(InspectedExtrinsic(extrinsic.index, f"unknown ({extrinsic.call_index})", extrinsic.signer))
                continue

        identity = None
        if call == SET_IDENTITY:
            info = extrinsic.args.get("info") or {}
            identity = {field: decode_hex_field(info[field]) for field in IDENTITY_FIELDS if field in info}
        inspected.append(InspectedExtrinsic(extrinsic.index, str(call), extrinsic.signer, identity))
    return inspected
