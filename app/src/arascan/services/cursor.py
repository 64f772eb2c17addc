import structlog
from pydantic import ValidationError

from arascan.dto import BlockHeader, Cursor
from arascan.storage.protocols import PROCESSED, RecordStore

logger = structlog.get_logger()

LAST_BLOCK_ID = "last_block"


async def get_last_block(store: RecordStore) -> Cursor | None:
    """
    Read the resume point of the backfill sequencer.

    Returns:
        The stored cursor, or None when it is missing or malformed

    """
    document = await store.find_one(PROCESSED, {"_id": LAST_BLOCK_ID})
    if document is None:
        logger.info("No last processed block recorded")
        return None
    try:
        return Cursor.model_validate(document.get("value"))
    except ValidationError:
        logger.warning("Malformed last processed block, ignoring", value=document.get("value"))
        return None


async def set_last_block(store: RecordStore, header: BlockHeader) -> Cursor:
    cursor = Cursor(number=header.number, hash=header.hash)
    await store.upsert(PROCESSED, {"_id": LAST_BLOCK_ID}, {"value": cursor.model_dump()})
    logger.info("Last processed block updated", block_number=cursor.number, block_hash=cursor.hash)
    return cursor
