import structlog

from arascan.dto import AccountState
from arascan.providers.protocols import LedgerClient
from arascan.storage.protocols import ACCOUNTS, RecordStore

logger = structlog.get_logger()


async def update_account(
    ledger: LedgerClient,
    store: RecordStore,
    address: str,
    *,
    with_identity: bool = False,
) -> AccountState:
    """
    Refresh the stored balance of an account from current chain state.

    Args:
        ledger: Ledger client to query the account from
        store: Record store holding the `accounts` collection
        address: SS58 address of the account
        with_identity: Also refresh the identity; a cleared identity is stored as None

    Returns:
        The queried account state

    """
    state = await ledger.query_account_state(address, with_identity=with_identity)
    patch = {"balance": state.balance}
    if with_identity:
        patch["identity"] = state.identity
    await store.upsert(ACCOUNTS, {"_id": address}, patch)
    logger.debug("Account updated", address=address, with_identity=with_identity)
    return state
