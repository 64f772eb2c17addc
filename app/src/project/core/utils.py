from arascan.locks import BlockLockRegistry
from arascan.providers import LedgerProvider, ledger_provider
from arascan.services.correlator import BlockCorrelator, block_correlator
from arascan.storage import RecordStore
from django.conf import settings


def get_ledger() -> LedgerProvider:
    """Ledger provider for the node configured in SUBSTRATE_URL."""
    return ledger_provider(settings.SUBSTRATE_URL, settings.SS58_FORMAT)


def get_correlator(ledger: LedgerProvider, store: RecordStore) -> BlockCorrelator:
    return block_correlator(ledger, store, locks=BlockLockRegistry(timeout=settings.BLOCK_LOCK_TIMEOUT))
