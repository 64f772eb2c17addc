from .ledger import LedgerProvider, ledger_provider
from .protocols import HeadCallback, LedgerClient
from .substrate import SubstrateClient

__all__ = [
    "HeadCallback",
    "LedgerClient",
    "LedgerProvider",
    "SubstrateClient",
    "ledger_provider",
]
