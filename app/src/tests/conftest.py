import pytest
from arascan.services.correlator import BlockCorrelator
from arascan.storage import InMemoryRecordStore

from fakes import FakeLedger


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def correlator(ledger, store) -> BlockCorrelator:
    return BlockCorrelator(ledger, store)
