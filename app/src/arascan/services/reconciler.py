"""Periodic re-sync of every stored account against current chain state."""

import asyncio
from dataclasses import dataclass
from typing import Any

import structlog
from prometheus_client import Counter

from arascan.exceptions import RecordStoreError, StoreConnectionError
from arascan.providers.protocols import LedgerClient
from arascan.services.accounts import update_account
from arascan.storage.protocols import ACCOUNTS, RecordStore

logger = structlog.get_logger()

accounts_reconciled = Counter(
    "arascan_accounts_reconciled",
    "Accounts refreshed by the reconciler",
    labelnames=("result",),
)

LOG_EVERY = 1000


@dataclass
class ReconcileCounter:
    processed: int = 0
    failed: int = 0


class AccountReconciler:
    """
    Re-queries balance (and identity, for accounts that carry one) of every stored account.

    Accounts are paged out of the store by a single producer and refreshed by
    `concurrency` workers; `reconcile_all()` returns once every worker is done.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        store: RecordStore,
        *,
        concurrency: int = 16,
        page_size: int = 500,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.ledger = ledger
        self.store = store
        self.concurrency = concurrency
        self.page_size = page_size

    async def reconcile_all(self) -> ReconcileCounter:
        """
        Refresh every stored account.

        Raises:
            LedgerConnectionError: If the node could not be reached.
            StoreConnectionError: If the store could not be reached.

        """
        counter = ReconcileCounter()
        queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue(maxsize=self.concurrency * 2)

        async def producer():
            skip = 0
            while True:
                page = await self.store.scan(ACCOUNTS, sort=[("_id", 1)], skip=skip, limit=self.page_size)
                for account in page:
                    await queue.put(account)
                if len(page) < self.page_size:
                    break
                skip += len(page)
            # Sentinels only on a clean finish, on error every task is cancelled.
            for _ in range(self.concurrency):
                await queue.put(None)

        async def worker():
            while True:
                account = await queue.get()
                if account is None:
                    break
                await self._reconcile(account, counter)

        tasks = [asyncio.create_task(producer()), *(asyncio.create_task(worker()) for _ in range(self.concurrency))]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        logger.info("Accounts reconciled", processed=counter.processed, failed=counter.failed)
        return counter

    async def _reconcile(self, account: dict[str, Any], counter: ReconcileCounter) -> None:
        address = account["_id"]
        try:
            await update_account(self.ledger, self.store, address, with_identity=account.get("identity") is not None)
        except StoreConnectionError:
            raise
        except RecordStoreError:
            logger.exception("Failed to reconcile account", address=address)
            counter.failed += 1
            accounts_reconciled.labels(result="failed").inc()
            return

        counter.processed += 1
        accounts_reconciled.labels(result="processed").inc()
        if counter.processed % LOG_EVERY == 0:
            logger.info("Reconciling accounts", processed=counter.processed)
