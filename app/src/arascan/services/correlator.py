"""Block correlator: turns one block into blocks/events/transfers/accounts records."""

from collections import defaultdict
from dataclasses import dataclass, field, replace

import structlog
from prometheus_client import Counter

from arascan.dto import BlockHeader, CallMeta, ChainEvent, IngestOutcome, OutcomeStatus, RawBlock, RawExtrinsic
from arascan.exceptions import BlockCommitError, DecodeError, RecordStoreError, StoreConnectionError
from arascan.locks import BlockLockRegistry
from arascan.providers.ledger import address_of, to_int
from arascan.providers.protocols import LedgerClient
from arascan.services.classification import ClassificationTable, ExtrinsicClass, default_classification
from arascan.services.dispatch import Correlation, DispatchTable, IngestionContext, Target, Updater
from arascan.services.handlers import default_dispatch
from arascan.storage.protocols import BLOCKS, EVENTS, TRANSFERS, RecordStore

logger = structlog.get_logger()

blocks_ingested = Counter(
    "arascan_blocks_ingested",
    "Blocks handled by the correlator",
    labelnames=("outcome",),
)

EXCLUDED_EVENTS = frozenset({("system", "ExtrinsicSuccess")})


@dataclass
class BlockScan:
    """Work lists collected while scanning a block, consumed by the correlation pass."""

    updaters: list[Updater] = field(default_factory=list)
    targets: list[Target] = field(default_factory=list)
    events: list[ChainEvent] = field(default_factory=list)


class BlockCorrelator:
    """Ingests blocks: records events, transfers and accounts, then correlates them with the block timestamp."""

    def __init__(
        self,
        ledger: LedgerClient,
        store: RecordStore,
        *,
        classification: ClassificationTable | None = None,
        dispatch: DispatchTable | None = None,
        locks: BlockLockRegistry | None = None,
    ) -> None:
        """
        Initialize the BlockCorrelator.

        Args:
            ledger: Ledger client used to fetch blocks, events and account state
            store: Record store receiving the derived records
            classification: Extrinsic classification rules, defaults to `default_classification()`
            dispatch: Handler routing tables, defaults to `default_dispatch()`
            locks: Per-block lock registry shared by every ingester of this process

        """
        self.ctx = IngestionContext(ledger=ledger, store=store)
        self.classification = classification or default_classification()
        self.dispatch = dispatch or default_dispatch()
        self.locks = locks or BlockLockRegistry()

    @property
    def ledger(self) -> LedgerClient:
        return self.ctx.ledger

    @property
    def store(self) -> RecordStore:
        return self.ctx.store

    async def ingest(self, block_hash: str) -> IngestOutcome:
        """
        Ingest the block identified by `block_hash`.

        A block that is already stored is skipped without side effects; the
        block row is written last, so a block is only ever reported as stored
        once all its derived records were attempted.

        Returns:
            IngestOutcome with the block header and whether it was processed or skipped

        Raises:
            BlockCommitError: If the final block row could not be written.
            LedgerConnectionError: If the node could not be reached.
            StoreConnectionError: If the store could not be reached.
            TimeoutError: If the block lock could not be acquired.

        """
        block = await self.ledger.get_block(block_hash)
        header = block.header

        async with self.locks(str(header.number)):
            if await self.store.find_one(BLOCKS, {"_id": header.number}) is not None:
                logger.info("Block exists, ignored", block_number=header.number)
                blocks_ingested.labels(outcome=OutcomeStatus.SKIPPED).inc()
                return IngestOutcome(status=OutcomeStatus.SKIPPED, header=header)

            events = await self.ledger.events_at(header.hash)
            scan = await self._scan(block, events)
            await self._correlate(header, scan)
            await self._commit(block)

        blocks_ingested.labels(outcome=OutcomeStatus.PROCESSED).inc()
        logger.info(
            "Block processed",
            block_number=header.number,
            extrinsics=len(block.extrinsics),
            events=len(events),
        )
        return IngestOutcome(status=OutcomeStatus.PROCESSED, header=header)

    def _decode(self, header: BlockHeader, extrinsic: RawExtrinsic) -> CallMeta | None:
        if extrinsic.call is not None:
            return extrinsic.call
        try:
            return self.ledger.decode_call(extrinsic.call_index)
        except DecodeError as e:
            logger.warning(
                "Could not decode extrinsic",
                block_number=header.number,
                extrinsic_index=extrinsic.index,
                call_index=e.call_index,
                reason=e.reason,
            )
            return None

    async def _scan(self, block: RawBlock, events: list[ChainEvent]) -> BlockScan:
        header = block.header
        by_extrinsic: dict[int, list[ChainEvent]] = defaultdict(list)
        for event in events:
            if event.phase_index is not None and (event.section, event.method) not in EXCLUDED_EVENTS:
                by_extrinsic[event.phase_index].append(event)

        scan = BlockScan()
        for extrinsic in block.extrinsics:
            call = self._decode(header, extrinsic)
            kind = self.classification.classify(call)
            extrinsic_events = by_extrinsic.get(extrinsic.index, [])

            for event in extrinsic_events:
                await self._store_event(header, event)
                for handler in self.dispatch.event_handlers(event.section, event.method):
                    await self._run(handler, self.ctx, header, event)

            match kind:
                case ExtrinsicClass.TRANSFER:
                    target = await self._record_transfer(header, extrinsic, call)
                    if target is None:
                        continue
                    scan.targets.append(target)
                case ExtrinsicClass.IDENTITY:
                    scan.targets.append(
                        Target(
                            index=extrinsic.index,
                            kind=kind,
                            call=call,
                            signer=extrinsic.signer,
                            nonce=extrinsic.nonce,
                            record={"_id": extrinsic.signer} if extrinsic.signer else {},
                        ),
                    )
                case ExtrinsicClass.TIMESTAMP:
                    scan.updaters.append(Updater(index=extrinsic.index, call=call, value=self._updater_value(extrinsic)))
                case ExtrinsicClass.IGNORED:
                    pass
                case _:
                    logger.info(
                        "Unclassified extrinsic",
                        block_number=header.number,
                        extrinsic_index=extrinsic.index,
                        call=str(call) if call else extrinsic.call_index,
                    )

            scan.events.extend(extrinsic_events)

        return scan

    @staticmethod
    def _updater_value(extrinsic: RawExtrinsic) -> int:
        value = extrinsic.args.get("now")
        if value is None and extrinsic.args:
            value = next(iter(extrinsic.args.values()))
        return to_int(value)

    async def _store_event(self, header: BlockHeader, event: ChainEvent) -> None:
        key = {
            "block": header.number,
            "extrinsic_index": event.phase_index,
            "section": event.section,
            "method": event.method,
            "data_hash": event.content_hash(),
        }
        try:
            await self.store.upsert(EVENTS, key, {"data": event.data})
        except StoreConnectionError:
            raise
        except RecordStoreError:
            logger.exception("Failed to store event", block_number=header.number, event_index=event.index)

    async def _record_transfer(self, header: BlockHeader, extrinsic: RawExtrinsic, call: CallMeta) -> Target | None:
        """
        Upsert the transfer row of a transfer extrinsic.

        Returns:
            The correlation target, or None when the row was already complete or could not be written

        """
        args = extrinsic.args
        key = {"signer": extrinsic.signer, "nonce": extrinsic.nonce}
        patch = {
            # forceTransfer moves funds out of `source`, not out of the (root) signer.
            "src": address_of(args.get("source")) or extrinsic.signer,
            "dst": address_of(args.get("dest")),
            "amount": str(args.get("value")),
            "block": header.number,
            "extrinsic_index": extrinsic.index,
        }
        try:
            result = await self.store.upsert(TRANSFERS, key, patch)
            if not result.changed:
                existing = await self.store.find_one(TRANSFERS, key)
                if existing is not None and existing.get("ts") is not None:
                    logger.debug("Transfer already recorded", block_number=header.number, **key)
                    return None
        except StoreConnectionError:
            raise
        except RecordStoreError:
            logger.exception("Failed to store transfer", block_number=header.number, extrinsic_index=extrinsic.index)
            return None

        logger.info(
            "Transfer",
            block_number=header.number,
            call=str(call),
            src=patch["src"],
            dst=patch["dst"],
            amount=patch["amount"],
        )
        return Target(
            index=extrinsic.index,
            kind=ExtrinsicClass.TRANSFER,
            call=call,
            signer=extrinsic.signer,
            nonce=extrinsic.nonce,
            record=key,
        )

    async def _correlate(self, header: BlockHeader, scan: BlockScan) -> None:
        if not scan.updaters:
            if scan.targets or scan.events:
                logger.warning("No updater extrinsic in block, skipping correlation", block_number=header.number)
            return

        for updater in scan.updaters:
            targets = [replace(target, updater=updater) for target in scan.targets]
            for target in targets:
                correlation = Correlation(header=header, updater=updater, target=target)
                for handler in self.dispatch.correlation_handlers(target.call.section, target.call.method, updater.call):
                    await self._run(handler, self.ctx, correlation)

            by_index = {target.index: target for target in targets}
            for event in scan.events:
                correlation = Correlation(header=header, updater=updater, event=event, target=by_index.get(event.phase_index))
                for handler in self.dispatch.correlation_handlers(event.section, event.method, updater.call):
                    await self._run(handler, self.ctx, correlation)

    async def _run(self, handler, *args) -> None:
        try:
            await handler(*args)
        except StoreConnectionError:
            raise
        except RecordStoreError:
            logger.exception("Handler failed", handler=handler.__name__)

    async def _commit(self, block: RawBlock) -> None:
        header = block.header
        try:
            await self.store.upsert(
                BLOCKS,
                {"_id": header.number},
                {
                    "block_num": header.number,
                    "block_hash": header.hash,
                    "block_parent_hash": header.parent_hash,
                    "extrinsics": block.raw_extrinsics(),
                },
            )
        except StoreConnectionError:
            raise
        except RecordStoreError as e:
            logger.exception("Failed to commit block", block_number=header.number)
            raise BlockCommitError(header.number, e) from e


def block_correlator(
    ledger: LedgerClient,
    store: RecordStore,
    *,
    locks: BlockLockRegistry | None = None,
) -> BlockCorrelator:
    """
    Factory function to create a BlockCorrelator with the default rules.

    Returns:
        BlockCorrelator instance

    """
    return BlockCorrelator(
        ledger,
        store,
        classification=default_classification(),
        dispatch=default_dispatch(),
        locks=locks,
    )
