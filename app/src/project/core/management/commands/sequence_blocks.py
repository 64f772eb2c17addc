"""Backfill the index by walking the chain backward from the head."""

import structlog
from arascan.dto import BlockHeader
from arascan.exceptions import ArascanError
from arascan.services.cursor import set_last_block
from arascan.services.sequencer import BackfillSequencer, SequenceCounter, plan_backfill
from asgiref.sync import async_to_sync
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from project.core.storage import get_record_store
from project.core.utils import get_correlator, get_ledger

logger = structlog.get_logger()


class Command(BaseCommand):
    help = "Ingest blocks from the chain head (or --starting-block) down to the last recorded starting block."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--all",
            action="store_true",
            help="Ignore the recorded last block and walk down to block 1",
        )
        parser.add_argument(
            "--no-skip-limit",
            action="store_true",
            help=f"Keep walking past already indexed blocks (default limit: {settings.MAX_SKIP_BLOCKS} in a row)",
        )
        parser.add_argument(
            "--starting-block",
            type=int,
            default=None,
            help="Block number to start from (default: chain head)",
        )

    def handle(self, *args, **options) -> None:
        starting_block = options["starting_block"]
        if starting_block is not None and starting_block < 1:
            raise CommandError("--starting-block must be a positive block number")

        self.stdout.write(f"Connecting to {settings.SUBSTRATE_URL}...")
        try:
            counter = async_to_sync(self._sequence)(
                starting_block=starting_block,
                ignore_cursor=options["all"],
                no_skip_limit=options["no_skip_limit"],
            )
        except KeyboardInterrupt:
            logger.info("quitting")
            self.stdout.write(self.style.WARNING("\nInterrupted by user"))
            return
        except (ArascanError, ValueError) as e:
            logger.exception("Backfill stopped", error=str(e))
            raise CommandError(str(e)) from e

        self.stdout.write(
            self.style.SUCCESS(f"Completed: {counter.processed} blocks processed, {counter.total_skipped} skipped"),
        )

    async def _sequence(self, starting_block: int | None, ignore_cursor: bool, no_skip_limit: bool) -> SequenceCounter:
        store = get_record_store()

        async def on_complete(header: BlockHeader, counter: SequenceCounter) -> None:
            await set_last_block(store, header)

        try:
            async with get_ledger() as ledger:
                plan = await plan_backfill(ledger, store, starting_block=starting_block, ignore_cursor=ignore_cursor)
                sequencer = BackfillSequencer(
                    get_correlator(ledger, store),
                    max_skip=settings.MAX_SKIP_BLOCKS,
                    no_skip_limit=no_skip_limit,
                )
                return await sequencer.run(plan.start_hash, plan.until_block_number, on_complete)
        finally:
            await store.close()
