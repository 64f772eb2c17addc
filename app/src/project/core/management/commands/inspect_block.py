from arascan.exceptions import ArascanError
from arascan.services.inspector import InspectedExtrinsic, inspect_block
from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from project.core.utils import get_ledger


class Command(BaseCommand):
    help = "Print the calls of a block; identity.setIdentity calls also show their display fields."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--num",
            type=int,
            required=True,
            help="Block number to inspect",
        )

    def handle(self, *args, **options) -> None:
        block_number = options["num"]
        try:
            extrinsics = async_to_sync(self._inspect)(block_number)
        except (ArascanError, ValueError) as e:
            raise CommandError(str(e)) from e

        self.stdout.write(f"Block {block_number}: {len(extrinsics)} extrinsics")
        for extrinsic in extrinsics:
            signer = f" from {extrinsic.signer}" if extrinsic.signer else ""
            self.stdout.write(f"  [{extrinsic.index}] {extrinsic.call}{signer}")
            for field, value in (extrinsic.identity or {}).items():
                if value:
                    self.stdout.write(f"      {field}: {value}")

    async def _inspect(self, block_number: int) -> list[InspectedExtrinsic]:
        async with get_ledger() as ledger:
            return await inspect_block(ledger, block_number)
