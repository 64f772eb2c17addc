"""Declarative routing of events and correlations to handler functions."""

from collections import defaultdict
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from arascan.dto import BlockHeader, CallMeta, ChainEvent
from arascan.providers.protocols import LedgerClient
from arascan.services.classification import ExtrinsicClass
from arascan.storage.protocols import RecordStore

WILDCARD = "*"


@dataclass(frozen=True)
class IngestionContext:
    """Collaborators handed to every handler."""

    ledger: LedgerClient
    store: RecordStore


@dataclass(frozen=True)
class Updater:
    """An extrinsic whose value is attached to the other records of its block (the timestamp inherent)."""

    index: int
    call: CallMeta
    value: Any


@dataclass(frozen=True)
class Target:
    """
    An extrinsic whose record may be patched once the block's updater is known.

    `record` is the store filter of the record created for the extrinsic.
    """

    index: int
    kind: ExtrinsicClass
    call: CallMeta
    signer: str | None = None
    nonce: int | None = None
    record: Mapping[str, Any] = field(default_factory=dict)
    updater: Updater | None = None


@dataclass(frozen=True)
class Correlation:
    """One (source, updater) pair; the source is either an event or a target extrinsic."""

    header: BlockHeader
    updater: Updater
    event: ChainEvent | None = None
    target: Target | None = None


EventHandler = Callable[[IngestionContext, BlockHeader, ChainEvent], Awaitable[None]]
CorrelationHandler = Callable[[IngestionContext, Correlation], Awaitable[None]]


def correlation_key(section: str, method: str, updater: CallMeta | None = None) -> str:
    """`balances__Transfer__timestamp__set`, or the `balances__Transfer__*` wildcard when no updater is given."""
    if updater is None:
        return f"{section}__{method}__{WILDCARD}"
    return f"{section}__{method}__{updater.section}__{updater.method}"


@dataclass(frozen=True)
class DispatchTable:
    """
    Two immutable routing tables.

    `events` is keyed by a module name or a (module, method) pair and is
    consulted once per event during the block scan. `correlations` is keyed by
    `correlation_key()` and is consulted once per (source, updater) pair after
    the scan.
    """

    events: Mapping[str | tuple[str, str], tuple[EventHandler, ...]]
    correlations: Mapping[str, tuple[CorrelationHandler, ...]]

    def event_handlers(self, section: str, method: str) -> tuple[EventHandler, ...]:
        return self.events.get((section, method), ()) + self.events.get(section, ())

    def correlation_handlers(self, section: str, method: str, updater: CallMeta) -> tuple[CorrelationHandler, ...]:
        return self.correlations.get(correlation_key(section, method, updater), ()) + self.correlations.get(
            correlation_key(section, method),
            (),
        )


class DispatchTableBuilder:
    """
    Collects handler registrations and freezes them into a `DispatchTable`.

    Examples:
        builder = DispatchTableBuilder()

        @builder.on_event("system", "NewAccount")
        async def record_new_account(ctx, header, event): ...

        @builder.on_correlation("balances", "Transfer")
        async def refresh_accounts(ctx, correlation): ...

        table = builder.build()
    """

    def __init__(self) -> None:
        self._events: dict[str | tuple[str, str], list[EventHandler]] = defaultdict(list)
        self._correlations: dict[str, list[CorrelationHandler]] = defaultdict(list)

    def on_event(self, section: str, method: str | None = None) -> Callable[[EventHandler], EventHandler]:
        """Register a handler for every event of `section`, or only for `section.method`."""
        key = section if method is None else (section, method)

        def decorator(handler: EventHandler) -> EventHandler:
            self._events[key].append(handler)
            return handler

        return decorator

    def on_correlation(
        self,
        section: str,
        method: str,
        updater: CallMeta | None = None,
    ) -> Callable[[CorrelationHandler], CorrelationHandler]:
        """Register a handler for a source paired with `updater`, or with any updater when None."""
        key = correlation_key(section, method, updater)

        def decorator(handler: CorrelationHandler) -> CorrelationHandler:
            self._correlations[key].append(handler)
            return handler

        return decorator

    def build(self) -> DispatchTable:
        return DispatchTable(
            events=MappingProxyType({key: tuple(handlers) for key, handlers in self._events.items()}),
            correlations=MappingProxyType({key: tuple(handlers) for key, handlers in self._correlations.items()}),
        )
