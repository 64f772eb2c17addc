"""Extrinsic classification rules."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType

from arascan.dto import CallMeta


class ExtrinsicClass(StrEnum):
    TRANSFER = "transfer"
    IDENTITY = "identity"
    TIMESTAMP = "timestamp"
    IGNORED = "ignored"
    OTHER = "other"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClassificationTable:
    """
    Immutable mapping from decoded calls to extrinsic classes.

    Exact (section, method) rules win over section-wide rules; anything
    unmatched is `OTHER`, and an undecodable call is `UNKNOWN`.
    """

    calls: Mapping[tuple[str, str], ExtrinsicClass] = field(default_factory=lambda: MappingProxyType({}))
    sections: Mapping[str, ExtrinsicClass] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        object.__setattr__(self, "calls", MappingProxyType(dict(self.calls)))
        object.__setattr__(self, "sections", MappingProxyType(dict(self.sections)))

    def classify(self, call: CallMeta | None) -> ExtrinsicClass:
        if call is None:
            return ExtrinsicClass.UNKNOWN
        exact = self.calls.get((call.section, call.method))
        if exact is not None:
            return exact
        return self.sections.get(call.section, ExtrinsicClass.OTHER)


def default_classification() -> ClassificationTable:
    return ClassificationTable(
        calls={
            ("balances", "transfer"): ExtrinsicClass.TRANSFER,
            ("balances", "transferKeepAlive"): ExtrinsicClass.TRANSFER,
            ("balances", "forceTransfer"): ExtrinsicClass.TRANSFER,
            ("timestamp", "set"): ExtrinsicClass.TIMESTAMP,
        },
        sections={
            "identity": ExtrinsicClass.IDENTITY,
            # Block author inherent, carries nothing worth indexing.
            "authorship": ExtrinsicClass.IGNORED,
        },
    )
