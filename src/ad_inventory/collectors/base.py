from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Protocol, Sequence, Tuple, runtime_checkable

from ..directory.source import DirectorySource, RawRecord
from ..normalize.schema import DomainControllerRecord, Record, SectionSpec
from ..util.errors import CollectorError


@dataclass
class CollectContext:
    """
    Shared state handed to every collector. facts holds the records of each
    section that completed, keyed by section key, so later collectors can
    build on earlier ones. Only the orchestrator writes to it.
    """

    source: DirectorySource
    collected_at: datetime
    tier_groups: Mapping[str, Sequence[str]] = field(default_factory=dict)
    facts: Dict[str, Tuple[Record, ...]] = field(default_factory=dict)

    def domain_controllers(self) -> List[DomainControllerRecord]:
        dcs = self.facts.get("domain_controllers")
        if dcs is None:
            raise CollectorError("domain controller list unavailable")
        return [dc for dc in dcs if isinstance(dc, DomainControllerRecord)]


@runtime_checkable
class Collector(Protocol):
    """
    Collector contract for one report section.
    collect() returns the section's complete record list or raises.
    """

    spec: SectionSpec

    def collect(self, ctx: CollectContext) -> List[Record]:
        ...


def _get(d: RawRecord, *keys: str) -> Any:
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return None


def raw_str(d: RawRecord, *keys: str) -> str:
    value = _get(d, *keys)
    return "" if value is None else str(value).strip()


def raw_list(d: RawRecord, *keys: str) -> Tuple[str, ...]:
    value = _get(d, *keys)
    if value is None:
        return ()
    if isinstance(value, (list, tuple, set)):
        return tuple(str(v) for v in value if str(v).strip())
    text = str(value).strip()
    return (text,) if text else ()
