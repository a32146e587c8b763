from __future__ import annotations

from typing import List

from ..normalize.schema import PolicyObjectRecord, Record, section_spec
from ..util.time import parse_directory_time
from .base import CollectContext, raw_str


def _guid(raw_name: str) -> str:
    return raw_name.strip().strip("{}").upper()


class PolicyObjectCollector:
    spec = section_spec("policy_objects")

    def collect(self, ctx: CollectContext) -> List[Record]:
        records: List[Record] = [
            PolicyObjectRecord(
                display_name=raw_str(raw, "displayName"),
                guid=_guid(raw_str(raw, "name", "guid")),
                status=raw.get("flags", raw.get("gpoStatus")),
                created=parse_directory_time(raw.get("whenCreated")),
                modified=parse_directory_time(raw.get("whenChanged")),
            )
            for raw in ctx.source.fetch("policy_objects")
        ]
        return sorted(records, key=lambda r: r.display_name.lower())
