from __future__ import annotations

from typing import List

from ..normalize.schema import ForestRecord, FsmoRoleRecord, Record, section_spec
from .base import CollectContext, raw_list, raw_str

FSMO_ROLE_ORDER = (
    "Schema Master",
    "Domain Naming Master",
    "PDC Emulator",
    "RID Master",
    "Infrastructure Master",
)


class ForestCollector:
    spec = section_spec("forest")

    def collect(self, ctx: CollectContext) -> List[Record]:
        rows = ctx.source.fetch("forest")
        if not rows:
            return []
        raw = rows[0]
        site_count = raw.get("siteCount")
        if site_count is None:
            site_count = len(raw_list(raw, "sites"))
        return [
            ForestRecord(
                forest_name=raw_str(raw, "name", "forestName"),
                root_domain=raw_str(raw, "rootDomain"),
                forest_mode=raw.get("forestMode"),
                domain_mode=raw.get("domainMode"),
                domains=raw_list(raw, "domains"),
                global_catalogs=raw_list(raw, "globalCatalogs"),
                site_count=int(site_count),
            )
        ]


def _role_rank(role: str) -> int:
    try:
        return FSMO_ROLE_ORDER.index(role)
    except ValueError:
        return len(FSMO_ROLE_ORDER)


class FsmoCollector:
    spec = section_spec("fsmo")

    def collect(self, ctx: CollectContext) -> List[Record]:
        rows = ctx.source.fetch("fsmo")
        records = [FsmoRoleRecord(role=raw_str(r, "role"), holder=raw_str(r, "owner", "holder")) for r in rows]
        return sorted(records, key=lambda r: _role_rank(r.role))
