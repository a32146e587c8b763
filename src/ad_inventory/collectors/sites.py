from __future__ import annotations

from typing import List

from ..normalize.schema import Record, SiteRecord, section_spec
from .base import CollectContext, raw_list, raw_str


class SiteCollector:
    spec = section_spec("sites")

    def collect(self, ctx: CollectContext) -> List[Record]:
        return [
            SiteRecord(
                name=raw_str(raw, "name"),
                location=raw_str(raw, "location", "description"),
                subnets=raw_list(raw, "subnets"),
                domain_controllers=raw_list(raw, "servers", "domainControllers"),
            )
            for raw in ctx.source.fetch("sites")
        ]
