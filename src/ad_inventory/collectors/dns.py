from __future__ import annotations

from typing import List

from ..logging import get_logger
from ..normalize.schema import DnsZoneRecord, Record, section_spec
from ..util.errors import CollectorError, DataSourceError
from .base import CollectContext, raw_str

LOG = get_logger(__name__)


class DnsZoneCollector:
    """Lists zones from the first domain controller that answers."""

    spec = section_spec("dns")

    def collect(self, ctx: CollectContext) -> List[Record]:
        dcs = ctx.domain_controllers()
        if not dcs:
            return []
        errors: List[str] = []
        for dc in dcs:
            try:
                rows = ctx.source.fetch("dns_zones", server=dc.host)
            except DataSourceError as e:
                LOG.info("DNS zone query failed; trying next DC", extra={"section": "dns", "server": dc.host})
                errors.append(f"{dc.host}: {e}")
                continue
            return [
                DnsZoneRecord(
                    zone_name=raw_str(raw, "zoneName", "name"),
                    server=dc.host,
                    zone_type=raw_str(raw, "zoneType"),
                    is_ds_integrated=raw.get("isDsIntegrated"),
                    is_reverse_lookup_zone=raw.get("isReverseLookupZone"),
                    dynamic_update=raw_str(raw, "dynamicUpdate"),
                )
                for raw in rows
            ]
        raise CollectorError("DNS zones unavailable from every domain controller: " + "; ".join(errors))
