from __future__ import annotations

from typing import List

from ..normalize.schema import DhcpScopeRecord, Record, section_spec
from ..util.errors import CollectorError
from .base import CollectContext, raw_str


class DhcpScopeCollector:
    spec = section_spec("dhcp")

    def collect(self, ctx: CollectContext) -> List[Record]:
        servers = [raw_str(s, "dNSHostName", "name") for s in ctx.source.fetch("dhcp_servers")]
        servers = [s for s in servers if s]
        if not servers:
            raise CollectorError("No authorized DHCP servers found")
        records: List[Record] = []
        for server in servers:
            for raw in ctx.source.fetch("dhcp_scopes", server=server):
                records.append(
                    DhcpScopeRecord(
                        server=server,
                        scope_id=raw_str(raw, "scopeId"),
                        name=raw_str(raw, "name"),
                        subnet_mask=raw_str(raw, "subnetMask"),
                        start_range=raw_str(raw, "startRange"),
                        end_range=raw_str(raw, "endRange"),
                        lease_duration=raw_str(raw, "leaseDuration"),
                        state=raw_str(raw, "state"),
                    )
                )
        return records
