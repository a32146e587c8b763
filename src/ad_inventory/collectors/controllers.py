from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from ..logging import get_logger
from ..normalize.schema import DomainControllerRecord, Record, section_spec
from ..util.errors import DataSourceError
from .base import CollectContext, raw_str

LOG = get_logger(__name__)


def _fsmo_by_host(ctx: CollectContext) -> Optional[Dict[str, Tuple[str, ...]]]:
    try:
        rows = ctx.source.fetch("fsmo")
    except DataSourceError as e:
        LOG.warning("FSMO role holders unavailable", extra={"section": "domain_controllers", "error": str(e)})
        return None
    out: Dict[str, List[str]] = {}
    for r in rows:
        holder = raw_str(r, "owner", "holder").lower()
        if holder:
            out.setdefault(holder, []).append(raw_str(r, "role"))
    return {host: tuple(roles) for host, roles in out.items()}


def _dns_service_state(ctx: CollectContext, host: str) -> str:
    try:
        rows = ctx.source.fetch("dns_service", server=host)
    except DataSourceError as e:
        return f"Error: {e}"
    if not rows:
        return "Unknown"
    return raw_str(rows[0], "state", "status") or "Unknown"


class DomainControllerCollector:
    spec = section_spec("domain_controllers")

    def collect(self, ctx: CollectContext) -> List[Record]:
        rows = ctx.source.fetch("domain_controllers")
        fsmo = _fsmo_by_host(ctx) if rows else {}
        records: List[Record] = []
        for raw in rows:
            host = raw_str(raw, "hostName", "dNSHostName", "name")
            roles = None if fsmo is None else fsmo.get(host.lower(), ())
            records.append(
                DomainControllerRecord(
                    host=host,
                    site=raw_str(raw, "site"),
                    ip_address=raw_str(raw, "ipv4Address", "ipAddress"),
                    os_version=raw_str(raw, "operatingSystem", "osVersion"),
                    is_global_catalog=raw.get("isGlobalCatalog"),
                    is_read_only=raw.get("isReadOnly"),
                    fsmo_roles=roles,
                    dns_service_state=_dns_service_state(ctx, host),
                )
            )
        return records
