from __future__ import annotations

from typing import List

from ..normalize.schema import MailServerRecord, Record, section_spec
from .base import CollectContext, raw_str


class MailServerCollector:
    spec = section_spec("mail_servers")

    def collect(self, ctx: CollectContext) -> List[Record]:
        return [
            MailServerRecord(
                name=raw_str(raw, "name"),
                fqdn=raw_str(raw, "fqdn", "networkAddress"),
                version=raw.get("serialNumber", raw.get("version")),
                roles=raw.get("msExchCurrentServerRoles", raw.get("roles")),
                site=raw_str(raw, "site"),
            )
            for raw in ctx.source.fetch("mail_servers")
        ]
