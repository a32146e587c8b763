from __future__ import annotations

from typing import List

from ..normalize.schema import Record, ReplicationRecord, section_spec
from ..util.errors import CollectorError, DataSourceError
from ..util.time import parse_directory_time
from .base import CollectContext, raw_str


class ReplicationCollector:
    spec = section_spec("replication")

    def collect(self, ctx: CollectContext) -> List[Record]:
        records: List[Record] = []
        for dc in ctx.domain_controllers():
            try:
                rows = ctx.source.fetch("replication", server=dc.host)
            except DataSourceError as e:
                # One unreadable DC invalidates the whole section.
                raise CollectorError(f"Replication metadata unavailable for {dc.host}: {e}") from e
            for raw in rows:
                records.append(
                    ReplicationRecord(
                        server=dc.host,
                        partner=raw_str(raw, "partner", "partnerServer"),
                        naming_context=raw_str(raw, "namingContext", "partition"),
                        last_success=parse_directory_time(raw.get("lastSuccess")),
                        last_attempt=parse_directory_time(raw.get("lastAttempt")),
                        consecutive_failures=raw.get("consecutiveFailures"),
                        collected_at=ctx.collected_at,
                    )
                )
        return records
