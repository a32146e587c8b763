from __future__ import annotations

from typing import List

from ..normalize.schema import Record, ServiceAccountRecord, section_spec
from ..util.time import parse_directory_time
from .base import CollectContext, raw_list, raw_str

ACCOUNT_KINDS = {
    "msds-groupmanagedserviceaccount": "gMSA",
    "msds-managedserviceaccount": "MSA",
}


def account_kind(object_class: str) -> str:
    return ACCOUNT_KINDS.get(object_class.strip().lower(), "User")


class ServiceAccountCollector:
    """User accounts carrying SPNs plus standalone and group managed service accounts."""

    spec = section_spec("service_accounts")

    def collect(self, ctx: CollectContext) -> List[Record]:
        records: List[Record] = []
        for raw in ctx.source.fetch("service_accounts"):
            records.append(
                ServiceAccountRecord(
                    name=raw_str(raw, "name"),
                    sam_account_name=raw_str(raw, "sAMAccountName"),
                    account_kind=account_kind(raw_str(raw, "objectClass")),
                    enabled=raw.get("enabled"),
                    service_principal_names=raw_list(raw, "servicePrincipalName"),
                    password_last_set=parse_directory_time(raw.get("pwdLastSet")),
                    last_logon=parse_directory_time(raw.get("lastLogonTimestamp")),
                    description=raw_str(raw, "description"),
                )
            )
        return records
