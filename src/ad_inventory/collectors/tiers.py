"""
Privileged-account aggregation by tier.

Each tier is a configured, ordered list of well-known group names. Members are
listed one entry per (group, member) pair, direct membership only, in group
order then member order. A member found in groups of two tiers shows up in
both tiers.
"""
from __future__ import annotations

from typing import Dict, List, Mapping, Sequence, Tuple

from ..directory.source import DirectorySource, RawRecord
from ..logging import get_logger
from ..normalize.schema import (
    ACCOUNT_TYPE_UNKNOWN,
    ACCOUNT_TYPE_USER,
    NOT_APPLICABLE,
    Record,
    TierAccountEntry,
    section_spec,
)
from ..util.errors import DataSourceError
from ..util.time import parse_directory_time
from .base import CollectContext, raw_str

LOG = get_logger(__name__)

DEFAULT_TIER_GROUPS: Dict[str, Tuple[str, ...]] = {
    "Tier0": (
        "Enterprise Admins",
        "Domain Admins",
        "Schema Admins",
        "Administrators",
        "Account Operators",
        "Backup Operators",
        "Server Operators",
        "Print Operators",
        "Domain Controllers",
        "Read-only Domain Controllers",
        "Group Policy Creator Owners",
        "Key Admins",
        "Enterprise Key Admins",
        "DnsAdmins",
    ),
    "Tier1": (
        "Server Admins",
        "Tier1 Admins",
        "Hyper-V Administrators",
        "Remote Management Users",
        "DHCP Administrators",
        "Exchange Organization Administrators",
    ),
    "Tier2": (
        "Tier2 Admins",
        "Helpdesk",
        "Desktop Admins",
        "Workstation Admins",
    ),
}

NONE_FOUND_GROUP = "(none found)"
USER_OBJECT_CLASSES = {"user", "inetorgperson"}


def _tier_number(tier: str) -> str:
    return tier[len("Tier"):]


def none_found_entry(tier: str) -> TierAccountEntry:
    return TierAccountEntry(
        tier=tier,
        group_name=NONE_FOUND_GROUP,
        member_name=f"No configured Tier {_tier_number(tier)} groups exist - customize tier group configuration",
        account_type=NOT_APPLICABLE,
    )


def _resolve_user(source: DirectorySource, tier: str, group_name: str, member: RawRecord) -> TierAccountEntry:
    member_name = raw_str(member, "name", "sAMAccountName")
    dn = raw_str(member, "distinguishedName", "dn")
    try:
        rows = source.fetch("user", dn=dn)
        if not rows:
            raise DataSourceError(f"user {dn or member_name} not found")
    except DataSourceError as e:
        LOG.warning(
            "Unable to resolve tier member",
            extra={"section": tier.lower(), "group": group_name, "member": member_name, "error": str(e)},
        )
        return TierAccountEntry(
            tier=tier,
            group_name=group_name,
            member_name=member_name,
            account_type=ACCOUNT_TYPE_UNKNOWN,
            note=f"Error: {e}",
        )
    user = rows[0]
    return TierAccountEntry(
        tier=tier,
        group_name=group_name,
        member_name=member_name,
        account_type=ACCOUNT_TYPE_USER,
        enabled=user.get("enabled"),
        last_logon=parse_directory_time(user.get("lastLogonTimestamp", user.get("lastLogon"))),
        password_last_set=parse_directory_time(user.get("pwdLastSet")),
    )


def aggregate_tier(source: DirectorySource, tier: str, groups: Sequence[str]) -> List[TierAccountEntry]:
    """
    Resolve every configured group of one tier into TierAccountEntry records.

    Groups that do not exist are skipped. When none of them exist the result
    is a single explanatory entry instead of an empty list.
    """
    entries: List[TierAccountEntry] = []
    found_any = False
    for group_name in groups:
        matches = source.fetch("group", name=group_name)
        if not matches:
            LOG.debug("Tier group not present", extra={"section": tier.lower(), "group": group_name})
            continue
        found_any = True
        group = matches[0]
        group_dn = raw_str(group, "distinguishedName", "dn")
        display = raw_str(group, "name") or group_name
        for member in source.fetch("group_members", dn=group_dn):
            object_class = raw_str(member, "objectClass") or "unknown"
            if object_class.lower() in USER_OBJECT_CLASSES:
                entries.append(_resolve_user(source, tier, display, member))
            else:
                entries.append(
                    TierAccountEntry(
                        tier=tier,
                        group_name=display,
                        member_name=raw_str(member, "name", "sAMAccountName"),
                        account_type=object_class,
                    )
                )
    if not found_any:
        return [none_found_entry(tier)]
    return entries


class TierCollector:
    def __init__(self, tier: str, groups: Sequence[str] | None = None) -> None:
        self.tier = tier
        self.spec = section_spec(tier.lower())
        self._groups = groups

    def _groups_for(self, ctx: CollectContext) -> Sequence[str]:
        if self._groups is not None:
            return self._groups
        configured: Mapping[str, Sequence[str]] = ctx.tier_groups or {}
        return configured.get(self.tier) or DEFAULT_TIER_GROUPS[self.tier]

    def collect(self, ctx: CollectContext) -> List[Record]:
        return list(aggregate_tier(ctx.source, self.tier, self._groups_for(ctx)))
