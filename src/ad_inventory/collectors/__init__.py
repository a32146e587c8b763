from __future__ import annotations

from typing import List, Mapping, Optional, Sequence

from .accounts import ServiceAccountCollector
from .base import CollectContext, Collector
from .controllers import DomainControllerCollector
from .dhcp import DhcpScopeCollector
from .dns import DnsZoneCollector
from .forest import ForestCollector, FsmoCollector
from .mail import MailServerCollector
from .policies import PolicyObjectCollector
from .replication import ReplicationCollector
from .sites import SiteCollector
from .tiers import DEFAULT_TIER_GROUPS, TierCollector, aggregate_tier

__all__ = [
    "CollectContext",
    "Collector",
    "DEFAULT_TIER_GROUPS",
    "aggregate_tier",
    "default_collectors",
]


def default_collectors(tier_groups: Optional[Mapping[str, Sequence[str]]] = None) -> List[Collector]:
    """The fixed collection sequence, one collector per report section."""
    tier_groups = tier_groups or {}
    return [
        ForestCollector(),
        DomainControllerCollector(),
        ReplicationCollector(),
        SiteCollector(),
        DnsZoneCollector(),
        DhcpScopeCollector(),
        TierCollector("Tier0", tier_groups.get("Tier0")),
        TierCollector("Tier1", tier_groups.get("Tier1")),
        TierCollector("Tier2", tier_groups.get("Tier2")),
        ServiceAccountCollector(),
        MailServerCollector(),
        PolicyObjectCollector(),
        FsmoCollector(),
    ]
