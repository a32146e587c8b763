from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple, Type

from ..util.time import format_date
from .decode import decode_functional_level, decode_gpo_flags, decode_mail_server_roles, decode_mail_server_version
from .health import (
    Cell,
    HealthStatus,
    classify_dhcp_state,
    classify_failure_count,
    classify_flag,
    classify_gpo_status,
    classify_replication_currency,
    classify_service_state,
    replication_currency_status,
)

__all__ = ["Cell", "HealthStatus"]

NOT_APPLICABLE = "N/A"
LIST_SEPARATOR = "; "
ACCOUNT_TYPE_USER = "User"
ACCOUNT_TYPE_UNKNOWN = "Unknown"
TIERS: Tuple[str, ...] = ("Tier0", "Tier1", "Tier2")


def _join(values: Sequence[Any]) -> str:
    return LIST_SEPARATOR.join(str(v) for v in values if str(v).strip())


def _plain(value: Any) -> Cell:
    return Cell("" if value is None else str(value))


class Record:
    """
    Base for every inventory record. Subclasses are frozen dataclasses holding
    raw collected values; cells() derives display text and health on demand.
    """

    FIELDS: ClassVar[Tuple[str, ...]] = ()

    def cells(self) -> Dict[str, Cell]:
        raise NotImplementedError

    def to_row(self) -> Dict[str, str]:
        return {name: cell.text for name, cell in self.cells().items()}


@dataclass(frozen=True)
class ForestRecord(Record):
    FIELDS: ClassVar[Tuple[str, ...]] = (
        "forestName",
        "rootDomain",
        "forestMode",
        "domainMode",
        "domains",
        "globalCatalogs",
        "siteCount",
    )

    forest_name: str
    root_domain: str
    forest_mode: Any
    domain_mode: Any
    domains: Tuple[str, ...] = ()
    global_catalogs: Tuple[str, ...] = ()
    site_count: int = 0

    def cells(self) -> Dict[str, Cell]:
        return {
            "forestName": _plain(self.forest_name),
            "rootDomain": _plain(self.root_domain),
            "forestMode": _plain(decode_functional_level(self.forest_mode)),
            "domainMode": _plain(decode_functional_level(self.domain_mode)),
            "domains": _plain(_join(self.domains)),
            "globalCatalogs": _plain(_join(self.global_catalogs)),
            "siteCount": _plain(self.site_count),
        }


@dataclass(frozen=True)
class DomainControllerRecord(Record):
    FIELDS: ClassVar[Tuple[str, ...]] = (
        "host",
        "site",
        "ipAddress",
        "osVersion",
        "isGlobalCatalog",
        "isReadOnly",
        "fsmoRoles",
        "dnsServiceStatus",
    )

    host: str
    site: str
    ip_address: str
    os_version: str
    is_global_catalog: Any
    is_read_only: Any
    # None when the role holders could not be resolved
    fsmo_roles: Optional[Tuple[str, ...]]
    dns_service_state: str

    def cells(self) -> Dict[str, Cell]:
        if self.fsmo_roles is None:
            fsmo = Cell(ACCOUNT_TYPE_UNKNOWN, HealthStatus.UNKNOWN)
        else:
            fsmo = _plain(_join(self.fsmo_roles))
        return {
            "host": _plain(self.host),
            "site": _plain(self.site),
            "ipAddress": _plain(self.ip_address),
            "osVersion": _plain(self.os_version),
            "isGlobalCatalog": classify_flag(self.is_global_catalog, informational=True),
            "isReadOnly": classify_flag(self.is_read_only, informational=True),
            "fsmoRoles": fsmo,
            "dnsServiceStatus": classify_service_state(self.dns_service_state),
        }


@dataclass(frozen=True)
class ReplicationRecord(Record):
    FIELDS: ClassVar[Tuple[str, ...]] = (
        "server",
        "partner",
        "namingContext",
        "lastSuccess",
        "lastAttempt",
        "consecutiveFailures",
        "currencyStatus",
    )

    server: str
    partner: str
    naming_context: str
    last_success: Optional[datetime]
    last_attempt: Optional[datetime]
    consecutive_failures: Any
    collected_at: datetime

    @property
    def currency(self) -> HealthStatus:
        return replication_currency_status(self.last_success, self.collected_at)

    def cells(self) -> Dict[str, Cell]:
        currency = classify_replication_currency(self.last_success, self.collected_at)
        return {
            "server": _plain(self.server),
            "partner": _plain(self.partner),
            "namingContext": _plain(self.naming_context),
            "lastSuccess": currency,
            "lastAttempt": _plain(format_date(self.last_attempt)),
            "consecutiveFailures": classify_failure_count(self.consecutive_failures),
            "currencyStatus": Cell(self.currency.value, self.currency),
        }


@dataclass(frozen=True)
class SiteRecord(Record):
    FIELDS: ClassVar[Tuple[str, ...]] = ("name", "location", "subnets", "domainControllers")

    name: str
    location: str
    subnets: Tuple[str, ...] = ()
    domain_controllers: Tuple[str, ...] = ()

    def cells(self) -> Dict[str, Cell]:
        return {
            "name": _plain(self.name),
            "location": _plain(self.location),
            "subnets": _plain(_join(self.subnets)),
            "domainControllers": _plain(_join(self.domain_controllers)),
        }


@dataclass(frozen=True)
class DnsZoneRecord(Record):
    FIELDS: ClassVar[Tuple[str, ...]] = (
        "zoneName",
        "server",
        "zoneType",
        "isDsIntegrated",
        "isReverseLookupZone",
        "dynamicUpdate",
    )

    zone_name: str
    server: str
    zone_type: str
    is_ds_integrated: Any
    is_reverse_lookup_zone: Any
    dynamic_update: str

    def cells(self) -> Dict[str, Cell]:
        return {
            "zoneName": _plain(self.zone_name),
            "server": _plain(self.server),
            "zoneType": _plain(self.zone_type),
            "isDsIntegrated": classify_flag(self.is_ds_integrated, informational=True),
            "isReverseLookupZone": classify_flag(self.is_reverse_lookup_zone, informational=True),
            "dynamicUpdate": _plain(self.dynamic_update),
        }


@dataclass(frozen=True)
class DhcpScopeRecord(Record):
    FIELDS: ClassVar[Tuple[str, ...]] = (
        "server",
        "scopeId",
        "name",
        "subnetMask",
        "startRange",
        "endRange",
        "leaseDuration",
        "state",
    )

    server: str
    scope_id: str
    name: str
    subnet_mask: str
    start_range: str
    end_range: str
    lease_duration: str
    state: str

    def cells(self) -> Dict[str, Cell]:
        return {
            "server": _plain(self.server),
            "scopeId": _plain(self.scope_id),
            "name": _plain(self.name),
            "subnetMask": _plain(self.subnet_mask),
            "startRange": _plain(self.start_range),
            "endRange": _plain(self.end_range),
            "leaseDuration": _plain(self.lease_duration),
            "state": classify_dhcp_state(self.state),
        }


@dataclass(frozen=True)
class TierAccountEntry(Record):
    """
    One resolved member of a privileged group.

    Only user principals carry enabled / lastLogon / passwordLastSet; every
    other account type renders N/A for those three fields.
    """

    FIELDS: ClassVar[Tuple[str, ...]] = (
        "tier",
        "groupName",
        "memberName",
        "accountType",
        "enabled",
        "lastLogon",
        "passwordLastSet",
        "note",
    )

    tier: str
    group_name: str
    member_name: str
    account_type: str
    enabled: Any = None
    last_logon: Optional[datetime] = None
    password_last_set: Optional[datetime] = None
    note: str = ""

    def __post_init__(self) -> None:
        if self.tier not in TIERS:
            raise ValueError(f"Unknown tier: {self.tier}")

    @property
    def is_user(self) -> bool:
        return self.account_type == ACCOUNT_TYPE_USER

    def cells(self) -> Dict[str, Cell]:
        if self.is_user:
            enabled = classify_flag(self.enabled)
            last_logon = _plain(format_date(self.last_logon))
            password_last_set = _plain(format_date(self.password_last_set))
        else:
            enabled = last_logon = password_last_set = Cell(NOT_APPLICABLE)
        if self.account_type == ACCOUNT_TYPE_UNKNOWN:
            account_type = Cell(self.account_type, HealthStatus.UNKNOWN)
        else:
            account_type = _plain(self.account_type)
        return {
            "tier": _plain(self.tier),
            "groupName": _plain(self.group_name),
            "memberName": _plain(self.member_name),
            "accountType": account_type,
            "enabled": enabled,
            "lastLogon": last_logon,
            "passwordLastSet": password_last_set,
            "note": _plain(self.note),
        }


@dataclass(frozen=True)
class ServiceAccountRecord(Record):
    FIELDS: ClassVar[Tuple[str, ...]] = (
        "name",
        "samAccountName",
        "accountKind",
        "enabled",
        "servicePrincipalNames",
        "passwordLastSet",
        "lastLogon",
        "description",
    )

    name: str
    sam_account_name: str
    account_kind: str
    enabled: Any
    service_principal_names: Tuple[str, ...] = ()
    password_last_set: Optional[datetime] = None
    last_logon: Optional[datetime] = None
    description: str = ""

    def cells(self) -> Dict[str, Cell]:
        return {
            "name": _plain(self.name),
            "samAccountName": _plain(self.sam_account_name),
            "accountKind": _plain(self.account_kind),
            "enabled": classify_flag(self.enabled),
            "servicePrincipalNames": _plain(_join(self.service_principal_names)),
            "passwordLastSet": _plain(format_date(self.password_last_set)),
            "lastLogon": _plain(format_date(self.last_logon)),
            "description": _plain(self.description),
        }


@dataclass(frozen=True)
class MailServerRecord(Record):
    FIELDS: ClassVar[Tuple[str, ...]] = ("name", "fqdn", "version", "roles", "site")

    name: str
    fqdn: str
    version: Any
    roles: Any
    site: str

    def cells(self) -> Dict[str, Cell]:
        return {
            "name": _plain(self.name),
            "fqdn": _plain(self.fqdn),
            "version": _plain(decode_mail_server_version(self.version)),
            "roles": _plain(decode_mail_server_roles(self.roles)),
            "site": _plain(self.site),
        }


@dataclass(frozen=True)
class PolicyObjectRecord(Record):
    FIELDS: ClassVar[Tuple[str, ...]] = ("displayName", "guid", "gpoStatus", "created", "modified")

    display_name: str
    guid: str
    # Either the raw flags integer or an already-decoded status label
    status: Any
    created: Optional[datetime] = None
    modified: Optional[datetime] = None

    def cells(self) -> Dict[str, Cell]:
        return {
            "displayName": _plain(self.display_name),
            "guid": _plain(self.guid),
            "gpoStatus": classify_gpo_status(decode_gpo_flags(self.status)),
            "created": _plain(format_date(self.created)),
            "modified": _plain(format_date(self.modified)),
        }


@dataclass(frozen=True)
class FsmoRoleRecord(Record):
    FIELDS: ClassVar[Tuple[str, ...]] = ("role", "holder")

    role: str
    holder: str

    def cells(self) -> Dict[str, Cell]:
        return {"role": _plain(self.role), "holder": _plain(self.holder)}


@dataclass(frozen=True)
class SectionSpec:
    ordinal: int
    key: str
    title: str
    record_type: Type[Record]
    dataset: Optional[str] = None
    empty_message: str = "No data returned."

    @property
    def fields(self) -> Tuple[str, ...]:
        return self.record_type.FIELDS


SECTION_SPECS: Tuple[SectionSpec, ...] = (
    SectionSpec(1, "forest", "Forest Information", ForestRecord),
    SectionSpec(2, "domain_controllers", "Domain Controllers", DomainControllerRecord, "DomainControllers",
                "No domain controllers returned."),
    SectionSpec(3, "replication", "Replication Status", ReplicationRecord, "Replication",
                "No replication partners reported."),
    SectionSpec(4, "sites", "Sites and Subnets", SiteRecord, "Sites", "No sites returned."),
    SectionSpec(5, "dns", "DNS Zones", DnsZoneRecord, "DNSZones", "No DNS zones returned."),
    SectionSpec(6, "dhcp", "DHCP Scopes", DhcpScopeRecord, "DHCPScopes", "No DHCP scopes returned."),
    SectionSpec(7, "tier0", "Tier 0 Privileged Accounts", TierAccountEntry, "Tier0Accounts",
                "Configured Tier 0 groups have no members."),
    SectionSpec(8, "tier1", "Tier 1 Privileged Accounts", TierAccountEntry, "Tier1Accounts",
                "Configured Tier 1 groups have no members."),
    SectionSpec(9, "tier2", "Tier 2 Privileged Accounts", TierAccountEntry, "Tier2Accounts",
                "Configured Tier 2 groups have no members."),
    SectionSpec(10, "service_accounts", "Service Accounts", ServiceAccountRecord, "ServiceAccounts",
                "No service accounts found."),
    SectionSpec(11, "mail_servers", "Exchange Servers", MailServerRecord, "MailServers",
                "No Exchange servers found."),
    SectionSpec(12, "policy_objects", "Group Policy Objects", PolicyObjectRecord, "GroupPolicies",
                "No group policy objects found."),
    SectionSpec(13, "fsmo", "FSMO Role Holders", FsmoRoleRecord),
)

SECTION_KEYS: Tuple[str, ...] = tuple(spec.key for spec in SECTION_SPECS)
EXPORT_DATASETS: Tuple[str, ...] = tuple(spec.dataset for spec in SECTION_SPECS if spec.dataset)


def section_spec(key: str) -> SectionSpec:
    for spec in SECTION_SPECS:
        if spec.key == key:
            return spec
    raise KeyError(f"Unknown section: {key}")


class SectionStatus(str, Enum):
    OK = "OK"
    EMPTY = "EMPTY"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Dataset:
    name: str
    fields: Tuple[str, ...]
    rows: Tuple[Dict[str, str], ...]


@dataclass(frozen=True)
class Section:
    """
    One report section. Atomic: either the collector's full record set, an
    explicit empty marker, or a failure note.
    """

    spec: SectionSpec
    status: SectionStatus
    records: Tuple[Record, ...] = ()
    note: Optional[str] = None

    def __post_init__(self) -> None:
        for rec in self.records:
            if not isinstance(rec, self.spec.record_type):
                raise TypeError(
                    f"Section {self.spec.key} expects {self.spec.record_type.__name__}, got {type(rec).__name__}"
                )
        if self.status != SectionStatus.OK and self.records:
            raise ValueError(f"Section {self.spec.key} with status {self.status.value} cannot carry records")

    @classmethod
    def from_records(cls, spec: SectionSpec, records: Sequence[Record]) -> Section:
        if not records:
            return cls(spec=spec, status=SectionStatus.EMPTY, note=spec.empty_message)
        return cls(spec=spec, status=SectionStatus.OK, records=tuple(records))

    @classmethod
    def failed(cls, spec: SectionSpec, note: str) -> Section:
        return cls(spec=spec, status=SectionStatus.FAILED, note=note)

    @property
    def ordinal(self) -> int:
        return self.spec.ordinal

    @property
    def key(self) -> str:
        return self.spec.key

    @property
    def title(self) -> str:
        return self.spec.title

    def cell_rows(self) -> List[Dict[str, Cell]]:
        return [rec.cells() for rec in self.records]

    def dataset(self) -> Optional[Dataset]:
        if not self.spec.dataset:
            return None
        return Dataset(
            name=self.spec.dataset,
            fields=self.spec.fields,
            rows=tuple(rec.to_row() for rec in self.records),
        )


@dataclass(frozen=True)
class ReportDocument:
    generated_at: datetime
    run_timestamp: str
    output_root: Path
    sections: Tuple[Section, ...]
    metadata: Mapping[str, str] = field(default_factory=dict)

    def section(self, key: str) -> Section:
        for sec in self.sections:
            if sec.key == key:
                return sec
        raise KeyError(f"Unknown section: {key}")

    def datasets(self) -> List[Dataset]:
        out: List[Dataset] = []
        for sec in self.sections:
            ds = sec.dataset()
            if ds is not None:
                out.append(ds)
        return out

    def counts_by_status(self) -> Dict[str, int]:
        out: Dict[str, int] = {s.value: 0 for s in SectionStatus}
        for sec in self.sections:
            out[sec.status.value] += 1
        return out


@dataclass(frozen=True)
class OutputPaths:
    root: Path
    logs_dir: Path
    report_html: Path
    workbook: Path
    run_summary_json: Path
    debug_log: Path
    run_timestamp: str

    def dataset_csv(self, dataset: str) -> Path:
        return self.root / f"{dataset}_{self.run_timestamp}.csv"


def resolve_output_paths(outdir: Path, run_timestamp: str, report_name: str) -> OutputPaths:
    root = outdir
    logs_dir = root / "logs"
    return OutputPaths(
        root=root,
        logs_dir=logs_dir,
        report_html=root / f"{report_name}_{run_timestamp}.html",
        workbook=root / f"{report_name}_{run_timestamp}.xlsx",
        run_summary_json=root / "run_summary.json",
        debug_log=logs_dir / "debug.log",
        run_timestamp=run_timestamp,
    )
