from __future__ import annotations

import pytest

from ad_inventory.collectors import default_collectors
from ad_inventory.collectors.accounts import ServiceAccountCollector, account_kind
from ad_inventory.collectors.controllers import DomainControllerCollector
from ad_inventory.collectors.dhcp import DhcpScopeCollector
from ad_inventory.collectors.dns import DnsZoneCollector
from ad_inventory.collectors.forest import ForestCollector, FsmoCollector
from ad_inventory.collectors.mail import MailServerCollector
from ad_inventory.collectors.policies import PolicyObjectCollector
from ad_inventory.collectors.replication import ReplicationCollector
from ad_inventory.normalize.schema import SECTION_KEYS, HealthStatus
from ad_inventory.util.errors import CollectorError, DataSourceError


def _with_dcs(ctx):
    ctx.facts["domain_controllers"] = tuple(DomainControllerCollector().collect(ctx))
    return ctx


def test_default_collectors_follow_section_order() -> None:
    assert tuple(c.spec.key for c in default_collectors()) == SECTION_KEYS


def test_forest(make_ctx, snapshot_data) -> None:
    (rec,) = ForestCollector().collect(make_ctx(snapshot_data))
    row = rec.to_row()
    assert row["forestName"] == "corp.example.com"
    assert row["forestMode"] == "Windows2016"
    assert row["siteCount"] == "2"


def test_domain_controllers_join_fsmo_and_dns_state(make_ctx, snapshot_data) -> None:
    dc01, dc02 = DomainControllerCollector().collect(make_ctx(snapshot_data))
    assert dc01.fsmo_roles == ("Schema Master", "Domain Naming Master", "PDC Emulator", "RID Master")
    assert dc02.fsmo_roles == ("Infrastructure Master",)
    assert dc01.cells()["dnsServiceStatus"].status == HealthStatus.HEALTHY
    assert dc02.cells()["dnsServiceStatus"].status == HealthStatus.CRITICAL


def test_dns_service_lookup_failure_is_record_scoped(make_ctx, snapshot_data) -> None:
    snapshot_data["dns_service"]["DC02.corp.example.com"] = {"error": "RPC server unavailable"}
    dc01, dc02 = DomainControllerCollector().collect(make_ctx(snapshot_data))
    assert dc01.dns_service_state == "Running"
    assert dc02.dns_service_state == "Error: RPC server unavailable"
    assert dc02.cells()["dnsServiceStatus"].status == HealthStatus.CRITICAL


def test_fsmo_failure_marks_roles_unknown(make_ctx, snapshot_data) -> None:
    snapshot_data["fsmo"] = {"error": "denied"}
    records = DomainControllerCollector().collect(make_ctx(snapshot_data))
    assert all(r.fsmo_roles is None for r in records)
    assert records[0].to_row()["fsmoRoles"] == "Unknown"


def test_replication_classifies_each_link(make_ctx, snapshot_data) -> None:
    ctx = _with_dcs(make_ctx(snapshot_data))
    first, second = ReplicationCollector().collect(ctx)
    assert first.server == "DC01.corp.example.com"
    assert first.currency == HealthStatus.HEALTHY
    assert first.cells()["consecutiveFailures"].status == HealthStatus.HEALTHY
    assert second.currency == HealthStatus.WARNING
    assert second.cells()["consecutiveFailures"].status == HealthStatus.CRITICAL
    assert second.to_row()["currencyStatus"] == "Warning"


def test_replication_needs_dc_fact(make_ctx, snapshot_data) -> None:
    with pytest.raises(CollectorError, match="domain controller list unavailable"):
        ReplicationCollector().collect(make_ctx(snapshot_data))


def test_replication_failure_for_one_dc_fails_section(make_ctx, snapshot_data) -> None:
    snapshot_data["replication"]["DC02.corp.example.com"] = {"error": "access denied"}
    ctx = _with_dcs(make_ctx(snapshot_data))
    with pytest.raises(CollectorError, match="DC02"):
        ReplicationCollector().collect(ctx)


def test_dns_zones_come_from_first_answering_dc(make_ctx, snapshot_data) -> None:
    snapshot_data["dns_zones"]["DC01.corp.example.com"] = {"error": "timeout"}
    ctx = _with_dcs(make_ctx(snapshot_data))
    records = DnsZoneCollector().collect(ctx)
    assert [r.zone_name for r in records] == ["corp.example.com"]
    assert records[0].server == "DC02.corp.example.com"


def test_dns_zones_fail_when_no_dc_answers(make_ctx, snapshot_data) -> None:
    snapshot_data["dns_zones"] = {"error": "timeout"}
    ctx = _with_dcs(make_ctx(snapshot_data))
    with pytest.raises(CollectorError, match="every domain controller"):
        DnsZoneCollector().collect(ctx)


def test_dhcp_scopes(make_ctx, snapshot_data) -> None:
    active, inactive = DhcpScopeCollector().collect(make_ctx(snapshot_data))
    assert active.server == "dhcp01.corp.example.com"
    assert active.cells()["state"].status == HealthStatus.HEALTHY
    assert inactive.cells()["state"].status == HealthStatus.CRITICAL


def test_no_authorized_dhcp_servers_is_a_failure(make_ctx, snapshot_data) -> None:
    snapshot_data["dhcp_servers"] = []
    with pytest.raises(CollectorError, match="No authorized DHCP servers found"):
        DhcpScopeCollector().collect(make_ctx(snapshot_data))


def test_unreachable_dhcp_server_fails_whole_section(make_ctx, snapshot_data) -> None:
    snapshot_data["dhcp_servers"].append({"name": "dhcp02.corp.example.com"})
    with pytest.raises(DataSourceError):
        DhcpScopeCollector().collect(make_ctx(snapshot_data))


def test_service_accounts(make_ctx, snapshot_data) -> None:
    sql, gmsa = ServiceAccountCollector().collect(make_ctx(snapshot_data))
    assert sql.account_kind == "User"
    assert gmsa.account_kind == "gMSA"
    assert sql.to_row()["servicePrincipalNames"].count(";") == 1
    assert account_kind("msDS-ManagedServiceAccount") == "MSA"


def test_mail_servers_decode_version_and_roles(make_ctx, snapshot_data) -> None:
    (rec,) = MailServerCollector().collect(make_ctx(snapshot_data))
    row = rec.to_row()
    assert row["version"] == "Exchange Server 2019"
    assert row["roles"] == "Mailbox, Client Access"


def test_policy_objects(make_ctx, snapshot_data) -> None:
    default, legacy = PolicyObjectCollector().collect(make_ctx(snapshot_data))
    assert default.guid == "31B2F340-016D-11D2-945F-00C04FB984F9"
    assert default.cells()["gpoStatus"].status == HealthStatus.HEALTHY
    assert legacy.to_row()["gpoStatus"] == "AllSettingsDisabled"
    assert legacy.cells()["gpoStatus"].status == HealthStatus.CRITICAL
    assert default.to_row()["created"] == "2015-01-01"


def test_fsmo_summary_is_in_role_order(make_ctx, snapshot_data) -> None:
    snapshot_data["fsmo"].reverse()
    records = FsmoCollector().collect(make_ctx(snapshot_data))
    assert [r.role for r in records] == [
        "Schema Master",
        "Domain Naming Master",
        "PDC Emulator",
        "RID Master",
        "Infrastructure Master",
    ]


def test_stale_link_without_failures_keeps_failure_count_healthy(make_ctx, snapshot_data) -> None:
    link = snapshot_data["replication"]["DC01.corp.example.com"][0]
    link["lastSuccess"] = "2026-10-10T06:00:00Z"
    link["consecutiveFailures"] = 0
    ctx = _with_dcs(make_ctx(snapshot_data))
    first = ReplicationCollector().collect(ctx)[0]
    row = first.to_row()
    assert row["currencyStatus"] == "Warning"
    assert row["lastSuccess"] == "2026-10-10"
    assert first.cells()["consecutiveFailures"].status == HealthStatus.HEALTHY
