from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ad_inventory.normalize.health import (
    Cell,
    HealthStatus,
    classify_dhcp_state,
    classify_failure_count,
    classify_flag,
    classify_gpo_status,
    classify_replication_currency,
    classify_service_state,
    parse_flag,
    replication_currency_status,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def test_replication_just_under_a_day_is_healthy() -> None:
    cell = classify_replication_currency(NOW - timedelta(hours=23, minutes=59), NOW)
    assert cell.status == HealthStatus.HEALTHY
    assert cell.text == "2026-10-17"


def test_replication_just_over_a_day_is_warning() -> None:
    cell = classify_replication_currency(NOW - timedelta(hours=24, minutes=1), NOW)
    assert cell.status == HealthStatus.WARNING


def test_replication_exactly_a_day_is_warning() -> None:
    assert replication_currency_status(NOW - timedelta(hours=24), NOW) == HealthStatus.WARNING


def test_replication_very_stale_never_escalates_past_warning() -> None:
    assert replication_currency_status(NOW - timedelta(days=400), NOW) == HealthStatus.WARNING


def test_replication_never_succeeded() -> None:
    assert classify_replication_currency(None, NOW) == Cell("Never", HealthStatus.WARNING)


@pytest.mark.parametrize("raw", [0, "0"])
def test_zero_failures_is_healthy(raw) -> None:
    assert classify_failure_count(raw) == Cell("0", HealthStatus.HEALTHY)


def test_failures_are_critical() -> None:
    assert classify_failure_count(3).status == HealthStatus.CRITICAL


def test_failure_count_passthrough_for_non_numeric() -> None:
    assert classify_failure_count("n/a") == Cell("n/a")
    assert classify_failure_count(True) == Cell("True")


def test_service_state() -> None:
    assert classify_service_state("Running").status == HealthStatus.HEALTHY
    assert classify_service_state("Stopped") == Cell("Stopped", HealthStatus.CRITICAL)
    assert classify_service_state(None) == Cell("Unknown", HealthStatus.CRITICAL)
    assert classify_service_state("Error: rpc unavailable").status == HealthStatus.CRITICAL


def test_flags() -> None:
    assert parse_flag("TRUE") is True
    assert parse_flag("no") is False
    assert parse_flag("maybe") is None
    assert classify_flag(True) == Cell("True", HealthStatus.HEALTHY)
    assert classify_flag("false") == Cell("False", HealthStatus.CRITICAL)
    assert classify_flag(True, informational=True) == Cell("True")
    assert classify_flag("sometimes") == Cell("sometimes")


def test_dhcp_state() -> None:
    assert classify_dhcp_state("Active").status == HealthStatus.HEALTHY
    assert classify_dhcp_state("Inactive").status == HealthStatus.CRITICAL


def test_gpo_status() -> None:
    assert classify_gpo_status("AllSettingsEnabled").status == HealthStatus.HEALTHY
    assert classify_gpo_status("UserSettingsDisabled").status == HealthStatus.CRITICAL
    assert classify_gpo_status("AllSettingsDisabled").status == HealthStatus.CRITICAL
    assert classify_gpo_status("Custom") == Cell("Custom")
