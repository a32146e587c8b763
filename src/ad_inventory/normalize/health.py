"""
Health classification.

Every function here is pure and total: known raw values map to a
HealthStatus, anything unrecognised comes back as an unclassified Cell
carrying the raw text so new upstream states render instead of failing.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from ..util.time import NEVER, format_date

REPLICATION_STALE_AFTER = timedelta(hours=24)

GPO_ENABLED = "AllSettingsEnabled"
GPO_DISABLED_STATES = frozenset({"AllSettingsDisabled", "UserSettingsDisabled", "ComputerSettingsDisabled"})

_TRUE_STRINGS = frozenset({"true", "yes", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "0"})


class HealthStatus(str, Enum):
    HEALTHY = "Healthy"
    WARNING = "Warning"
    CRITICAL = "Critical"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Cell:
    """One rendered value. status None means plain / unclassified."""

    text: str
    status: Optional[HealthStatus] = None


def _text(raw: Any) -> str:
    if raw is None:
        return ""
    return str(raw).strip()


def classify_replication_currency(last_success: Optional[datetime], now: datetime) -> Cell:
    # Staleness alone never escalates past Warning.
    if last_success is None:
        return Cell(NEVER, HealthStatus.WARNING)
    if now - last_success < REPLICATION_STALE_AFTER:
        return Cell(format_date(last_success), HealthStatus.HEALTHY)
    return Cell(format_date(last_success), HealthStatus.WARNING)


def replication_currency_status(last_success: Optional[datetime], now: datetime) -> HealthStatus:
    status = classify_replication_currency(last_success, now).status
    return status if status is not None else HealthStatus.UNKNOWN


def classify_failure_count(raw: Any) -> Cell:
    text = _text(raw)
    if isinstance(raw, bool):
        return Cell(text)
    try:
        count = int(text)
    except ValueError:
        return Cell(text)
    if count == 0:
        return Cell(text, HealthStatus.HEALTHY)
    return Cell(text, HealthStatus.CRITICAL)


def classify_service_state(raw: Any) -> Cell:
    text = _text(raw)
    if text == "Running":
        return Cell(text, HealthStatus.HEALTHY)
    return Cell(text or "Unknown", HealthStatus.CRITICAL)


def parse_flag(raw: Any) -> Optional[bool]:
    if isinstance(raw, bool):
        return raw
    lowered = _text(raw).lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    return None


def classify_flag(raw: Any, *, informational: bool = False) -> Cell:
    value = parse_flag(raw)
    if value is None:
        return Cell(_text(raw))
    text = "True" if value else "False"
    if informational:
        return Cell(text)
    return Cell(text, HealthStatus.HEALTHY if value else HealthStatus.CRITICAL)


def classify_dhcp_state(raw: Any) -> Cell:
    text = _text(raw)
    if text == "Active":
        return Cell(text, HealthStatus.HEALTHY)
    return Cell(text or "Unknown", HealthStatus.CRITICAL)


def classify_gpo_status(raw: Any) -> Cell:
    text = _text(raw)
    if text == GPO_ENABLED:
        return Cell(text, HealthStatus.HEALTHY)
    if text in GPO_DISABLED_STATES:
        return Cell(text, HealthStatus.CRITICAL)
    return Cell(text)
