from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

RUN_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"
DATE_FORMAT = "%Y-%m-%d"
NEVER = "Never"

# FILETIME epoch and the "never expires" sentinel used by the directory.
_FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)
_FILETIME_NEVER = 9223372036854775807
_GENERALIZED_TIME_RE = re.compile(r"^\d{14}(?:\.\d+)?Z?$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso(seconds: bool = True) -> str:
    """
    Return current UTC time in ISO-8601 format.
    - If seconds is True, use seconds precision (stable strings).
    - Else, use milliseconds precision.
    """
    if seconds:
        return utc_now().isoformat(timespec="seconds")
    return utc_now().isoformat(timespec="milliseconds")


def run_timestamp(moment: Optional[datetime] = None) -> str:
    return (moment or utc_now()).astimezone(timezone.utc).strftime(RUN_TIMESTAMP_FORMAT)


def _from_filetime(value: int) -> Optional[datetime]:
    if value <= 0 or value >= _FILETIME_NEVER:
        return None
    try:
        return _FILETIME_EPOCH + timedelta(microseconds=value // 10)
    except (OverflowError, ValueError):
        return None


def _from_generalized_time(text: str) -> Optional[datetime]:
    raw = text[:-1] if text.endswith("Z") else text
    for fmt in ("%Y%m%d%H%M%S.%f", "%Y%m%d%H%M%S"):
        try:
            return datetime.strptime(raw, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def _after_epoch(value: Optional[datetime]) -> Optional[datetime]:
    # The directory reports "never happened" as the FILETIME epoch itself.
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return None if value <= _FILETIME_EPOCH else value


def parse_directory_time(value: Any) -> Optional[datetime]:
    """
    Parse the time representations a directory returns into an aware UTC datetime.

    Accepts datetime objects, FILETIME integers (or digit strings), ISO-8601
    strings and LDAP generalized time. Zero, the FILETIME epoch, the FILETIME
    "never" sentinel and unparseable values yield None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _after_epoch(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return _from_filetime(value)
    text = str(value).strip()
    if not text:
        return None
    if _GENERALIZED_TIME_RE.match(text):
        return _after_epoch(_from_generalized_time(text))
    if text.isdigit():
        return _from_filetime(int(text))
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return _after_epoch(_from_generalized_time(text))
    return _after_epoch(parsed)


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return NEVER
    return value.astimezone(timezone.utc).strftime(DATE_FORMAT)
