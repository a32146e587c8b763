from __future__ import annotations

import re
from typing import Any, Dict, Tuple

MAIL_SERVER_ROLES: Dict[int, str] = {
    2: "Mailbox",
    4: "Client Access",
    16: "Unified Messaging",
    32: "Hub Transport",
    64: "Edge Transport",
    54: "Mailbox, Client Access, Unified Messaging, Hub Transport",
    16385: "Mailbox",
    16439: "Mailbox, Client Access",
    32768: "Edge Transport",
}

# Longest prefix first so "15.2" wins over "15".
MAIL_SERVER_VERSIONS: Tuple[Tuple[str, str], ...] = (
    ("15.2", "Exchange Server 2019"),
    ("15.1", "Exchange Server 2016"),
    ("15.0", "Exchange Server 2013"),
    ("14", "Exchange Server 2010"),
    ("8", "Exchange Server 2007"),
)

GPO_FLAGS: Dict[int, str] = {
    0: "AllSettingsEnabled",
    1: "UserSettingsDisabled",
    2: "ComputerSettingsDisabled",
    3: "AllSettingsDisabled",
}

FUNCTIONAL_LEVELS: Dict[int, str] = {
    0: "Windows2000",
    1: "Windows2003Interim",
    2: "Windows2003",
    3: "Windows2008",
    4: "Windows2008R2",
    5: "Windows2012",
    6: "Windows2012R2",
    7: "Windows2016",
    10: "Windows2025",
}

_VERSION_RE = re.compile(r"^\s*(?:version\s+)?(\d+(?:\.\d+)?)", re.IGNORECASE)


def _as_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    text = str(raw or "").strip()
    if text.lstrip("-").isdigit():
        return int(text)
    return None


def _lookup(table: Dict[int, str], raw: Any) -> str:
    code = _as_int(raw)
    if code is not None and code in table:
        return table[code]
    return "" if raw is None else str(raw)


def decode_mail_server_roles(raw: Any) -> str:
    return _lookup(MAIL_SERVER_ROLES, raw)


def decode_gpo_flags(raw: Any) -> str:
    return _lookup(GPO_FLAGS, raw)


def decode_functional_level(raw: Any) -> str:
    return _lookup(FUNCTIONAL_LEVELS, raw)


def decode_mail_server_version(raw: Any) -> str:
    text = "" if raw is None else str(raw)
    match = _VERSION_RE.match(text)
    if not match:
        return text
    number = match.group(1)
    for prefix, label in MAIL_SERVER_VERSIONS:
        if number == prefix or number.startswith(prefix + "."):
            return label
    return text
