from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Protocol, runtime_checkable

import yaml

from ..util.errors import DataSourceError, DirectoryUnavailableError

RawRecord = Dict[str, Any]

# Query kinds understood by every DirectorySource, with the parameter each one is keyed by.
QUERY_KINDS: Dict[str, str | None] = {
    "forest": None,
    "fsmo": None,
    "domain_controllers": None,
    "dns_service": "server",
    "replication": "server",
    "sites": None,
    "dns_zones": "server",
    "dhcp_servers": None,
    "dhcp_scopes": "server",
    "group": "name",
    "group_members": "dn",
    "user": "dn",
    "service_accounts": None,
    "mail_servers": None,
    "policy_objects": None,
}


def check_query(kind: str, params: Dict[str, Any]) -> str | None:
    if kind not in QUERY_KINDS:
        raise DataSourceError(f"Unsupported query kind: {kind}")
    param = QUERY_KINDS[kind]
    if param is not None and not params.get(param):
        raise DataSourceError(f"Query kind {kind} requires parameter '{param}'")
    return param


@runtime_checkable
class DirectorySource(Protocol):
    """
    Read-only access to the directory and its network services.

    fetch() returns raw attribute sets or raises DataSourceError.
    probe() raises DirectoryUnavailableError when nothing can be queried at all.
    """

    label: str

    def probe(self) -> None:
        ...

    def fetch(self, kind: str, **params: Any) -> List[RawRecord]:
        ...


def _load_snapshot_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise DirectoryUnavailableError(f"Snapshot file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except Exception as e:
        raise DirectoryUnavailableError(f"Failed to parse snapshot {path}: {e}") from e
    if not isinstance(data, dict):
        raise DirectoryUnavailableError("Top-level snapshot must be an object")
    return data


def _error_of(value: Any) -> str | None:
    if isinstance(value, dict) and set(value.keys()) == {"error"}:
        return str(value["error"])
    return None


class SnapshotSource:
    """
    DirectorySource backed by a YAML/JSON file of previously captured raw
    attribute sets.

    Layout: kind -> list of records. Parameterised kinds map the parameter value
    to a list (e.g. replication -> {"DC01.corp.local": [...]}). Any value of the
    form {"error": "..."} makes that fetch fail with DataSourceError.
    """

    def __init__(self, path: Path | None = None, *, data: Dict[str, Any] | None = None) -> None:
        self._path = path
        self._data = data
        self.label = f"snapshot:{path}" if path else "snapshot:memory"

    def _snapshot(self) -> Dict[str, Any]:
        if self._data is None:
            if self._path is None:
                raise DirectoryUnavailableError("Snapshot source has neither a path nor data")
            self._data = _load_snapshot_file(self._path)
        return self._data

    def probe(self) -> None:
        data = self._snapshot()
        reason = _error_of(data.get("connection"))
        if reason:
            raise DirectoryUnavailableError(reason)

    def fetch(self, kind: str, **params: Any) -> List[RawRecord]:
        param = check_query(kind, params)
        data = self._snapshot()
        if kind not in data:
            raise DataSourceError(f"{kind} not present in snapshot")
        value = data[kind]
        if param is not None:
            reason = _error_of(value)
            if reason:
                raise DataSourceError(reason)
            if not isinstance(value, dict):
                raise DataSourceError(f"Snapshot entry {kind} must be keyed by {param}")
            key = str(params[param])
            if key not in value:
                if kind in ("group", "user"):
                    # absent object, not a failure
                    return []
                raise DataSourceError(f"{kind} for {key} not present in snapshot")
            value = value[key]
        reason = _error_of(value)
        if reason:
            raise DataSourceError(reason)
        if not isinstance(value, list):
            raise DataSourceError(f"Malformed snapshot entry for {kind}: expected a list")
        out: List[RawRecord] = []
        for item in value:
            if not isinstance(item, dict):
                raise DataSourceError(f"Malformed snapshot entry for {kind}: expected objects")
            out.append(dict(item))
        return out
