from __future__ import annotations

import json

import pytest

from ad_inventory.directory.source import DirectorySource, SnapshotSource, check_query
from ad_inventory.util.errors import DataSourceError, DirectoryUnavailableError


def test_snapshot_source_satisfies_protocol(snapshot_path) -> None:
    source = SnapshotSource(snapshot_path)
    assert isinstance(source, DirectorySource)
    source.probe()
    assert source.label.startswith("snapshot:")


def test_fetch_plain_and_parameterised_kinds(snapshot_data) -> None:
    source = SnapshotSource(data=snapshot_data)
    assert len(source.fetch("domain_controllers")) == 2
    rows = source.fetch("dns_service", server="DC02.corp.example.com")
    assert rows == [{"state": "Stopped"}]


def test_missing_group_or_user_is_empty_not_error(snapshot_data) -> None:
    source = SnapshotSource(data=snapshot_data)
    assert source.fetch("group", name="Schema Admins") == []
    assert source.fetch("user", dn="CN=ghost,DC=corp,DC=example,DC=com") == []


def test_missing_server_entry_is_error(snapshot_data) -> None:
    source = SnapshotSource(data=snapshot_data)
    with pytest.raises(DataSourceError):
        source.fetch("replication", server="DC99.corp.example.com")


def test_missing_kind_is_error() -> None:
    with pytest.raises(DataSourceError, match="not present"):
        SnapshotSource(data={}).fetch("sites")


def test_error_entries_raise() -> None:
    source = SnapshotSource(data={"sites": {"error": "access denied"}, "dhcp_scopes": {"error": "rpc down"}})
    with pytest.raises(DataSourceError, match="access denied"):
        source.fetch("sites")
    with pytest.raises(DataSourceError, match="rpc down"):
        source.fetch("dhcp_scopes", server="dhcp01")


def test_malformed_entries_raise() -> None:
    source = SnapshotSource(data={"sites": "oops", "fsmo": ["x"]})
    with pytest.raises(DataSourceError):
        source.fetch("sites")
    with pytest.raises(DataSourceError):
        source.fetch("fsmo")


def test_probe_reports_unreachable_directory() -> None:
    source = SnapshotSource(data={"connection": {"error": "The server is not operational"}})
    with pytest.raises(DirectoryUnavailableError, match="not operational"):
        source.probe()


def test_missing_snapshot_file_is_unavailable(tmp_path) -> None:
    with pytest.raises(DirectoryUnavailableError):
        SnapshotSource(tmp_path / "missing.yaml").probe()


def test_json_snapshot(tmp_path) -> None:
    path = tmp_path / "snap.json"
    path.write_text(json.dumps({"sites": [{"name": "HQ"}]}), encoding="utf-8")
    assert SnapshotSource(path).fetch("sites") == [{"name": "HQ"}]


def test_check_query_validates_kind_and_parameter() -> None:
    assert check_query("replication", {"server": "DC01"}) == "server"
    assert check_query("sites", {}) is None
    with pytest.raises(DataSourceError):
        check_query("printers", {})
    with pytest.raises(DataSourceError):
        check_query("replication", {})
