from __future__ import annotations

from pathlib import Path

import pytest

from ad_inventory.config import DEFAULT_REPORT_NAME, RunConfig, dump_config, load_run_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in (
        "AD_INV_OUTDIR",
        "AD_INV_SERVER",
        "AD_INV_PASSWORD",
        "AD_INV_AUTH",
        "AD_INV_EXPORT_FORMAT",
        "AD_INV_LOG_LEVEL",
        "AD_INV_TIER2_GROUPS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    command, cfg = load_run_config(argv=["run"])
    assert command == "run"
    assert isinstance(cfg, RunConfig)
    assert cfg.report_name == DEFAULT_REPORT_NAME
    assert cfg.export_format == "auto"
    assert cfg.auth == "ntlm"
    assert cfg.page_size == 500
    assert cfg.tier_groups == {}
    assert cfg.outdir.parent == Path("out")


def test_run_dir_is_named_by_run_timestamp(tmp_path) -> None:
    _, cfg = load_run_config(argv=["run", "--outdir", str(tmp_path)])
    assert cfg.outdir.parent == tmp_path
    assert cfg.outdir.name == cfg.run_timestamp
    assert len(cfg.run_timestamp) == 16
    assert cfg.run_timestamp[8] == "T"
    assert cfg.run_timestamp.endswith("Z")


def test_env_overrides_config_file_and_cli_overrides_env(tmp_path, monkeypatch) -> None:
    cfg_path = tmp_path / "inventory.yaml"
    cfg_path.write_text("server: from-file\nreport_name: FromFile\n", encoding="utf-8")
    monkeypatch.setenv("AD_INV_SERVER", "from-env")

    _, cfg = load_run_config(argv=["run", "--config", str(cfg_path)])
    assert cfg.server == "from-env"
    assert cfg.report_name == "FromFile"

    _, cfg = load_run_config(argv=["run", "--config", str(cfg_path), "--server", "from-cli"])
    assert cfg.server == "from-cli"


def test_password_only_from_env_or_file(monkeypatch) -> None:
    monkeypatch.setenv("AD_INV_PASSWORD", "s3cret")
    _, cfg = load_run_config(argv=["run"])
    assert cfg.password == "s3cret"
    assert "s3cret" not in repr(cfg)
    assert "password" not in dump_config(cfg)
    with pytest.raises(SystemExit):
        load_run_config(argv=["run", "--password", "x"])


def test_tier_groups_from_each_layer(tmp_path, monkeypatch) -> None:
    cfg_path = tmp_path / "inventory.yaml"
    cfg_path.write_text("tier0_groups: [Domain Admins]\ntier1_groups: Server Admins, SQL Admins\n", encoding="utf-8")
    monkeypatch.setenv("AD_INV_TIER2_GROUPS", "Helpdesk, Desktop Support")

    _, cfg = load_run_config(argv=["run", "--config", str(cfg_path), "--tier1-groups", "Ops Admins"])
    assert cfg.tier_groups == {
        "Tier0": ["Domain Admins"],
        "Tier1": ["Ops Admins"],
        "Tier2": ["Helpdesk", "Desktop Support"],
    }


def test_invalid_values_raise(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("AD_INV_AUTH", "kerberos")
    with pytest.raises(ValueError):
        load_run_config(argv=["run"])
    monkeypatch.delenv("AD_INV_AUTH")

    cfg_path = tmp_path / "bad.yaml"
    cfg_path.write_text("page_size: many\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_run_config(argv=["run", "--config", str(cfg_path)])


def test_unknown_config_keys_warn(tmp_path) -> None:
    cfg_path = tmp_path / "inventory.yaml"
    cfg_path.write_text("colour: blue\n", encoding="utf-8")
    with pytest.warns(UserWarning, match="colour"):
        load_run_config(argv=["run", "--config", str(cfg_path)])


def test_repo_example_config_loads() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    _, cfg = load_run_config(argv=["run", "--config", str(repo_root / "config" / "inventory.example.yaml")])
    assert cfg.use_ssl is True
    assert cfg.tier_groups["Tier2"] == ["Helpdesk", "Desktop Support", "Workstation Admins"]


def test_other_commands_parse() -> None:
    command, _ = load_run_config(argv=["validate-connection", "--server", "dc01"])
    assert command == "validate-connection"
    command, _ = load_run_config(argv=["list-sections"])
    assert command == "list-sections"
