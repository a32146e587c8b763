from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from .util.time import run_timestamp, utc_now

# --------
# Defaults
# --------
DEFAULT_REPORT_NAME = "ADInfrastructureReport"
DEFAULT_TIMEOUT = 10
DEFAULT_PAGE_SIZE = 500
AUTH_METHODS = {"ntlm", "simple", "anonymous"}
EXPORT_FORMATS = {"auto", "csv"}
TIER_CONFIG_KEYS = {"Tier0": "tier0_groups", "Tier1": "tier1_groups", "Tier2": "tier2_groups"}
ALLOWED_CONFIG_KEYS = {
    "outdir",
    "server",
    "domain",
    "username",
    "password",
    "auth",
    "use_ssl",
    "port",
    "timeout",
    "page_size",
    "snapshot",
    "report_name",
    "export_format",
    "json_logs",
    "log_level",
    "progress",
    *TIER_CONFIG_KEYS.values(),
}
BOOL_CONFIG_KEYS = {"use_ssl", "json_logs", "progress"}
INT_CONFIG_KEYS = {"port", "timeout", "page_size"}
PATH_CONFIG_KEYS = {"outdir", "snapshot"}
STR_CONFIG_KEYS = {"server", "domain", "username", "password", "auth", "report_name", "export_format", "log_level"}
LIST_CONFIG_KEYS = set(TIER_CONFIG_KEYS.values())


@dataclass(frozen=True)
class RunConfig:
    # General
    outdir: Path
    report_name: str = DEFAULT_REPORT_NAME
    export_format: str = "auto"  # auto|csv
    json_logs: bool = False
    log_level: str = "INFO"
    progress: bool = True

    # Directory connection
    server: Optional[str] = None
    domain: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    auth: str = "ntlm"  # ntlm|simple|anonymous
    use_ssl: bool = False
    port: Optional[int] = None
    timeout: int = DEFAULT_TIMEOUT
    page_size: int = DEFAULT_PAGE_SIZE

    # Offline source
    snapshot: Optional[Path] = None

    # Tier label -> ordered group names; empty means built-in defaults
    tier_groups: Dict[str, List[str]] = field(default_factory=dict)

    # Internal/derived
    run_timestamp: str = field(default_factory=run_timestamp)
    started_at: datetime = field(default_factory=utc_now)


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        elif path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            # Try YAML first then JSON
            try:
                data = yaml.safe_load(text) or {}
            except Exception:
                data = json.loads(text)
    except Exception as e:
        raise ValueError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    return raw


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Config field '{key}' must be a boolean")


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be an integer")


def parse_group_list(key: str, value: Any) -> List[str]:
    """Accept a list of names or a comma-separated string."""
    if isinstance(value, str):
        return [g.strip() for g in value.split(",") if g.strip()]
    if isinstance(value, list) and all(isinstance(g, str) for g in value):
        return [g.strip() for g in value if g.strip()]
    raise ValueError(f"Config field '{key}' must be a list of strings or comma-separated string")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS:
            continue
        if value is None:
            normalized[key] = None
            continue
        if key in LIST_CONFIG_KEYS:
            normalized[key] = parse_group_list(key, value)
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in INT_CONFIG_KEYS:
            normalized[key] = _coerce_int(key, value)
        elif key in PATH_CONFIG_KEYS:
            if isinstance(value, (str, Path)):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string path")
        elif key in STR_CONFIG_KEYS:
            if isinstance(value, str):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string")
        else:
            normalized[key] = value
    return _compact_dict(normalized)


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def _timestamp_dir(base: Optional[Union[str, Path]], ts: str) -> Path:
    if base:
        return Path(base) / ts
    return Path("out") / ts


def _validate_choice(key: str, value: str, allowed: set) -> str:
    lowered = value.lower()
    if lowered not in allowed:
        raise ValueError(f"Config field '{key}' must be one of: {', '.join(sorted(allowed))}")
    return lowered


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ad-inv", description="Active Directory infrastructure inventory")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # common flags builder
    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")

    def add_connection(p: argparse.ArgumentParser) -> None:
        p.add_argument("--server", default=None, help="Domain controller to bind to")
        p.add_argument("--domain", default=None, help="DNS name of the domain (e.g. corp.example.com)")
        p.add_argument("--username", default=None, help="Bind user; password comes from AD_INV_PASSWORD or config")
        p.add_argument("--auth", default=None, choices=sorted(AUTH_METHODS), help="Bind method (default: ntlm)")
        p.add_argument("--use-ssl", action=argparse.BooleanOptionalAction, default=None, help="Use LDAPS")
        p.add_argument("--port", type=int, default=None, help="LDAP port (default 389, 636 with --use-ssl)")
        p.add_argument("--timeout", type=int, default=None, help=f"Connect timeout seconds (default {DEFAULT_TIMEOUT})")
        p.add_argument("--page-size", type=int, default=None, help=f"LDAP paging size (default {DEFAULT_PAGE_SIZE})")
        p.add_argument("--snapshot", type=Path, default=None, help="Read from a captured YAML/JSON snapshot instead")

    # run
    p_run = subparsers.add_parser("run", help="Collect the inventory and write the report")
    add_common(p_run)
    add_connection(p_run)
    p_run.add_argument("--outdir", type=Path, default=None, help="Output base directory (out/TS)")
    p_run.add_argument("--report-name", default=None, help=f"Base name for report files (default {DEFAULT_REPORT_NAME})")
    p_run.add_argument(
        "--export-format",
        default=None,
        choices=sorted(EXPORT_FORMATS),
        help="auto: workbook when openpyxl is installed, else CSV; csv: always CSV",
    )
    p_run.add_argument("--progress", action=argparse.BooleanOptionalAction, default=None, help="Show progress bar")
    for tier, key in TIER_CONFIG_KEYS.items():
        p_run.add_argument(
            f"--{key.replace('_', '-')}",
            dest=key,
            default=None,
            help=f"Comma-separated {tier} group names (overrides defaults)",
        )

    # validate-connection
    p_val = subparsers.add_parser("validate-connection", help="Bind to the directory and read the root DSE")
    add_common(p_val)
    add_connection(p_val)

    # list-sections
    p_ls = subparsers.add_parser("list-sections", help="List report sections and exported datasets")
    add_common(p_ls)

    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
    subcommand: Optional[str] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RunConfig) where command is the subcommand selected: run|validate-connection|list-sections
    """
    parser = build_parser()
    ns = args if args is not None else parser.parse_args(argv)
    command = ns.command if subcommand is None else subcommand

    # defaults
    base: Dict[str, Any] = {
        "outdir": None,
        "report_name": DEFAULT_REPORT_NAME,
        "export_format": "auto",
        "json_logs": False,
        "log_level": "INFO",
        "progress": True,
        "auth": "ntlm",
        "use_ssl": False,
        "timeout": DEFAULT_TIMEOUT,
        "page_size": DEFAULT_PAGE_SIZE,
    }

    # config file
    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    # env
    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "outdir": _env_str("AD_INV_OUTDIR"),
            "server": _env_str("AD_INV_SERVER"),
            "domain": _env_str("AD_INV_DOMAIN"),
            "username": _env_str("AD_INV_USERNAME"),
            "password": _env_str("AD_INV_PASSWORD"),
            "auth": _env_str("AD_INV_AUTH"),
            "use_ssl": _env_bool("AD_INV_USE_SSL"),
            "port": _env_int("AD_INV_PORT"),
            "timeout": _env_int("AD_INV_TIMEOUT"),
            "page_size": _env_int("AD_INV_PAGE_SIZE"),
            "snapshot": _env_str("AD_INV_SNAPSHOT"),
            "report_name": _env_str("AD_INV_REPORT_NAME"),
            "export_format": _env_str("AD_INV_EXPORT_FORMAT"),
            "json_logs": _env_bool("AD_INV_JSON_LOGS"),
            "log_level": _env_str("AD_INV_LOG_LEVEL"),
            "progress": _env_bool("AD_INV_PROGRESS"),
            "tier0_groups": _env_str("AD_INV_TIER0_GROUPS"),
            "tier1_groups": _env_str("AD_INV_TIER1_GROUPS"),
            "tier2_groups": _env_str("AD_INV_TIER2_GROUPS"),
        }
    )

    # CLI
    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "outdir": getattr(ns, "outdir", None),
            "server": getattr(ns, "server", None),
            "domain": getattr(ns, "domain", None),
            "username": getattr(ns, "username", None),
            "auth": getattr(ns, "auth", None),
            "use_ssl": getattr(ns, "use_ssl", None),
            "port": getattr(ns, "port", None),
            "timeout": getattr(ns, "timeout", None),
            "page_size": getattr(ns, "page_size", None),
            "snapshot": getattr(ns, "snapshot", None),
            "report_name": getattr(ns, "report_name", None),
            "export_format": getattr(ns, "export_format", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
            "progress": getattr(ns, "progress", None),
            "tier0_groups": getattr(ns, "tier0_groups", None),
            "tier1_groups": getattr(ns, "tier1_groups", None),
            "tier2_groups": getattr(ns, "tier2_groups", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    # Normalize/construct types
    started_at = utc_now()
    ts = run_timestamp(started_at)
    outdir_raw = merged.get("outdir")
    outdir = _timestamp_dir(outdir_raw, ts) if command == "run" else Path(outdir_raw) if outdir_raw else Path.cwd()

    tier_groups: Dict[str, List[str]] = {}
    for tier, key in TIER_CONFIG_KEYS.items():
        if merged.get(key) is not None:
            tier_groups[tier] = parse_group_list(key, merged[key])

    port = merged.get("port")
    snapshot = merged.get("snapshot")

    cfg = RunConfig(
        outdir=outdir,
        report_name=str(merged.get("report_name") or DEFAULT_REPORT_NAME),
        export_format=_validate_choice("export_format", str(merged["export_format"]), EXPORT_FORMATS),
        json_logs=bool(merged["json_logs"]),
        log_level=(merged.get("log_level") or "INFO").upper(),
        progress=bool(merged["progress"]),
        server=merged.get("server"),
        domain=merged.get("domain"),
        username=merged.get("username"),
        password=merged.get("password"),
        auth=_validate_choice("auth", str(merged["auth"]), AUTH_METHODS),
        use_ssl=bool(merged["use_ssl"]),
        port=int(port) if port else None,
        timeout=int(merged["timeout"] or DEFAULT_TIMEOUT),
        page_size=int(merged["page_size"] or DEFAULT_PAGE_SIZE),
        snapshot=Path(snapshot) if snapshot else None,
        tier_groups=tier_groups,
        run_timestamp=ts,
        started_at=started_at,
    )
    return command, cfg


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    """Config as written to run_summary.json; the password is never included."""
    return {
        "outdir": str(cfg.outdir),
        "report_name": cfg.report_name,
        "export_format": cfg.export_format,
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
        "server": cfg.server,
        "domain": cfg.domain,
        "username": cfg.username,
        "auth": cfg.auth,
        "use_ssl": cfg.use_ssl,
        "port": cfg.port,
        "timeout": cfg.timeout,
        "page_size": cfg.page_size,
        "snapshot": str(cfg.snapshot) if cfg.snapshot else None,
        "tier_groups": cfg.tier_groups,
        "run_timestamp": cfg.run_timestamp,
    }
