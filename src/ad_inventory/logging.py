from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# Bind credentials must never reach a log sink, even when passed by mistake.
_SECRET_KEYS = frozenset({"password", "bind_password", "credentials", "secret"})
REDACTED = "***"

_LIBRARY_LOGGERS = ("ldap3",)


def _is_json_safe(value: object, depth: int = 3) -> bool:
    if value is None or isinstance(value, (str, int, float, bool)):
        return True
    if depth <= 0:
        return False
    if isinstance(value, dict):
        return all(isinstance(k, str) and _is_json_safe(v, depth - 1) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return all(_is_json_safe(v, depth - 1) for v in value)
    return False


def record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the structured fields attached to a record, with secrets masked."""
    extras: Dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_ATTRS or key.startswith("_") or value is None:
            continue
        extras[key] = REDACTED if key.lower() in _SECRET_KEYS else value
    return extras


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    json_logs: bool = False


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record_extras(record).items():
            if _is_json_safe(value):
                payload[key] = value
        return json.dumps(payload, sort_keys=True)


class PlainFormatter(logging.Formatter):
    """One line per event: `<ts> LEVEL logger: [step:phase] message section=... (duration_ms=...)`."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="seconds")
        extras = record_extras(record)
        message = record.getMessage()
        step, phase = extras.get("step"), extras.get("phase")
        if step or phase:
            message = f"[{step or 'unknown'}:{phase or 'unknown'}] {message}"
        if extras.get("section"):
            message = f"{message} section={extras['section']}"
        if extras.get("duration_ms") is not None:
            message = f"{message} (duration_ms={extras['duration_ms']})"
        line = f"{timestamp} {record.levelname} {record.name}: {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _level_from_str(level: str) -> int:
    value = getattr(logging, (level or "").upper(), None)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(config: Optional[LogConfig] = None) -> None:
    """
    Configure the root logger once; later calls are no-ops.

    An explicit LogConfig wins. Without one, AD_INV_LOG_LEVEL and
    AD_INV_JSON_LOGS (1/true/yes) are consulted.
    """
    if getattr(setup_logging, "_configured", False):
        return

    if config is None:
        config = LogConfig(
            level=os.getenv("AD_INV_LOG_LEVEL") or "INFO",
            json_logs=(os.getenv("AD_INV_JSON_LOGS") or "").lower() in ("1", "true", "yes"),
        )
    level = _level_from_str(config.level)

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter() if config.json_logs else PlainFormatter())

    # The console honours the configured level; the per-run file sees DEBUG.
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers = [handler]

    # Library wire chatter stays at WARNING unless the run itself is quieter.
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    setattr(setup_logging, "_configured", True)


def add_run_log_file(log_path: Path) -> None:
    """Mirror the root logger into a per-run log file, once per path."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    root = logging.getLogger()
    target = str(log_path.resolve())
    if any(isinstance(h, logging.FileHandler) and h.baseFilename == target for h in root.handlers):
        return

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    formatter = root.handlers[0].formatter if root.handlers else None
    handler.setFormatter(formatter if formatter is not None else PlainFormatter())
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
