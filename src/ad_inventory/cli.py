from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, List, Optional

from .collectors import CollectContext, default_collectors
from .config import RunConfig, dump_config, load_run_config
from .directory.source import DirectorySource, SnapshotSource
from .export.sinks import ExportResult, export_datasets
from .logging import LogConfig, add_run_log_file, get_logger, setup_logging
from .normalize.schema import (
    EXPORT_DATASETS,
    SECTION_SPECS,
    OutputPaths,
    ReportDocument,
    resolve_output_paths,
)
from .orchestrator import run_collectors, summarize_sections
from .report import write_report_html
from .util.errors import ConfigError, ExportError, as_exit_code
from .util.rich_progress import RunProgress, render_run_summary_table
from .util.time import utc_now_iso

LOG = get_logger(__name__)

OUT_SCHEMA_VERSION = "1"


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    timer_key: Optional[str] = None,
    **extra: Any,
) -> None:
    key = timer_key or step
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(key)
        elif phase in {"complete", "error", "warning", "skipped"}:
            duration_ms = timers.finish(key)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


def build_source(cfg: RunConfig) -> DirectorySource:
    if cfg.snapshot is not None:
        return SnapshotSource(cfg.snapshot)
    if not cfg.server:
        raise ConfigError("Either --snapshot or --server is required")
    from .directory.ldap import LdapDirectorySource

    return LdapDirectorySource(
        cfg.server,
        domain=cfg.domain,
        username=cfg.username,
        password=cfg.password,
        auth=cfg.auth,
        use_ssl=cfg.use_ssl,
        port=cfg.port,
        timeout=cfg.timeout,
        page_size=cfg.page_size,
    )


def _report_metadata(cfg: RunConfig, source_label: str) -> Dict[str, str]:
    meta = {"Data source": source_label}
    if cfg.domain:
        meta["Domain"] = cfg.domain
    if cfg.server:
        meta["Server"] = cfg.server
    return meta


def _close_source(source: DirectorySource) -> None:
    close = getattr(source, "close", None)
    if callable(close):
        close()


def _write_run_summary(
    paths: OutputPaths,
    cfg: RunConfig,
    *,
    status: str,
    source_label: str,
    doc: Optional[ReportDocument] = None,
    export: Optional[ExportResult] = None,
    report_html: Optional[Path] = None,
    error: Optional[str] = None,
) -> Path:
    summary: Dict[str, Any] = {
        "schema_version": OUT_SCHEMA_VERSION,
        "status": status,
        "started_at": cfg.started_at.isoformat(timespec="seconds"),
        "finished_at": utc_now_iso(),
        "run_timestamp": cfg.run_timestamp,
        "data_source": source_label,
        "sections": summarize_sections(doc) if doc else [],
        "counts_by_status": doc.counts_by_status() if doc else {},
        "export": {
            "sink": export.sink if export else None,
            "fallback_reason": export.fallback_reason if export else None,
            "paths": [p.name for p in export.paths] if export else [],
            "report_html": report_html.name if report_html else None,
        },
        "config": dump_config(cfg),
    }
    if error:
        summary["error"] = error
    paths.root.mkdir(parents=True, exist_ok=True)
    paths.run_summary_json.write_text(json.dumps(summary, indent=2, sort_keys=True), encoding="utf-8")
    return paths.run_summary_json


def cmd_run(cfg: RunConfig) -> int:
    # Config errors surface before anything is written to disk.
    source = build_source(cfg)

    # From here on a run directory always ends up with a summary.
    paths = resolve_output_paths(cfg.outdir, cfg.run_timestamp, cfg.report_name)
    paths.root.mkdir(parents=True, exist_ok=True)
    add_run_log_file(paths.debug_log)
    timers = _StepTimers()

    _log_event(LOG, logging.INFO, "Starting inventory run", step="run", phase="start", timers=timers,
               outdir=str(paths.root))

    try:
        _log_event(LOG, logging.INFO, "Probing directory", step="probe", phase="start", timers=timers,
                   source=source.label)
        try:
            source.probe()
        except Exception as e:
            _log_event(LOG, logging.ERROR, "Directory unavailable", step="probe", phase="error", timers=timers,
                       error=str(e))
            _write_run_summary(paths, cfg, status="FAILED", source_label=source.label, error=str(e))
            raise

        ctx = CollectContext(source=source, collected_at=cfg.started_at, tier_groups=cfg.tier_groups)
        collectors = default_collectors(cfg.tier_groups)
        _log_event(LOG, logging.INFO, "Collection started", step="collect_all", phase="start", timers=timers,
                   sections=len(collectors))
        with RunProgress(enabled=cfg.progress, total=len(collectors)) as progress:
            doc = run_collectors(
                collectors,
                ctx,
                run_timestamp=cfg.run_timestamp,
                output_root=paths.root,
                metadata=_report_metadata(cfg, source.label),
                on_section=progress.section_done,
            )
        _log_event(LOG, logging.INFO, "Collection complete", step="collect_all", phase="complete", timers=timers,
                   counts=doc.counts_by_status())
    finally:
        _close_source(source)

    _log_event(LOG, logging.INFO, "Rendering report", step="report", phase="start", timers=timers)
    report_html = write_report_html(doc, paths.report_html)
    _log_event(LOG, logging.INFO, "Report rendered", step="report", phase="complete", timers=timers)

    _log_event(LOG, logging.INFO, "Exporting datasets", step="export", phase="start", timers=timers,
               mode=cfg.export_format)
    try:
        export = export_datasets(doc.datasets(), paths, mode=cfg.export_format)
    except ExportError as e:
        _log_event(LOG, logging.ERROR, "Export failed", step="export", phase="error", timers=timers, error=str(e))
        _write_run_summary(paths, cfg, status="FAILED", source_label=source.label, doc=doc,
                           report_html=report_html, error=str(e))
        raise
    _log_event(LOG, logging.INFO, "Datasets exported", step="export", phase="complete", timers=timers,
               sink=export.sink, files=len(export.paths), fallback_reason=export.fallback_reason)

    _write_run_summary(paths, cfg, status="OK", source_label=source.label, doc=doc, export=export,
                       report_html=report_html)
    render_run_summary_table(
        enabled=cfg.progress,
        sections=doc.sections,
        sink=export.sink,
        fallback_reason=export.fallback_reason,
        outdir=str(paths.root),
    )
    _log_event(LOG, logging.INFO, "Inventory run complete", step="run", phase="complete", timers=timers,
               outdir=str(paths.root))
    return 0


def cmd_validate_connection(cfg: RunConfig) -> int:
    source = build_source(cfg)
    try:
        source.probe()
    finally:
        _close_source(source)
    LOG.info("Connection validated", extra={"source": source.label})
    print(f"OK: directory reachable via {source.label}")
    return 0


def cmd_list_sections(cfg: RunConfig) -> int:
    for spec in SECTION_SPECS:
        dataset = spec.dataset or "-"
        print(f"{spec.ordinal:>2} {spec.key:<20} {dataset:<18} {spec.title}")
    print(f"{len(EXPORT_DATASETS)} exported datasets")
    return 0


COMMANDS = {
    "run": cmd_run,
    "validate-connection": cmd_validate_connection,
    "list-sections": cmd_list_sections,
}


def main(argv: Optional[List[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        handler = COMMANDS.get(command)
        if handler is None:
            raise ConfigError(f"Unknown command: {command}")
        sys.exit(handler(cfg))
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when users pipe to `head` or similar tools.
        sys.exit(0)
    except Exception as e:
        # Map to consistent exit code and log
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e), "error_type": type(e).__name__})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
