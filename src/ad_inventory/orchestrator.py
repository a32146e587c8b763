"""
Collector orchestration.

Runs the fixed collector sequence against one DirectorySource. Every collector
is isolated: whatever it raises becomes a failed Section and the run moves on.
"""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, List, Mapping, Optional, Sequence

from .collectors.base import CollectContext, Collector
from .logging import get_logger
from .normalize.schema import ReportDocument, Section, SectionStatus
from .util.errors import InventoryError
from .util.time import run_timestamp as make_run_timestamp
from .util.time import utc_now

LOG = get_logger(__name__)

SectionCallback = Callable[[Section], None]


def _failure_note(exc: BaseException) -> str:
    text = str(exc).strip()
    if isinstance(exc, InventoryError):
        return text or type(exc).__name__
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def run_section(collector: Collector, ctx: CollectContext) -> Section:
    """Run one collector and wrap its outcome in a Section; never raises."""
    spec = collector.spec
    started = perf_counter()
    LOG.info(
        "Collecting section",
        extra={"step": "collect", "phase": "start", "section": spec.key, "ordinal": spec.ordinal},
    )
    try:
        records = collector.collect(ctx)
        section = Section.from_records(spec, records)
    except Exception as e:
        duration_ms = int((perf_counter() - started) * 1000)
        LOG.warning(
            "Section collection failed",
            extra={
                "step": "collect",
                "phase": "error",
                "section": spec.key,
                "error": str(e),
                "error_type": type(e).__name__,
                "duration_ms": duration_ms,
            },
        )
        LOG.debug("Section failure detail", exc_info=True, extra={"section": spec.key})
        return Section.failed(spec, _failure_note(e))
    duration_ms = int((perf_counter() - started) * 1000)
    LOG.info(
        "Section collected",
        extra={
            "step": "collect",
            "phase": "complete",
            "section": spec.key,
            "status": section.status.value,
            "records": len(section.records),
            "duration_ms": duration_ms,
        },
    )
    return section


def run_collectors(
    collectors: Sequence[Collector],
    ctx: CollectContext,
    *,
    run_timestamp: Optional[str] = None,
    output_root: Optional[Path] = None,
    metadata: Optional[Mapping[str, str]] = None,
    on_section: Optional[SectionCallback] = None,
) -> ReportDocument:
    """
    Execute collectors in order and assemble the ReportDocument.

    Completed sections (OK or EMPTY) are published into ctx.facts under the
    section key so later collectors can depend on them. A failed section
    publishes nothing.
    """
    generated_at: datetime = ctx.collected_at or utc_now()
    sections: List[Section] = []
    for collector in collectors:
        section = run_section(collector, ctx)
        if section.status != SectionStatus.FAILED:
            ctx.facts[section.key] = section.records
        sections.append(section)
        if on_section is not None:
            on_section(section)

    return ReportDocument(
        generated_at=generated_at,
        run_timestamp=run_timestamp or make_run_timestamp(generated_at),
        output_root=output_root or Path("."),
        sections=tuple(sections),
        metadata=dict(metadata or {}),
    )


def summarize_sections(doc: ReportDocument) -> List[Mapping[str, Any]]:
    return [
        {
            "ordinal": s.ordinal,
            "key": s.key,
            "title": s.title,
            "status": s.status.value,
            "records": len(s.records),
            "note": s.note,
        }
        for s in doc.sections
    ]
