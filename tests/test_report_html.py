from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from ad_inventory.collectors import default_collectors
from ad_inventory.normalize.schema import (
    SECTION_SPECS,
    ReportDocument,
    Section,
    SiteRecord,
    section_spec,
)
from ad_inventory.orchestrator import run_collectors
from ad_inventory.report import render_report_html, write_report_html


def _doc(sections) -> ReportDocument:
    return ReportDocument(
        generated_at=datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc),
        run_timestamp="20261018T120000Z",
        output_root=Path("."),
        sections=tuple(sections),
    )


def test_every_section_is_collapsible_and_open_by_default(make_ctx, snapshot_data) -> None:
    doc = run_collectors(default_collectors(), make_ctx(snapshot_data))
    page = render_report_html(doc)
    assert page.count('<details class="section') == 13
    assert page.count(" open>") == 13
    assert 'id="toggle-all"' in page
    assert "function toggleAllSections" in page


def test_sections_keep_their_order(make_ctx, snapshot_data) -> None:
    doc = run_collectors(default_collectors(), make_ctx(snapshot_data))
    page = render_report_html(doc)
    positions = [page.index(f'id="section-{s.ordinal}-{s.key}"') for s in SECTION_SPECS]
    assert positions == sorted(positions)


def test_health_statuses_have_distinct_classes(make_ctx, snapshot_data) -> None:
    page = render_report_html(run_collectors(default_collectors(), make_ctx(snapshot_data)))
    for css in ('class="healthy"', 'class="warning"', 'class="critical"', 'class="unknown"'):
        assert css in page


def test_failed_section_renders_notice_not_table() -> None:
    sections = [Section.from_records(spec, []) for spec in SECTION_SPECS]
    sections[5] = Section.failed(section_spec("dhcp"), "No authorized DHCP servers found")
    page = render_report_html(_doc(sections))
    start = page.index('id="section-6-dhcp"')
    end = page.index("</details>", start)
    block = page[start:end]
    assert "Collection failed: No authorized DHCP servers found" in block
    assert "<table>" not in block
    assert "No sites returned." in page


def test_values_are_escaped() -> None:
    sections = [Section.from_records(spec, []) for spec in SECTION_SPECS]
    sections[3] = Section.from_records(section_spec("sites"), [SiteRecord(name="<script>x</script>", location="A&B")])
    page = render_report_html(_doc(sections))
    assert "<script>x</script>" not in page
    assert "&lt;script&gt;x&lt;/script&gt;" in page
    assert "A&amp;B" in page


def test_write_report_html(tmp_path) -> None:
    sections = [Section.from_records(spec, []) for spec in SECTION_SPECS]
    path = write_report_html(_doc(sections), tmp_path / "nested" / "report.html")
    assert path.read_text(encoding="utf-8").startswith("<!DOCTYPE html>")
