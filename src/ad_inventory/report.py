"""
Self-contained HTML rendering of a ReportDocument.

Each section is a <details> element, expanded by default, with its own toggle.
One global button expands or collapses every section at once. Health status is
carried as a CSS class per cell; the cell text is identical to what the
tabular exports contain.
"""
from __future__ import annotations

import html
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .logging import get_logger
from .normalize.schema import Cell, HealthStatus, ReportDocument, Section, SectionStatus

LOG = get_logger(__name__)

STATUS_CLASSES: Dict[Optional[HealthStatus], str] = {
    HealthStatus.HEALTHY: "healthy",
    HealthStatus.WARNING: "warning",
    HealthStatus.CRITICAL: "critical",
    HealthStatus.UNKNOWN: "unknown",
    None: "plain",
}

SECTION_STATUS_CLASSES: Dict[SectionStatus, str] = {
    SectionStatus.OK: "section-ok",
    SectionStatus.EMPTY: "section-empty",
    SectionStatus.FAILED: "section-failed",
}

CSS = """
:root {
    --bg: #f7f9fb;
    --panel: #ffffff;
    --border: #d6dde6;
    --text: #1f2933;
    --muted: #616e7c;
    --accent: #1d4f91;
    --healthy: #1e7b34;
    --healthy-bg: #e3f4e8;
    --warning: #8a5a00;
    --warning-bg: #fff4d6;
    --critical: #b3261e;
    --critical-bg: #fde4e1;
    --unknown: #52606d;
    --unknown-bg: #e9edf1;
}

* { box-sizing: border-box; }

body {
    font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;
    background: var(--bg);
    color: var(--text);
    margin: 0;
    padding: 2rem;
    line-height: 1.45;
}

.container { max-width: 1400px; margin: 0 auto; }

h1 {
    color: var(--accent);
    border-bottom: 2px solid var(--accent);
    padding-bottom: 0.4rem;
    margin-bottom: 0.3rem;
}

.subtitle { color: var(--muted); margin: 0.1rem 0; }

.toolbar { margin: 1.2rem 0; display: flex; gap: 1rem; align-items: center; }

.toolbar button {
    background: var(--accent);
    color: #fff;
    border: none;
    border-radius: 4px;
    padding: 0.45rem 1rem;
    cursor: pointer;
}

.toc { background: var(--panel); border: 1px solid var(--border); border-radius: 6px; padding: 0.8rem 1.4rem; }
.toc ol { margin: 0.3rem 0; }
.toc .badge { font-size: 0.8rem; color: var(--muted); margin-left: 0.4rem; }

details.section {
    background: var(--panel);
    border: 1px solid var(--border);
    border-radius: 6px;
    margin: 1rem 0;
    padding: 0.4rem 1rem 1rem 1rem;
}

details.section-failed { border-left: 5px solid var(--critical); }
details.section-empty { border-left: 5px solid var(--unknown); }
details.section-ok { border-left: 5px solid var(--healthy); }

details.section > summary {
    cursor: pointer;
    font-size: 1.2rem;
    font-weight: 600;
    padding: 0.5rem 0;
}

.count { color: var(--muted); font-weight: normal; font-size: 0.95rem; }

.notice {
    padding: 0.7rem 1rem;
    border-radius: 4px;
    margin-top: 0.4rem;
}

.notice.failed { background: var(--critical-bg); color: var(--critical); }
.notice.empty { background: var(--unknown-bg); color: var(--unknown); }

table { border-collapse: collapse; width: 100%; font-size: 0.9rem; }
th, td { border: 1px solid var(--border); padding: 0.35rem 0.55rem; text-align: left; vertical-align: top; }
th { background: #eef2f7; }

td.healthy { color: var(--healthy); background: var(--healthy-bg); font-weight: 600; }
td.warning { color: var(--warning); background: var(--warning-bg); font-weight: 600; }
td.critical { color: var(--critical); background: var(--critical-bg); font-weight: 600; }
td.unknown { color: var(--unknown); background: var(--unknown-bg); font-style: italic; }

.footer { color: var(--muted); font-size: 0.85rem; margin-top: 2rem; text-align: center; }

@media print {
    .toolbar { display: none; }
}
"""

SCRIPT = """
function setAllSections(open) {
    document.querySelectorAll('details.section').forEach(function (el) { el.open = open; });
}
function toggleAllSections() {
    var sections = document.querySelectorAll('details.section');
    var anyClosed = Array.prototype.some.call(sections, function (el) { return !el.open; });
    setAllSections(anyClosed);
    document.getElementById('toggle-all').textContent = anyClosed ? 'Collapse all' : 'Expand all';
}
"""


def _esc(value: object) -> str:
    return html.escape("" if value is None else str(value))


def _section_anchor(section: Section) -> str:
    return f"section-{section.ordinal}-{section.key}"


def _render_cell(cell: Cell) -> str:
    css = STATUS_CLASSES.get(cell.status, "plain")
    return f'<td class="{css}">{_esc(cell.text)}</td>'


def _render_table(section: Section) -> str:
    fields = section.spec.fields
    head = "".join(f"<th>{_esc(name)}</th>" for name in fields)
    body_rows: List[str] = []
    for cells in section.cell_rows():
        body_rows.append("<tr>" + "".join(_render_cell(cells[name]) for name in fields) + "</tr>")
    return f"<table><thead><tr>{head}</tr></thead><tbody>{''.join(body_rows)}</tbody></table>"


def render_section_html(section: Section) -> str:
    css = SECTION_STATUS_CLASSES[section.status]
    if section.status == SectionStatus.FAILED:
        count = "failed"
        body = f'<div class="notice failed">Collection failed: {_esc(section.note)}</div>'
    elif section.status == SectionStatus.EMPTY:
        count = "no data"
        body = f'<div class="notice empty">{_esc(section.note)}</div>'
    else:
        count = f"{len(section.records)} record{'s' if len(section.records) != 1 else ''}"
        body = _render_table(section)
    return (
        f'<details class="section {css}" id="{_section_anchor(section)}" open>'
        f'<summary>{section.ordinal}. {_esc(section.title)} <span class="count">({_esc(count)})</span></summary>'
        f"{body}</details>"
    )


def _render_toc(sections: Sequence[Section]) -> str:
    items = "".join(
        f'<li><a href="#{_section_anchor(s)}">{_esc(s.title)}</a>'
        f'<span class="badge">{_esc(s.status.value)}</span></li>'
        for s in sections
    )
    return f'<nav class="toc"><strong>Contents</strong><ol>{items}</ol></nav>'


def render_report_html(doc: ReportDocument, *, title: str = "Active Directory Infrastructure Report") -> str:
    counts = doc.counts_by_status()
    meta_lines = [f"Generated: {doc.generated_at.isoformat(timespec='seconds')}", f"Run: {doc.run_timestamp}"]
    for key, value in sorted(doc.metadata.items()):
        meta_lines.append(f"{key}: {value}")
    subtitle = "".join(f'<p class="subtitle">{_esc(line)}</p>' for line in meta_lines)
    status_line = ", ".join(f"{name}={count}" for name, count in counts.items())
    sections_html = "\n".join(render_section_html(s) for s in doc.sections)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{_esc(title)}</title>
<style>{CSS}</style>
<script>{SCRIPT}</script>
</head>
<body>
<div class="container">
<h1>{_esc(title)}</h1>
{subtitle}
<div class="toolbar">
<button type="button" id="toggle-all" onclick="toggleAllSections()">Collapse all</button>
<span class="subtitle">Sections: {_esc(status_line)}</span>
</div>
{_render_toc(doc.sections)}
{sections_html}
<div class="footer">Read-only inventory snapshot. Values reflect directory state at collection time.</div>
</div>
</body>
</html>
"""


def write_report_html(doc: ReportDocument, path: Path, *, title: Optional[str] = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    content = render_report_html(doc, title=title) if title else render_report_html(doc)
    path.write_text(content, encoding="utf-8")
    LOG.info("Wrote HTML report", extra={"step": "report", "phase": "complete", "path": str(path)})
    return path
