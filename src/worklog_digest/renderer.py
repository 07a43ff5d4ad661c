"""Render daily summary records into Markdown, JSON, and HTML reports."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from worklog_digest.models import DailySummaryRecord


def render_report(
    records: list[DailySummaryRecord],
    output_root: Path,
    report_name: str,
) -> Path:
    """Write a report package to disk and return the output directory.

    Args:
        records: Day records in ascending day order.
        output_root: Root directory where report folders are created.
        report_name: Folder name for this report, e.g. ``alice-2026-10-01``.

    Returns:
        The report-specific directory containing rendered files.
    """
    target_dir = output_root / report_name
    target_dir.mkdir(parents=True, exist_ok=True)

    (target_dir / "report.md").write_text(render_markdown(records), encoding="utf-8")

    payload = [record.model_dump(mode="json") for record in records]
    (target_dir / "report.json").write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    (target_dir / "report.html").write_text(_render_html(records, report_name), encoding="utf-8")

    return target_dir


def render_text(record: DailySummaryRecord) -> str:
    """Return the enhanced text when present, otherwise the basic summary."""
    if record.has_enhancement and record.enhanced_text:
        return record.enhanced_text
    return record.basic_text


def render_markdown(records: list[DailySummaryRecord]) -> str:
    """Render a human-readable Markdown representation of the records."""
    if not records:
        return "# Work Summary\n\n_No commits in range._\n"

    lines = [
        f"# Work Summary: {records[0].author_name}",
        "",
        f"- Repository: `{records[0].repository}`",
        f"- Days: `{len(records)}`",
        "",
    ]
    for record in records:
        source = f"enhanced by `{record.model_identifier}`" if record.has_enhancement else "basic"
        lines.extend(
            [
                f"## {record.day.isoformat()} ({source})",
                "",
                render_text(record),
                "",
            ]
        )
    return "\n".join(lines)


def _render_html(records: list[DailySummaryRecord], title: str) -> str:
    sections = []
    for record in records:
        css_class = "day enhanced" if record.has_enhancement else "day basic"
        sections.append(
            "\n".join(
                [
                    f'<section class="{css_class}" data-day="{record.day.isoformat()}">',
                    f"<h2>{_escape_html(record.day.isoformat())}</h2>",
                    f"<p>{_escape_html_with_breaks(render_text(record))}</p>",
                    "</section>",
                ]
            )
        )

    return "\n".join(
        [
            "<!doctype html>",
            '<html lang="en">',
            "<head>",
            '<meta charset="utf-8" />',
            f"<title>{_escape_html(title)}</title>",
            "</head>",
            "<body>",
            f"<h1>{_escape_html(title)}</h1>",
            *sections,
            "</body>",
            "</html>",
            "",
        ]
    )


def _escape_html_with_breaks(value: Any) -> str:
    """Escape HTML-sensitive characters and preserve line breaks."""
    return _escape_html(value).replace("\n", "<br />")


def _escape_html(value: Any) -> str:
    """Escape a value for direct inclusion in HTML text content."""
    text = str(value)
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )
