"""Deterministic plain-text rendering of a day's commits."""

from __future__ import annotations

from datetime import date
from typing import Literal, Sequence

from worklog_digest.models import Commit

DateStyle = Literal["thai", "iso"]

THAI_MONTH_ABBR = (
    "ม.ค.",
    "ก.พ.",
    "มี.ค.",
    "เม.ย.",
    "พ.ค.",
    "มิ.ย.",
    "ก.ค.",
    "ส.ค.",
    "ก.ย.",
    "ต.ค.",
    "พ.ย.",
    "ธ.ค.",
)

BUDDHIST_ERA_OFFSET = 543


def format_thai_date(day: date) -> str:
    """Format ``day`` as ``"20 ก.ย. 2568"`` (Buddhist-era year)."""
    return f"{day.day} {THAI_MONTH_ABBR[day.month - 1]} {day.year + BUDDHIST_ERA_OFFSET}"


def format_iso_date(day: date) -> str:
    return day.isoformat()


def format_date(day: date, style: DateStyle = "thai") -> str:
    if style == "iso":
        return format_iso_date(day)
    return format_thai_date(day)


def render(day: date, commits: Sequence[Commit], style: DateStyle = "thai") -> str:
    """Render the header line and one ``- <message>`` bullet per commit.

    ``commits`` must already be in ascending timestamp order. Messages are kept
    verbatim; the output is never empty because the header is always present.
    """
    lines = [format_date(day, style)]
    lines.extend(f"- {commit.message}" for commit in commits)
    return "\n".join(lines)
