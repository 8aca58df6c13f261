"""Plain-text daily and weekly reports."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from .models import DailyStats
from .scoring import RangeSummary, score_label


@dataclass(slots=True)
class Report:
    title: str
    summary_lines: List[str]

    def render_text(self) -> str:
        return "\n".join([self.title, "-" * len(self.title), *self.summary_lines])


def _percent(part: int, total: int) -> str:
    return f"{part / total:.0%}" if total else "0%"


def daily_report(stats: DailyStats) -> Report:
    title = f"{stats.date} Daily Report"
    total = stats.total_minutes
    if total == 0 and stats.tasks_completed == 0:
        return Report(title=title, summary_lines=["No activity recorded."])
    lines = [
        f"Signal score: {stats.signal_score} ({score_label(stats.signal_score)})",
        f"Tracked: {total} min",
        f"- green: {stats.green_minutes} min ({_percent(stats.green_minutes, total)})",
        f"- amber: {stats.amber_minutes} min ({_percent(stats.amber_minutes, total)})",
        f"- red: {stats.red_minutes} min ({_percent(stats.red_minutes, total)})",
        f"Tasks completed: {stats.tasks_completed}",
    ]
    if stats.streak:
        lines.append(f"Streak: {stats.streak} day(s)")
    return Report(title=title, summary_lines=lines)


def weekly_report(summary: RangeSummary) -> Report:
    title = f"Week {summary.start_date} - {summary.end_date}"
    if not summary.days:
        return Report(title=title, summary_lines=["No activity recorded."])
    best = max(summary.days, key=lambda day: (day.signal_score, day.date))
    lines = [
        f"Days tracked: {len(summary.days)}",
        f"Average signal score: {summary.average_signal_score} ({score_label(summary.average_signal_score)})",
        f"Tracked: {summary.total_minutes} min "
        f"(green {summary.green_minutes}, amber {summary.amber_minutes}, red {summary.red_minutes})",
        f"Tasks completed: {summary.tasks_completed}",
        f"Best day: {best.date} ({best.signal_score})",
    ]
    for day in summary.days:
        lines.append(f"- {day.date:%a} {day.date}: {day.signal_score} ({day.total_minutes} min)")
    return Report(title=title, summary_lines=lines)
