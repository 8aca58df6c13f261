from datetime import date

from signal_engine.models import DailyStats
from signal_engine.reporting import daily_report, weekly_report
from signal_engine.scoring import RangeSummary


def stats(day, green, amber, red, score, tasks=0, streak=0):
    return DailyStats(
        date=day,
        green_minutes=green,
        amber_minutes=amber,
        red_minutes=red,
        signal_score=score,
        tasks_completed=tasks,
        streak=streak,
    )


def test_daily_report_lists_minutes_and_score():
    report = daily_report(stats(date(2026, 10, 14), 40, 10, 10, 75, tasks=2, streak=3))
    text = report.render_text()
    assert report.title == "2026-10-14 Daily Report"
    assert "Signal score: 75 (Strong Signal)" in text
    assert "- green: 40 min (67%)" in text
    assert "Tasks completed: 2" in text
    assert "Streak: 3 day(s)" in text


def test_empty_day_report():
    report = daily_report(stats(date(2026, 10, 14), 0, 0, 0, 50))
    assert report.summary_lines == ["No activity recorded."]


def test_weekly_report_summarises_days():
    summary = RangeSummary(
        start_date=date(2026, 10, 11),
        end_date=date(2026, 10, 17),
        days=[
            stats(date(2026, 10, 12), 40, 10, 10, 75, tasks=1),
            stats(date(2026, 10, 13), 0, 30, 0, 50),
        ],
    )
    text = weekly_report(summary).render_text()
    assert text.startswith("Week 2026-10-11 - 2026-10-17")
    assert "Average signal score: 63 (Moderate)" in text
    assert "Best day: 2026-10-12 (75)" in text
    assert "- Tue 2026-10-13: 50 (30 min)" in text


def test_weekly_report_without_days():
    summary = RangeSummary(start_date=date(2026, 10, 11), end_date=date(2026, 10, 17))
    assert weekly_report(summary).summary_lines == ["No activity recorded."]
