"""Command line entry point for the signal engine."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path

from signal_engine.active_window import ActiveWindowProvider
from signal_engine.config import EngineSettings
from signal_engine.errors import SignalEngineError
from signal_engine.models import ActivityStateChange, NudgeEvent
from signal_engine.reporting import daily_report, weekly_report
from signal_engine.scoring import ScoreEngine
from signal_engine.service import SignalService
from signal_engine.storage import SignalStore
from signal_engine.tasks import TaskService
from signal_engine.tools import ToolRegistry

logger = logging.getLogger(__name__)


def print_state_change(change: ActivityStateChange) -> None:
    stamp = time.strftime("%H:%M:%S")
    print(f"[{stamp}] {change.state.value.upper():5} {change.app_name} -> {change.window_title}")


def print_nudge(event: NudgeEvent) -> None:
    print(f"  nudge: {event.drift_minutes} min off track in {event.current_app}")


def run_monitor(settings: EngineSettings) -> int:
    provider = ActiveWindowProvider()
    if not provider.is_supported():
        sys.stderr.write("Active window monitoring needs Windows; stats, queue and tool work on any platform.\n")
        return 1
    store = SignalStore(settings.db_path)
    service = SignalService(store, provider, settings=settings)
    service.on_activity_state_changed(print_state_change)
    service.on_nudge_triggered(print_nudge)
    service.start()
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        print("\nStopped monitoring.")
    finally:
        service.stop()
        print(daily_report(service.scores.get_day()).render_text())
        store.close()
    return 0


def run_stats(settings: EngineSettings, args: argparse.Namespace) -> int:
    store = SignalStore(settings.db_path)
    try:
        scores = ScoreEngine(store)
        if args.view == "day":
            print(daily_report(scores.get_day(args.date)).render_text())
        elif args.view == "week":
            print(weekly_report(scores.get_week(args.offset)).render_text())
        elif args.view == "streak":
            streak = scores.get_streak()
            print(streak.message)
            if streak.last_recorded_date:
                print(f"Last recorded: {streak.last_recorded_date} (score {streak.last_signal_score})")
        else:
            print(json.dumps(scores.get_insights(), indent=2, ensure_ascii=False))
    finally:
        store.close()
    return 0


def run_queue(settings: EngineSettings, args: argparse.Namespace) -> int:
    store = SignalStore(settings.db_path)
    try:
        tasks = TaskService(store)
        if args.backlog:
            items = tasks.backlog(args.category, args.limit)
            print("Backlog:")
        else:
            items = tasks.signal_queue(args.limit)
            print("Signal queue:")
        if not items:
            print("  (empty)")
        for index, task in enumerate(items, start=1):
            marker = "*" if task.status.value == "in_progress" else " "
            print(f" {marker}{index}. [P{task.priority}] {task.title} ({task.id})")
    finally:
        store.close()
    return 0


def run_tool(settings: EngineSettings, args: argparse.Namespace) -> int:
    store = SignalStore(settings.db_path)
    try:
        registry = ToolRegistry(ScoreEngine(store), TaskService(store))
        if args.name == "list":
            payload = registry.list_tools()
        else:
            try:
                arguments = json.loads(args.arguments) if args.arguments else {}
            except json.JSONDecodeError as exc:
                sys.stderr.write(f"Tool arguments are not valid JSON: {exc}\n")
                return 2
            payload = registry.call(args.name, arguments)
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    finally:
        store.close()
    return 0 if not isinstance(payload, dict) or payload.get("success", True) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Signal engine: activity signal, drift nudges and task queue")
    parser.add_argument("--db", type=Path, help="SQLite database path (overrides SIGNAL_ENGINE_DB_PATH)")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    monitor = sub.add_parser(
        "monitor",
        help="Track the foreground window and nudge on drift (Windows only)",
        description="Foreground window lookup uses the Win32 API, so live monitoring runs on Windows only. "
        "The stats, queue and tool commands work on any platform.",
    )
    monitor.add_argument("--interval", type=float, help="Polling interval in seconds")
    monitor.add_argument("--first-nudge-minutes", type=float, help="Drift minutes before the first nudge")
    monitor.add_argument("--cooldown-minutes", type=float, help="Minimum minutes between nudges")
    monitor.add_argument(
        "--no-notifications",
        action="store_true",
        help="Keep detecting drift but do not raise system notifications",
    )

    stats = sub.add_parser("stats", help="Show signal score reports")
    stats.add_argument("view", choices=["day", "week", "streak", "insights"])
    stats.add_argument("--date", help="Day to report (YYYY-MM-DD)")
    stats.add_argument("--offset", type=int, default=0, help="Week offset, -1 for last week")

    queue = sub.add_parser("queue", help="Show the signal queue or the backlog")
    queue.add_argument("--limit", type=int, default=5)
    queue.add_argument("--backlog", action="store_true", help="Show the backlog instead")
    queue.add_argument("--category", help="Backlog category filter")

    tool = sub.add_parser("tool", help="Call a registered tool, or 'list' to describe them")
    tool.add_argument("name")
    tool.add_argument("arguments", nargs="?", help="JSON object of tool arguments")
    return parser


def settings_from_args(args: argparse.Namespace) -> EngineSettings:
    settings = EngineSettings.from_env()
    if args.db:
        settings = replace(settings, db_path=args.db.expanduser())
    if getattr(args, "interval", None):
        settings = replace(settings, poll_interval_s=max(0.5, args.interval))
    if getattr(args, "first_nudge_minutes", None) is not None:
        settings = replace(settings, first_nudge_minutes=args.first_nudge_minutes)
    if getattr(args, "cooldown_minutes", None) is not None:
        settings = replace(settings, nudge_cooldown_minutes=args.cooldown_minutes)
    if getattr(args, "no_notifications", False):
        settings = replace(settings, show_system_notifications=False)
    return settings


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = settings_from_args(args)
    try:
        if args.command == "monitor":
            return run_monitor(settings)
        if args.command == "stats":
            return run_stats(settings, args)
        if args.command == "queue":
            return run_queue(settings, args)
        return run_tool(settings, args)
    except SignalEngineError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        sys.stderr.write(f"{exc.kind}: {exc}\n")
        return 2


if __name__ == "__main__":
    sys.exit(main())
