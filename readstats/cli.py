from __future__ import annotations

import argparse
from datetime import date, datetime, time as dtime
import json
import logging
from pathlib import Path

from .clock import LOCAL_TZ
from .config import Settings, default_settings_path, load_settings, save_settings, with_overrides
from .exporting import export_sessions_csv
from .metrics import AggregateSnapshot
from .models import INTENTS
from .reporting import format_duration, format_duration_detailed, generate_report
from .service import AutoRefresher, StatsService, create_service

DEFAULT_OUT_DIR = Path(__file__).resolve().parent / "out"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_when(value: str) -> datetime:
    text = value.strip()
    try:
        if len(text) == 10:
            day = date.fromisoformat(text)
            return datetime.combine(day, dtime(hour=12)).replace(tzinfo=LOCAL_TZ)

        dt = datetime.fromisoformat(text)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=LOCAL_TZ)
        return dt
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"invalid time {value!r}: use YYYY-MM-DD or an ISO datetime"
        ) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="readstats",
        description="readstats: reading sessions, streaks, milestones and stats",
    )
    parser.add_argument("--settings", default=None, help="settings JSON path (default ~/.readstats/settings.json)")
    parser.add_argument("--db", default=None, help="SQLite database path")
    parser.add_argument("--state", default=None, help="cache/milestone state file path")
    parser.add_argument("--user", default=None, help="user id whose data is read")
    parser.add_argument("--log-level", default=None, help="logging level, e.g. INFO or DEBUG")

    subparsers = parser.add_subparsers(dest="command", required=True)

    log_parser = subparsers.add_parser("log", help="record a finished reading session")
    log_parser.add_argument("--book", default=None, help="book id")
    log_parser.add_argument("--minutes", type=float, default=None, help="duration in minutes")
    log_parser.add_argument("--seconds", type=int, default=None, help="duration in seconds (wins over --minutes)")
    log_parser.add_argument("--pages", type=int, default=0, help="pages read")
    log_parser.add_argument("--intent", choices=INTENTS, default=None, help="why you were reading")
    log_parser.add_argument("--at", type=parse_when, default=None, help="when the session ended")

    book_parser = subparsers.add_parser("book", help="add or update a book")
    book_parser.add_argument("--id", default=None, help="book id (new id when omitted)")
    book_parser.add_argument("--title", default="", help="title")
    book_parser.add_argument("--status", default="Want to Read", help="Reading, Completed, Want to Read, Abandoned")
    book_parser.add_argument("--tags", default="", help="comma separated tags")
    book_parser.add_argument("--current-page", type=int, default=0, help="current page")
    book_parser.add_argument("--total-pages", type=int, default=0, help="total pages")

    sessions_parser = subparsers.add_parser("sessions", help="list recorded sessions")
    sessions_parser.add_argument("--limit", type=int, default=20, help="maximum rows to show")

    stats_parser = subparsers.add_parser("stats", help="show reading statistics")
    stats_parser.add_argument("--refresh", action="store_true", help="ignore the cache and recompute")
    stats_parser.add_argument("--json", action="store_true", help="print the snapshot as JSON")

    subparsers.add_parser("streak", help="show the current reading streak")
    subparsers.add_parser("milestones", help="list achieved milestones")

    activities_parser = subparsers.add_parser("activities", help="show the activity log")
    activities_parser.add_argument("--limit", type=int, default=20, help="maximum rows to show")

    report_parser = subparsers.add_parser("report", help="write a Markdown stats report")
    report_parser.add_argument("--out-dir", default=str(DEFAULT_OUT_DIR), help="output directory")

    export_parser = subparsers.add_parser("export", help="export sessions as CSV")
    export_parser.add_argument("--out-dir", default=str(DEFAULT_OUT_DIR), help="output directory")

    watch_parser = subparsers.add_parser("watch", help="refresh stats periodically")
    watch_parser.add_argument("--interval", type=float, default=None, help="seconds between refreshes")
    watch_parser.add_argument("--ticks", type=int, default=None, help="stop after this many refreshes")

    active_parser = subparsers.add_parser("active", help="show, update, end or cancel the session in progress")
    active_parser.add_argument("--book", default=None, help="book id")
    active_parser.add_argument("--minutes", type=float, default=None, help="minutes read so far")
    active_parser.add_argument("--seconds", type=int, default=None, help="seconds read so far (wins over --minutes)")
    active_parser.add_argument("--pages", type=int, default=None, help="pages read so far")
    active_parser.add_argument("--intent", choices=INTENTS, default=None, help="why you are reading")
    finish_group = active_parser.add_mutually_exclusive_group()
    finish_group.add_argument("--end", action="store_true", help="record the session and clear it")
    finish_group.add_argument("--cancel", action="store_true", help="discard the session")

    config_parser = subparsers.add_parser("config", help="show or save settings")
    config_parser.add_argument("--weekly-goal", type=int, default=None, help="weekly goal in minutes")
    config_parser.add_argument("--refresh-interval", type=int, default=None, help="seconds between refreshes")
    config_parser.add_argument("--cache-max-age", type=int, default=None, help="seconds before cached stats are stale")
    config_parser.add_argument("--timezone", default=None, help="IANA zone name, empty for local time")
    config_parser.add_argument("--save", action="store_true", help="write the resolved settings to the settings file")

    serve_parser = subparsers.add_parser("serve", help="run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="bind address")
    serve_parser.add_argument("--port", type=int, default=8765, help="port")

    return parser


def resolve_settings(args: argparse.Namespace) -> Settings:
    settings = load_settings(Path(args.settings) if args.settings else None)
    return with_overrides(
        settings,
        db_path=args.db,
        state_path=args.state,
        user_id=args.user.strip() if args.user else None,
        log_level=args.log_level.upper() if args.log_level else None,
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = resolve_settings(args)
    configure_logging(settings.log_level)

    if not settings.user_id.strip():
        parser.error("user id must not be empty")
    if args.command == "config":
        return _handle_config(args, settings, parser)
    if args.command == "serve":
        return _handle_serve(args, settings)

    try:
        service = create_service(settings)
    except ValueError as exc:
        parser.error(str(exc))
    # Mutating commands emit domain events; the attached service refreshes on them.
    service.attach()

    if args.command == "log":
        return _handle_log(args, service, parser)
    if args.command == "book":
        return _handle_book(args, service, parser)
    if args.command == "sessions":
        return _handle_sessions(args, service)
    if args.command == "stats":
        return _handle_stats(args, service)
    if args.command == "streak":
        print(f"Current streak: {service.streak()} day(s)")
        return 0
    if args.command == "milestones":
        return _handle_milestones(service)
    if args.command == "activities":
        return _handle_activities(args, service)
    if args.command == "report":
        report_path = generate_report(service.load(), Path(args.out_dir))
        print(f"Report written: {report_path}")
        return 0
    if args.command == "export":
        csv_path = export_sessions_csv(service.db, service.user_id, Path(args.out_dir))
        print(f"CSV exported: {csv_path}")
        return 0
    if args.command == "active":
        return _handle_active(args, service, parser)
    if args.command == "watch":
        return _handle_watch(args, service, settings, parser)

    parser.print_help()
    return 2


def _handle_log(args: argparse.Namespace, service: StatsService, parser: argparse.ArgumentParser) -> int:
    if args.pages < 0:
        parser.error("--pages must not be negative")
    if args.seconds is None and args.minutes is None:
        parser.error("one of --seconds or --minutes is required")
    if (args.seconds is not None and args.seconds < 0) or (args.minutes is not None and args.minutes < 0):
        parser.error("durations must not be negative")

    raw: dict[str, object] = {"pages_read": args.pages, "book_id": args.book, "intent": args.intent}
    if args.seconds is not None:
        raw["duration_seconds"] = args.seconds
    if args.minutes is not None:
        raw["duration_minutes"] = args.minutes
    if args.at is not None:
        raw["created_at"] = args.at

    session = service.record_session(raw)
    print(
        f"Logged session {session.id}: {format_duration(session.duration_seconds)}, "
        f"{session.pages_read} page(s)"
    )
    return 0


def _handle_book(args: argparse.Namespace, service: StatsService, parser: argparse.ArgumentParser) -> int:
    if args.current_page < 0 or args.total_pages < 0:
        parser.error("page numbers must not be negative")
    try:
        book = service.save_book(
            {
                "id": args.id,
                "title": args.title,
                "status": args.status,
                "tags": args.tags,
                "current_page": args.current_page,
                "total_pages": args.total_pages,
            }
        )
    except ValueError as exc:
        parser.error(str(exc))
    print(f"Saved book {book.id}: {book.title or '-'} [{book.status}]")
    return 0


def _handle_sessions(args: argparse.Namespace, service: StatsService) -> int:
    sessions = service.db.list_sessions(service.user_id)[: max(1, args.limit)]
    if not sessions:
        print("No sessions recorded.")
        return 0

    for item in sessions:
        start_text = item.created_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        print(
            f"{start_text} | {format_duration(item.duration_seconds)} | {item.pages_read} pages | "
            f"book: {item.book_id or '-'} | intent: {item.intent or '-'}"
        )
    return 0


def _handle_stats(args: argparse.Namespace, service: StatsService) -> int:
    snapshot = service.load(force=args.refresh)
    if args.json:
        print(json.dumps(snapshot.to_dict(), ensure_ascii=False, indent=2))
        return 0

    windows = snapshot.windows
    print("[Time]")
    print(f"Lifetime: {format_duration_detailed(windows.lifetime_sec)}")
    print(f"Today: {format_duration(windows.today_sec)}")
    print(f"Last 7 days: {format_duration(windows.week_sec)}")
    print(f"Last month: {format_duration(windows.month_sec)}")
    print(f"Average session: {format_duration(snapshot.avg_session_sec)}")
    print(f"Longest session: {format_duration(snapshot.longest_session_sec)}")
    print("")
    print("[Pages]")
    print(f"Total: {snapshot.total_pages} | per day: {snapshot.pages_per_day} | per hour: {snapshot.pages_per_hour}")
    print("")
    print("[Habits]")
    print(f"Streak: {snapshot.streak} day(s)")
    print(f"Best day: {snapshot.best_day or '-'} | best time: {snapshot.best_time_of_day or '-'}")
    print(f"Weekly goal: {snapshot.weekly_goal_percent}%")
    return 0


def _handle_milestones(service: StatsService) -> int:
    service.load()
    achieved = service.tracker.achieved()
    if not achieved:
        print("No milestones yet.")
        return 0
    for key, when in sorted(achieved.items(), key=lambda item: item[1]):
        print(f"{when} | {key}")
    return 0


def _handle_activities(args: argparse.Namespace, service: StatsService) -> int:
    items = service.activities(limit=args.limit)
    if not items:
        print("No activity yet.")
        return 0
    for item in items:
        stamp = item.created_at.astimezone().strftime("%Y-%m-%d %H:%M:%S") if item.created_at else "-"
        print(f"{stamp} | {item.type} | {item.content}")
    return 0


def _handle_watch(
    args: argparse.Namespace,
    service: StatsService,
    settings: Settings,
    parser: argparse.ArgumentParser,
) -> int:
    interval = args.interval if args.interval is not None else settings.refresh_interval_sec
    if interval < 0:
        parser.error("--interval must not be negative")
    if args.ticks is not None and args.ticks < 1:
        parser.error("--ticks must be at least 1")

    def _print(snapshot: AggregateSnapshot) -> None:
        print(
            f"{snapshot.computed_at.strftime('%H:%M:%S')} | today {format_duration(snapshot.windows.today_sec)} | "
            f"{snapshot.today_pages} pages | streak {snapshot.streak}",
            flush=True,
        )

    _print(service.load(force=True))
    refresher = AutoRefresher(service, interval_sec=interval, on_refresh=_print)
    try:
        refresher.run(max_ticks=args.ticks)
    except KeyboardInterrupt:
        refresher.request_stop()
        return 130
    finally:
        service.detach()
    return 0


def _handle_active(args: argparse.Namespace, service: StatsService, parser: argparse.ArgumentParser) -> int:
    if args.cancel:
        print("Active session cancelled." if service.cancel_active_session() else "No active session.")
        return 0
    if args.end:
        session = service.end_active_session()
        if session is None:
            print("No active session.")
            return 0
        print(
            f"Recorded session {session.id}: {format_duration(session.duration_seconds)}, "
            f"{session.pages_read} page(s)"
        )
        return 0

    for value in (args.minutes, args.seconds, args.pages):
        if value is not None and value < 0:
            parser.error("progress values must not be negative")
    updates = {
        "book_id": args.book,
        "elapsed_seconds": args.seconds,
        "duration_minutes": args.minutes,
        "pages_read": args.pages,
        "intent": args.intent,
    }
    if any(value is not None for value in updates.values()):
        active = service.update_active_session(updates)
    else:
        active = service.active_session()
    if active is None:
        print("No active session.")
        return 0
    print(json.dumps(active, ensure_ascii=False, indent=2, sort_keys=True))
    return 0


def _handle_config(args: argparse.Namespace, settings: Settings, parser: argparse.ArgumentParser) -> int:
    for value in (args.weekly_goal, args.refresh_interval):
        if value is not None and value < 1:
            parser.error("--weekly-goal and --refresh-interval must be at least 1")
    if args.cache_max_age is not None and args.cache_max_age < 0:
        parser.error("--cache-max-age must not be negative")

    updated = with_overrides(
        settings,
        weekly_goal_minutes=args.weekly_goal,
        refresh_interval_sec=args.refresh_interval,
        cache_max_age_sec=args.cache_max_age,
        timezone=args.timezone.strip() if args.timezone is not None else None,
    )
    print(json.dumps(updated.to_dict(), ensure_ascii=False, indent=2, sort_keys=True))
    if args.save:
        path = save_settings(updated, Path(args.settings) if args.settings else default_settings_path())
        print(f"Settings saved: {path}")
    return 0


def _handle_serve(args: argparse.Namespace, settings: Settings) -> int:
    try:
        import uvicorn
    except ImportError as exc:
        print(f"Cannot start the API: uvicorn is not installed ({exc})")
        return 2

    from .api.app import create_app

    uvicorn.run(create_app(settings=settings), host=args.host, port=args.port, log_level="warning")
    return 0
