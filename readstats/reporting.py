from __future__ import annotations

from pathlib import Path

from .metrics import AggregateSnapshot


def format_duration(seconds: int) -> str:
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes = rest // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_duration_detailed(seconds: int) -> str:
    total = max(0, int(seconds))
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60

    parts: list[str] = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0 or not parts:
        parts.append(f"{minutes}m")
    return " ".join(parts)


def render_report(snapshot: AggregateSnapshot) -> str:
    ref = snapshot.computed_at
    windows = snapshot.windows
    lines: list[str] = []
    lines.append(f"# Reading stats {ref.strftime('%Y-%m-%d')}")
    lines.append("")
    lines.append(f"- Generated: {ref.strftime('%Y-%m-%d %H:%M:%S %Z')}")
    lines.append(f"- Current streak: {snapshot.streak} day{'s' if snapshot.streak != 1 else ''}")
    lines.append("")

    lines.append("## Time")
    lines.append(f"- Lifetime: {format_duration_detailed(windows.lifetime_sec)}")
    lines.append(f"- Today: {format_duration(windows.today_sec)}")
    lines.append(f"- Last 7 days: {format_duration(windows.week_sec)}")
    lines.append(f"- Last month: {format_duration(windows.month_sec)}")
    lines.append(f"- Average session: {format_duration(snapshot.avg_session_sec)}")
    lines.append(f"- Longest session: {format_duration(snapshot.longest_session_sec)}")
    lines.append(f"- Weekly goal: {snapshot.weekly_goal_percent}% of {snapshot.weekly_goal_minutes} min")
    lines.append("")

    lines.append("## Pages")
    lines.append(f"- Total: {snapshot.total_pages}")
    lines.append(f"- Per day: {snapshot.pages_per_day}")
    lines.append(f"- Per hour: {snapshot.pages_per_hour}")
    lines.append("")

    lines.append("## Books")
    lines.append(f"- Finished: {snapshot.books.finished}")
    lines.append(f"- Reading: {snapshot.books.reading}")
    lines.append(f"- Abandoned: {snapshot.books.abandoned}")
    lines.append(f"- Average time per finished book: {format_duration(snapshot.avg_time_per_book_sec)}")
    lines.append("")

    lines.append("## Tags")
    top = snapshot.top_tags(5)
    if top:
        lines.append("| Tag | Time | Pages | Sessions | Share |")
        lines.append("| --- | --- | --- | --- | --- |")
        for tag, stat in top:
            lines.append(
                f"| {tag} | {format_duration(stat.time_sec)} | {stat.pages} | {stat.sessions} | {stat.percentage}% |"
            )
    else:
        lines.append("No tagged reading yet.")
    lines.append("")

    lines.append("## Intent")
    lines.append("| Intent | Time | Sessions | Share |")
    lines.append("| --- | --- | --- | --- |")
    for intent, stat in snapshot.intents.items():
        lines.append(f"| {intent} | {format_duration(stat.time_sec)} | {stat.sessions} | {stat.percentage}% |")
    lines.append("")

    lines.append("## Habits")
    lines.append(f"- Sessions in the last 7 days: {snapshot.sessions_this_week}")
    lines.append(f"- Best day: {snapshot.best_day or '-'}")
    lines.append(f"- Best time of day: {snapshot.best_time_of_day or '-'}")
    lines.append("")

    lines.append("## Last 7 days (minutes)")
    lines.append("| Days ago | Minutes |")
    lines.append("| --- | --- |")
    for days_ago, minutes in enumerate(snapshot.weekly_minutes):
        label = "today" if days_ago == 0 else str(days_ago)
        lines.append(f"| {label} | {minutes} |")
    lines.append("")
    return "\n".join(lines)


def generate_report(snapshot: AggregateSnapshot, out_dir: Path) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / f"reading-stats-{snapshot.computed_at.strftime('%Y-%m-%d')}.md"
    report_path.write_text(render_report(snapshot), encoding="utf-8")
    return report_path
