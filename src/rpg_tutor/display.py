"""Rich terminal display for rpg-tutor."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

# Map title colors from levels.py to valid Rich color names
_COLOR_MAP: dict[str, str] = {
    "bronze": "dark_orange3",
    "silver": "grey70",
    "gold": "gold1",
    "teal": "deep_sky_blue1",
    "diamond": "cyan",
    "purple": "purple",
    "crimson": "red1",
    "legendary": "orange_red1",
}

RARITY_COLORS: dict[str, str] = {
    "common": "white",
    "uncommon": "green",
    "rare": "blue",
    "epic": "magenta",
    "legendary": "yellow",
}

STATUS_COLORS: dict[str, str] = {
    "waiting": "yellow",
    "active": "green",
    "completed": "blue",
    "cancelled": "grey50",
}


def _safe_color(color: str) -> str:
    """Map a title color to a valid Rich color name."""
    return _COLOR_MAP.get(color, color)


def format_number(n: int) -> str:
    """Format large numbers: 421543 -> '421.5K', 1200 -> '1,200', 1234567 -> '1.2M'."""
    if n >= 1_000_000:
        value = n / 1_000_000
        if value >= 100:
            return f"{value:.0f}M"
        return f"{value:.1f}M"
    if n >= 10_000:
        value = n / 1_000
        if value >= 1000:
            return f"{value:.0f}K"
        return f"{value:.1f}K"
    return f"{n:,}"


def _xp_bar(current: int, total: int, width: int = 20) -> str:
    """Render an XP progress bar as text: [████████░░░░░░░░░░░░]."""
    if total <= 0:
        return "[" + "█" * width + "]"
    ratio = min(current / total, 1.0)
    filled = int(ratio * width)
    empty = width - filled
    return "[" + "█" * filled + "░" * empty + "]"


def print_profile(data: dict) -> None:
    """Print the character sheet: level, XP, stats, streak."""
    level = data.get("level", 1)
    title_color = _safe_color(data.get("title_color", "bronze"))
    current_xp = data.get("current_xp", 0)
    xp_for_next = data.get("xp_for_next", 0)
    specialization = data.get("specialization") or "none"

    lines: list[str] = [""]
    lines.append(f"  [bold {title_color}]{data.get('name', '')}: Level {level} {data.get('title', 'Novice')}[/]")
    bar = _xp_bar(current_xp, xp_for_next)
    lines.append(f"  {bar} {format_number(current_xp)}/{format_number(xp_for_next)} XP")
    lines.append(f"  Total: [bold]{format_number(data.get('total_xp', 0))}[/] XP")
    lines.append("")
    lines.append(f"  Specialization: {specialization}")
    lines.append(f"  \U0001f525 Streak: {data.get('streak_days', 0)} days")
    lines.append("")

    stats = data.get("stats", {})
    bonuses = data.get("bonuses", {})
    for stat, value in stats.items():
        bonus = bonuses.get(stat, 0)
        suffix = f" [green](+{bonus})[/]" if bonus else ""
        lines.append(f"  {stat.capitalize():<13}{value + bonus:>4}{suffix}")
    available = data.get("available_points", 0)
    if available:
        lines.append("")
        lines.append(f"  [bold yellow]{available} stat point(s) to spend[/]")
    lines.append("")

    panel = Panel(
        "\n".join(lines),
        title="[bold]CHARACTER[/]",
        box=box.ROUNDED,
        border_style=title_color,
        width=50,
    )
    console.print(panel)


def print_event_result(data: dict) -> None:
    """Print what an answer or lesson earned."""
    lines: list[str] = [""]
    xp = data.get("xp")
    if xp:
        lines.append(f"  XP earned:       [bold]+{xp['total_xp']}[/]")
        lines.append(
            f"    base {xp['base_xp']}  accuracy {xp['accuracy_bonus']}  "
            f"time {xp['time_bonus']}  stats {xp['stat_bonus']}"
        )
    else:
        lines.append("  No XP this time.")
    lines.append(f"  Level:           {data.get('level', 1)}")
    if data.get("levels_gained"):
        lines.append(
            f"  [bold green]Level up! +{data['levels_gained']} level(s), "
            f"+{data.get('stat_points_awarded', 0)} stat points[/]"
        )
    lines.append(f"  Streak:          {data.get('streak_days', 0)} days")

    for name in data.get("unlocked", []):
        lines.append(f"  \U0001f3c6 {name}")
    for title in data.get("completed_quests", []):
        lines.append(f"  \U0001f4dc Quest complete: {title}")
    lines.append("")

    panel = Panel(
        "\n".join(lines),
        title="[bold]Progress[/]",
        box=box.ROUNDED,
        border_style="green",
        width=50,
    )
    console.print(panel)


def print_achievements(achievements: list[dict]) -> None:
    """Print all achievements with progress bars.

    Each dict has: name, description, rarity, progress (0.0-1.0),
    unlocked (bool), unlocked_at (str|None).
    """
    unlocked = [a for a in achievements if a.get("unlocked")]
    locked = [a for a in achievements if not a.get("unlocked")]
    unlocked.sort(key=lambda a: a.get("unlocked_at") or "", reverse=True)
    locked.sort(key=lambda a: a.get("progress", 0), reverse=True)

    table = Table(
        title="Achievements",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold",
    )
    table.add_column("", width=2)
    table.add_column("Achievement", min_width=20)
    table.add_column("Rarity", width=10)
    table.add_column("Progress", min_width=18)
    table.add_column("Date", width=12)

    for ach in unlocked + locked:
        icon = "✅" if ach.get("unlocked") else "⏳"
        rarity = ach.get("rarity", "common")
        color = RARITY_COLORS.get(rarity, "white")
        progress = ach.get("progress", 0.0)
        pct = int(progress * 100)
        table.add_row(
            icon,
            f"[bold]{ach['name']}[/]\n{ach.get('description', '')}",
            f"[{color}]{rarity.upper()}[/{color}]",
            f"{_xp_bar(pct, 100, width=10)} {pct}%",
            (ach.get("unlocked_at") or "")[:10],
        )

    console.print(table)


def print_quests(quests: list[dict]) -> None:
    """Print active quests with one row per objective."""
    if not quests:
        console.print("  No active quests. Run [bold]rpg-tutor quests --refresh[/] to get new ones.")
        return
    table = Table(title="Quests", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Quest", min_width=18)
    table.add_column("Objective", min_width=24)
    table.add_column("Progress", min_width=18)
    table.add_column("Expires", width=12)

    for quest in quests:
        title = f"[bold]{quest['title']}[/]" + (" ✅" if quest.get("completed") else "")
        for index, obj in enumerate(quest.get("objectives", [])):
            current, target = obj["current_value"], obj["target_value"]
            table.add_row(
                title if index == 0 else "",
                obj["description"],
                f"{_xp_bar(current, target, width=10)} {current}/{target}",
                quest["expires_at"][:10] if index == 0 else "",
            )
        table.add_section()
    console.print(table)


def print_game_modes(modes: list[dict]) -> None:
    table = Table(title="Game Modes", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Id", style="bold")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Category")
    table.add_column("Difficulty", justify="right")
    table.add_column("Players", justify="right")
    table.add_column("Min Lvl", justify="right")
    for mode in modes:
        table.add_row(
            mode["id"],
            mode["name"],
            mode["type"],
            mode["category"],
            "★" * mode["difficulty"],
            str(mode["max_participants"]),
            str(mode["min_level"]),
        )
    console.print(table)


def print_session(data: dict) -> None:
    """Print a game session with its leaderboard."""
    status = data.get("status", "waiting")
    color = STATUS_COLORS.get(status, "white")
    table = Table(
        title=f"{data.get('mode_name', '')} [{color}]{status.upper()}[/]  round {data.get('current_round', 0)}"
        f"/{data.get('total_rounds', 1)}",
        caption=f"session {data.get('id', '')}",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold",
        border_style=color,
    )
    table.add_column("#", justify="right", width=3)
    table.add_column("Player", min_width=14)
    table.add_column("Score", justify="right")
    table.add_column("Correct", justify="right")
    table.add_column("Lives", justify="right")
    table.add_column("Status")
    for entry in data.get("leaderboard", []):
        lives = entry.get("lives")
        table.add_row(
            str(entry["position"]),
            entry["username"],
            format_number(entry["score"]),
            str(entry["correct_answers"]),
            "❤" * lives if lives else ("-" if lives is None else "0"),
            entry["status"],
        )
    console.print(table)


def print_session_list(sessions: list[dict]) -> None:
    if not sessions:
        console.print("[dim]No game sessions.[/]")
        return
    table = Table(title="Game Sessions", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Session")
    table.add_column("Mode")
    table.add_column("Host")
    table.add_column("Status")
    for row in sessions:
        color = STATUS_COLORS.get(row["status"], "white")
        table.add_row(row["id"], row["mode_id"], row["host_id"], f"[{color}]{row['status']}[/{color}]")
    console.print(table)


def print_answer_outcome(data: dict) -> None:
    sign = "+" if data["points"] >= 0 else ""
    verdict = "[green]Correct![/]" if data["is_correct"] else "[red]Wrong[/]"
    console.print(f"  {verdict} {sign}{data['points']} points  (total {data['new_total']}, position {data['position']})")
    if data.get("eliminated"):
        console.print("  [bold red]Out of lives: eliminated[/]")
    if data.get("session_completed"):
        console.print("  [bold]Game over![/]")


def print_rewards(rewards: dict) -> None:
    """Print rewards per player: {user_id: [reward dicts]}."""
    for user_id, earned in rewards.items():
        parts = []
        for reward in earned:
            label = reward.get("item_id") or reward.get("badge_id") or reward.get("title_id") or reward["type"]
            parts.append(f"{label} x{reward['value']}")
        console.print(f"  \U0001f381 {user_id}: {', '.join(parts) if parts else 'nothing'}")


def print_inventory(items: list[dict], opened: dict | None = None) -> None:
    """Print collected items. Each dict has: id, name, rarity, quantity."""
    if opened:
        color = RARITY_COLORS.get(opened["rarity"], "white")
        console.print(f"  \U0001f4e6 Mystery box: [{color}]{opened['name']}[/{color}] ({opened['rarity']})")
    if not items:
        console.print("[dim]No items yet. Finish quests and games to collect some.[/]")
        return

    table = Table(title="Inventory", box=box.ROUNDED, show_header=True, header_style="bold")
    table.add_column("Item", min_width=20)
    table.add_column("Rarity", width=10)
    table.add_column("Qty", justify="right")
    for item in items:
        rarity = item.get("rarity") or "common"
        color = RARITY_COLORS.get(rarity, "white")
        table.add_row(item["name"], f"[{color}]{rarity.upper()}[/{color}]", str(item["quantity"]))
    console.print(table)


def print_closest(names: list[str]) -> None:
    if names:
        console.print(f"  [dim]Almost there:[/] {', '.join(names)}")


def print_error(message: str) -> None:
    err_console.print(f"[bold red]Error:[/] {message}")
