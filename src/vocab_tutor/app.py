"""Interactive CLI application."""
import os
import sys
from datetime import datetime

from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from vocab_tutor.dashboard import (
    calc_mastery_score, get_answer_accuracy, get_mastery_color, get_mastery_label,
    get_study_stats, get_weakest_words, get_word_status_counts,
)
from vocab_tutor.db import DEFAULT_DB_PATH, SqliteStorage, init_db
from vocab_tutor.missions import MissionService
from vocab_tutor.placement import (
    PLACEMENT_LENGTH, assessment_summary, build_bank, can_stop_early, pick_next_item,
    start_session, target_band_for_index, update_ability,
)
from vocab_tutor.progress import ProgressTracker, get_setting, set_setting

console = Console()

LETTERS = "abcd"
DEFAULT_USER = "local"


class SessionExitRequested(Exception):
    """Raised when the user types 'q' or 'menu' in the middle of a session."""


def session_prompt(prompt: str, **kwargs) -> str:
    answer = Prompt.ask(prompt, **kwargs)
    if answer.strip().lower() in ("q", "menu"):
        raise SessionExitRequested()
    return answer


def show_welcome():
    console.print(Panel(
        "[bold]Daily Vocabulary Missions[/bold]\n[dim]Spaced repetition word trainer[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("mission", "Today's mission"),
        ("placement", "Find your level"),
        ("dashboard", "Progress + stats"),
        ("review", "See weak words"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def ask_choice(options) -> int:
    letters = list(LETTERS[: len(options)])
    for letter, option in zip(letters, options):
        console.print(f"  [cyan]{letter})[/cyan] {option}")
    answer = session_prompt("\nYour answer", choices=letters + ["q", "menu"])
    return letters.index(answer.strip().lower())


def run_mission(service: MissionService, user_id: str, bundle) -> tuple[int, int]:
    pending = [q for q in bundle.questions if not q.answered]
    if not pending:
        console.print("[green]Today's mission is already complete. See you tomorrow![/green]")
        return 0, 0
    correct = 0
    total = len(bundle.questions)
    console.print(f"\n[bold]Mission[/bold]: {len(pending)} of {total} questions left\n")
    for q in pending:
        title, _, body = q.prompt.partition("\n")
        console.print(Panel(body or title, title=f"Q{q.index + 1}/{total}: {title}", border_style="cyan"))
        chosen = ask_choice(q.options)
        result = service.submit_mission_answer(bundle.mission.id, q.id, chosen, user_id)
        if result.was_correct:
            console.print("[green]Correct![/green]")
            correct += 1
        else:
            console.print(f"[red]Incorrect.[/red] Answer: [green]{q.options[q.correct_index]}[/green]")
        console.print()
    if bundle.mission.status == "completed":
        console.print(f"[bold]Mission complete! +{bundle.mission.xp_reward} XP "
                      f"({bundle.mission.correct_count}/{total} correct)[/bold]\n")
    return correct, len(pending)


def run_placement(bank, length: int = PLACEMENT_LENGTH):
    session = start_session()
    for index in range(length):
        item = pick_next_item(bank, session, force_band=target_band_for_index(index))
        if item is None:
            break
        console.print(Panel(
            f"[bold]{item.word}[/bold]\n{item.prompt}",
            title=f"Question {index + 1}/{length}", border_style="cyan",
        ))
        chosen = ask_choice(item.options)
        correct = chosen == item.correct_index
        update_ability(session, item, correct, chosen=item.options[chosen])
        if can_stop_early(session):
            break
    return session


def cmd_mission(service: MissionService, user_id: str):
    bundle = service.get_today_mission_for_user(user_id)
    mission = bundle.mission
    console.print(Panel(
        f"Date [bold]{mission.date}[/bold]  |  {mission.num_questions} questions  |  "
        f"{mission.weak_words_count} review, {mission.new_words_count} new",
        title="Today's Mission",
    ))
    try:
        run_mission(service, user_id, bundle)
    except SessionExitRequested:
        console.print("[dim]Mission paused. Your answers so far are saved.[/dim]")


def cmd_placement(db_path: str):
    console.print("\n[bold]Placement Test[/bold] [dim](type q to stop)[/dim]")
    bank = build_bank()
    try:
        session = run_placement(bank)
    except SessionExitRequested:
        console.print("[dim]Placement test cancelled.[/dim]")
        return
    summary = assessment_summary(session)
    set_setting(db_path, "placement_level", summary["level"])
    table = Table(title="Placement Result")
    table.add_column("Band")
    table.add_column("Level")
    table.add_column("Correct", justify="right")
    table.add_row(summary["band"], summary["level"], f"{summary['correct_rate'] * 100:.0f}%")
    console.print(table)
    if summary["weaknesses"]:
        console.print(f"[yellow]Bands to work on: {', '.join(summary['weaknesses'])}[/yellow]")


def cmd_dashboard(service: MissionService, user_id: str, progress: ProgressTracker, db_path: str):
    score = calc_mastery_score(service, user_id)
    label = get_mastery_label(score)
    color = get_mastery_color(score)
    stats = get_study_stats(service, user_id)
    level = get_setting(db_path, "placement_level", "not placed yet")

    console.print(Panel(
        f"[bold]Streak {stats['streak']} day(s)  |  {stats['xp']} mission XP  |  "
        f"{progress.total_xp()} total XP[/bold]\nLevel: {level}",
        title="Vocabulary Dashboard", border_style="blue",
    ))

    bar_filled = int(score / 5)
    bar = f"[{color}]{'█' * bar_filled}{'░' * (20 - bar_filled)}[/{color}]"
    console.print(f"\n  Mastery: [bold]{score}%[/bold] {bar} [{color}]{label}[/{color}]\n")

    table = Table(title="Words by Status")
    table.add_column("Status", style="cyan")
    table.add_column("Words", justify="right")
    for status, count in get_word_status_counts(service, user_id).items():
        table.add_row(status, str(count))
    console.print(table)

    console.print(f"\n  Missions: [bold]{stats['missions_completed']}[/bold]  |  "
                  f"Words seen: [bold]{stats['words_seen']}[/bold]  |  "
                  f"Accuracy: [bold]{get_answer_accuracy(service, user_id)}%[/bold]  |  "
                  f"Avg Mission: [bold]{stats['avg_mission_score']}%[/bold]")


def cmd_review(service: MissionService, user_id: str):
    console.print("\n[bold]Weak Words[/bold]\n")
    weakest = get_weakest_words(service, user_id, datetime.now(), limit=10)
    if not weakest:
        console.print("[green]No weak words right now! Keep up the good work.[/green]")
        return
    table = Table(title="Due or Under Strength")
    table.add_column("Word")
    table.add_column("Strength", justify="right")
    table.add_column("Status")
    table.add_column("Errors", justify="right")
    for w in weakest:
        table.add_row(w["text"], f"{w['strength']:.2f}", w["status"], str(w["errors"]))
    console.print(table)
    console.print("[dim]These words will show up in your next mission.[/dim]")


def main():
    db_path = os.environ.get("VOCAB_TUTOR_DB", DEFAULT_DB_PATH)
    user_id = os.environ.get("VOCAB_TUTOR_USER", DEFAULT_USER)
    logger.remove()
    logger.add(sys.stderr, level="WARNING")
    init_db(db_path)
    progress = ProgressTracker(db_path)
    service = MissionService(SqliteStorage(db_path), progress=progress)

    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="mission").strip().lower()
        try:
            if choice == "mission":
                cmd_mission(service, user_id)
            elif choice == "placement":
                cmd_placement(db_path)
            elif choice == "dashboard":
                cmd_dashboard(service, user_id, progress, db_path)
            elif choice == "review":
                cmd_review(service, user_id)
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]See you tomorrow![/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
