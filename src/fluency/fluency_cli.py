"""
Fluency CLI - terminal trainer for the fluency scheduler.

Drives the public learning cycle from the terminal so the scheduler can be
exercised end to end.

Usage:
    fluency play               # Answer questions until you stop
    fluency play -n 10         # Answer ten questions
    fluency play --speed-run   # Short delays, few facts
    fluency stats              # Progress per fact set
    fluency inspect            # Summarize the stored learner record
    fluency reset              # Delete the stored learner record
"""

from __future__ import annotations

import asyncio
import sys
import time
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from config import Settings, get_settings
from src.fluency.algorithm import LearningAlgorithm
from src.fluency.algorithm_config import LearningAlgorithmConfig
from src.fluency.events import (
    BulkPromotionInfo,
    FactSetCompletionInfo,
    FactSetReviewReadyInfo,
    IndividualFactProgressionInfo,
    LearningEvent,
)
from src.fluency.models import Question, UserAnswerSubmission
from src.fluency.progress import LearningProgressService
from src.fluency.storage import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    SqlKeyValueStore,
    StorageManager,
)

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="fluency",
    help="✖️ Fluency - adaptive multiplication fact trainer",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    """Route loguru output to stderr (and optionally a log file)."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="5 MB", retention=3)


def build_store(settings: Settings) -> KeyValueStore:
    """Create the key-value store selected in Settings."""
    if settings.storage_backend == "memory":
        return InMemoryKeyValueStore()
    if settings.storage_backend == "sql":
        return SqlKeyValueStore(settings.database_url)
    return JsonFileKeyValueStore(settings.state_dir)


def build_config(settings: Settings, speed_run: bool, fresh: bool) -> LearningAlgorithmConfig:
    if speed_run:
        settings = settings.model_copy(update={"algorithm_mode": "speed_run"})
    if fresh:
        settings = settings.model_copy(update={"always_start_fresh": True})
    return LearningAlgorithmConfig.from_settings(settings)


class ConsoleEventSink:
    """Prints learning events as they happen."""

    def __init__(self, console: Console):
        self.console = console

    def publish(self, event: LearningEvent) -> None:
        if isinstance(event, IndividualFactProgressionInfo):
            arrow = "⬆️" if event.answer_type.value == "Correct" else "⬇️"
            self.console.print(f"  [dim]{arrow} {event.fact_id}: {event.from_stage_id} → {event.to_stage_id}[/dim]")
        elif isinstance(event, BulkPromotionInfo):
            self.console.print(
                f"  [bold magenta]🚀 {event.promoted_facts_count} facts of set {event.fact_set_id} promoted together[/]"
            )
        elif isinstance(event, FactSetReviewReadyInfo):
            self.console.print(f"  [bold cyan]🔄 Fact set {event.fact_set_id} is ready for review![/]")
        elif isinstance(event, FactSetCompletionInfo):
            self.console.print(f"  [bold green]🏆 Fact set {event.completed_fact_set_id} mastered![/]")


# =============================================================================
# Play
# =============================================================================


def _ask(question: Question) -> UserAnswerSubmission:
    stage = question.learning_stage
    timer = f" ⏱ {question.time_to_answer:.0f}s" if question.time_to_answer else ""
    console.print(
        Panel(
            f"[bold]{question.text}[/bold]\n\n"
            + "   ".join(f"[cyan]{i}[/cyan]) {choice.value}" for i, choice in enumerate(question.choices, 1)),
            title=f"{stage.icon} {stage.display_name}{timer}",
            border_style="blue",
        )
    )

    started = time.monotonic()
    picks = [str(i) for i in range(1, len(question.choices) + 1)]
    answer = Prompt.ask("Your answer ([dim]s to skip[/dim])", choices=[*picks, "s"], show_choices=False)
    elapsed = time.monotonic() - started

    if answer == "s":
        return UserAnswerSubmission.from_skipped()
    if question.time_to_answer is not None and elapsed > question.time_to_answer:
        return UserAnswerSubmission.from_timed_out()
    return UserAnswerSubmission.from_answer(question.choices[int(answer) - 1])


async def _play(algorithm: LearningAlgorithm, questions: int) -> tuple[int, int]:
    await algorithm.initialize()
    asked = correct = 0

    while questions <= 0 or asked < questions:
        question = await algorithm.get_next_question()
        if question is None:
            console.print("[yellow]No fact is ready right now. Come back in a little while.[/yellow]")
            break

        while True:
            algorithm.start_question(question)
            try:
                submission = _ask(question)
            except (KeyboardInterrupt, EOFError):
                return asked, correct
            result = await algorithm.submit_answer(question, submission)

            if result.is_correct:
                console.print("[green]✓ Correct![/green]")
            elif submission.answer_type.value == "TimedOut":
                console.print(f"[yellow]⌛ Too slow, the answer is {result.correct_answer.value}[/yellow]")
            else:
                console.print(f"[red]✗ The answer is {result.correct_answer.value}[/red]")

            if not result.should_retry:
                break
            console.print("[dim]Let's try that one again.[/dim]")

        asked += 1
        correct += int(result.is_correct)
        await asyncio.sleep(min(result.time_to_next_question, 0.5))

    return asked, correct


@app.command()
def play(
    questions: Annotated[int, typer.Option("--questions", "-n", help="Questions to ask (0 = until stopped)")] = 0,
    speed_run: Annotated[bool, typer.Option("--speed-run", help="Use the speed run preset")] = False,
    fresh: Annotated[bool, typer.Option("--fresh", help="Ignore the stored learner record")] = False,
) -> None:
    """Start a practice session."""
    settings = get_settings()
    config = build_config(settings, speed_run, fresh)
    algorithm = LearningAlgorithm(
        config,
        build_store(settings),
        event_sink=ConsoleEventSink(console),
        storage_key=settings.state_storage_key,
    )

    asked, correct = asyncio.run(_play(algorithm, questions))

    if asked:
        console.print(
            Panel(
                f"Answered [bold]{asked}[/bold] questions, [green]{correct}[/green] correct "
                f"({correct / asked:.0%}). Difficulty: [bold]{algorithm.current_difficulty}[/bold]",
                title="Session complete",
                border_style="green",
            )
        )


# =============================================================================
# Reporting
# =============================================================================


async def _load(settings: Settings, speed_run: bool) -> tuple[LearningAlgorithmConfig, StorageManager]:
    config = build_config(settings, speed_run, fresh=False)
    manager = StorageManager(config, build_store(settings), storage_key=settings.state_storage_key)
    await manager.initialize()
    return config, manager


@app.command()
def stats(
    speed_run: Annotated[bool, typer.Option("--speed-run", help="Use the speed run preset")] = False,
) -> None:
    """Show progress per fact set."""
    settings = get_settings()
    config, manager = asyncio.run(_load(settings, speed_run))
    service = LearningProgressService(config, manager)
    progresses = service.get_fact_set_progresses()
    overall = service.calculate_overall_statistics(progresses)

    table = Table(title="Fact sets")
    table.add_column("Set", style="cyan")
    table.add_column("Stage")
    table.add_column("Progress", justify="right")
    table.add_column("Mastered", justify="right")
    table.add_column("Reward")

    for progress in progresses:
        dominant = progress.get_dominant_stage()
        table.add_row(
            progress.fact_set.id,
            f"{dominant.icon} {dominant.display_name}" if dominant else "-",
            f"{progress.progress_percentage:.0f}%",
            f"{progress.completed_facts_count}/{progress.total_facts_count}",
            "🎁" if progress.can_claim_reward() else "",
        )
    console.print(table)

    console.print(
        Panel(
            f"Overall progress: [bold]{overall.overall_progress_percent:.0f}%[/bold]\n"
            f"Accuracy: {overall.overall_accuracy:.0%} over {overall.total_attempts} attempts\n"
            f"Current streak: {overall.current_streak}\n"
            f"Mastered facts: {overall.mastered_facts_count}/{overall.total_facts}\n"
            f"Facts needing attention: {overall.struggling_facts_count}",
            title="Overall",
            border_style="blue",
        )
    )


@app.command()
def inspect(
    speed_run: Annotated[bool, typer.Option("--speed-run", help="Use the speed run preset")] = False,
) -> None:
    """Load (and migrate) the stored learner record and summarize it."""
    settings = get_settings()
    _, manager = asyncio.run(_load(settings, speed_run))
    summary = manager.student_state.get_state_summary()

    table = Table(title=f"Learner record '{settings.state_storage_key}'")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key in ("version", "created_at", "total_facts", "shown_facts", "answer_count"):
        table.add_row(key, str(summary[key]))
    for stage_id, count in summary["stage_counts"].items():
        table.add_row(f"stage:{stage_id}", str(count))
    console.print(table)


@app.command()
def reset(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete the stored learner record."""
    settings = get_settings()
    if not yes and not Confirm.ask(f"Delete learner record '{settings.state_storage_key}'?"):
        raise typer.Exit(1)

    store = build_store(settings)
    deleted = asyncio.run(store.delete(settings.state_storage_key))
    if deleted:
        console.print("[green]Learner record deleted.[/green]")
    else:
        console.print("[yellow]No learner record found.[/yellow]")


# =============================================================================
# Entry Point
# =============================================================================


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")] = False,
) -> None:
    """
    ✖️ Fluency - adaptive multiplication fact trainer

    \b
    Quick Start:
      fluency play              # Start practicing
      fluency play --speed-run  # Short demo session
      fluency stats             # See your progress
    """
    configure_logging(get_settings(), verbose)


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
