"""CLI interface for synthetic chatlog generation."""

import asyncio
import random
import signal
from datetime import date, datetime, timedelta
from pathlib import Path

import pandas as pd
import typer
from loguru import logger
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)
from rich.table import Table

from .backend import SyntheticChatLogBackend
from .clients.ai import OpenAIConversationEvaluator, OpenAIConversationGenerator
from .constants import (
    DEFAULT_AI_MODEL,
    DEFAULT_BACKEND_URL,
    DEFAULT_CALL_TIMEOUT_SECONDS,
    DEFAULT_CSV_OUTPUT,
    DEFAULT_JSON_OUTPUT,
    DEFAULT_MAX_PER_DAY,
    DEFAULT_MAX_TURNS,
    DEFAULT_MIN_PER_DAY,
    DEFAULT_MIN_TURNS,
    DEFAULT_SCHEDULE_DAYS,
    DEFAULT_SIMILARITY_THRESHOLD,
    EXIT_CODE_ERROR,
    BehaviorPattern,
    CliHelp,
    LogMessage,
    SessionStatus,
)
from .errors import RequestValidationError
from .models import GenerationParams
from .orchestrator import GenerationOrchestrator
from .reports import RunSummary, aggregate_by_day, aggregate_by_shift, summarize
from .session import SessionSnapshot
from .storage import ConversationStorage

app = typer.Typer(help=CliHelp.APP)
console = Console()

DATE_FORMATS = ["%Y-%m-%d"]


def _format_score(value: float | None) -> str:
    return "-" if value is None else f"{value:.2f}"


def _print_summary(summary: RunSummary, by_shift: pd.DataFrame) -> None:
    table = Table(title="Run summary")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Conversations", str(summary.total))
    table.add_row("Evaluated", str(summary.evaluated))
    table.add_row("Escalated", str(summary.escalated))
    table.add_row(
        "Escalation rate",
        "-" if summary.escalation_rate is None else f"{summary.escalation_rate:.0%}",
    )
    table.add_row("Coherence", _format_score(summary.avg_coherence))
    table.add_row("Politeness", _format_score(summary.avg_politeness))
    table.add_row("Relevance", _format_score(summary.avg_relevance))
    table.add_row("Resolution", _format_score(summary.avg_resolution))
    table.add_row("CPR score", _format_score(summary.avg_cpr_score))
    console.print(table)

    if by_shift.empty:
        return
    shift_table = Table(title="By shift")
    for column in ["Shift", "Conversations", "Evaluated", "CPR score", "Escalation rate"]:
        shift_table.add_column(column)
    for row in by_shift.itertuples(index=False):
        shift_table.add_row(
            str(row.shift),
            str(row.conversations),
            str(row.evaluated),
            _format_score(None if pd.isna(row.cpr_score) else row.cpr_score),
            "-" if pd.isna(row.escalation_rate) else f"{row.escalation_rate:.0%}",
        )
    console.print(shift_table)


def _install_signal_handlers(orchestrator: GenerationOrchestrator) -> None:
    loop = asyncio.get_running_loop()

    def toggle_pause() -> None:
        if not orchestrator.pause():
            orchestrator.resume()

    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.stop)
        loop.add_signal_handler(signal.SIGUSR1, toggle_pause)
    except (NotImplementedError, AttributeError):
        logger.debug("Signal handlers unavailable; Ctrl+C will abort without export")


async def _generate_async(
    *,
    params: GenerationParams,
    backend_url: str,
    backend_token: str | None,
    call_timeout: float,
    seed: int | None,
    json_output: Path,
    csv_output: Path,
) -> SessionSnapshot:
    """Async implementation of the generate command."""
    generator = OpenAIConversationGenerator()
    evaluator = OpenAIConversationEvaluator()
    backend = (
        SyntheticChatLogBackend(base_url=backend_url, token=backend_token)
        if backend_token
        else None
    )
    if backend is None:
        logger.info("No backend token given; conversations are only written to disk")

    orchestrator = GenerationOrchestrator(
        generator=generator,
        evaluator=evaluator,
        store=backend,
        rng=random.Random(seed),
        call_timeout=call_timeout,
    )

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TextColumn("[green]{task.fields[accepted]} accepted"),
            TextColumn("[yellow]{task.fields[eta]}"),
            console=console,
        ) as progress:
            task = progress.add_task(
                LogMessage.INITIALIZING, total=100, accepted=0, eta=""
            )

            def on_change(snapshot: SessionSnapshot) -> None:
                progress.update(
                    task,
                    completed=snapshot.percent,
                    description=snapshot.step,
                    accepted=len(snapshot.accepted_items),
                    eta=snapshot.eta or "",
                )

            orchestrator.add_listener(on_change)
            _install_signal_handlers(orchestrator)
            snapshot = await orchestrator.run(params)
    finally:
        await generator.aclose()
        await evaluator.aclose()
        if backend is not None:
            await backend.aclose()

    items = list(snapshot.accepted_items)
    storage = ConversationStorage()
    storage.save_conversations(conversations=items, filepath=json_output)
    storage.export_csv(conversations=items, filepath=csv_output)

    for notification in snapshot.notifications:
        console.print(f"[yellow]! {notification}")
    _print_summary(summarize(items), aggregate_by_shift(items))
    return snapshot


@app.command(help=CliHelp.GENERATE_COMMAND)
def generate(
    start_date: datetime = typer.Option(
        None, "--start-date", "-s", formats=DATE_FORMATS, help=CliHelp.START_DATE
    ),
    end_date: datetime = typer.Option(
        None, "--end-date", "-e", formats=DATE_FORMATS, help=CliHelp.END_DATE
    ),
    min_per_day: int = typer.Option(
        DEFAULT_MIN_PER_DAY, "--min-per-day", help=CliHelp.MIN_PER_DAY
    ),
    max_per_day: int = typer.Option(
        DEFAULT_MAX_PER_DAY, "--max-per-day", help=CliHelp.MAX_PER_DAY
    ),
    min_turns: int = typer.Option(DEFAULT_MIN_TURNS, "--min-turns", help=CliHelp.MIN_TURNS),
    max_turns: int = typer.Option(DEFAULT_MAX_TURNS, "--max-turns", help=CliHelp.MAX_TURNS),
    similarity_threshold: float = typer.Option(
        DEFAULT_SIMILARITY_THRESHOLD, "--similarity", help=CliHelp.SIMILARITY
    ),
    behavior_pattern: BehaviorPattern = typer.Option(
        BehaviorPattern.CONSISTENTLY_STRONG, "--behavior", "-b", help=CliHelp.BEHAVIOR
    ),
    model: str = typer.Option(
        DEFAULT_AI_MODEL, "--model", "-m", envvar="CHATLOG_MODEL", help=CliHelp.MODEL
    ),
    openai_api_key: str = typer.Option(
        None, "--openai-api-key", envvar="OPENAI_API_KEY", help=CliHelp.API_KEY
    ),
    agent_name: str = typer.Option(
        None, "--agent-name", "-a", envvar="CHATLOG_AGENT_NAME", help=CliHelp.AGENT_NAME
    ),
    backend_url: str = typer.Option(
        DEFAULT_BACKEND_URL,
        "--backend-url",
        envvar="CHATLOG_BACKEND_URL",
        help=CliHelp.BACKEND_URL,
    ),
    backend_token: str = typer.Option(
        None, "--backend-token", envvar="CHATLOG_BACKEND_TOKEN", help=CliHelp.BACKEND_TOKEN
    ),
    json_output: Path = typer.Option(
        DEFAULT_JSON_OUTPUT, "--json-output", "-j", help=CliHelp.JSON_OUTPUT
    ),
    csv_output: Path = typer.Option(
        DEFAULT_CSV_OUTPUT, "--csv-output", "-c", help=CliHelp.CSV_OUTPUT
    ),
    call_timeout: float = typer.Option(
        DEFAULT_CALL_TIMEOUT_SECONDS, "--call-timeout", help=CliHelp.CALL_TIMEOUT
    ),
    seed: int = typer.Option(None, "--seed", help=CliHelp.SEED),
) -> None:
    first_day = start_date.date() if start_date else date.today()
    last_day = (
        end_date.date()
        if end_date
        else first_day + timedelta(days=DEFAULT_SCHEDULE_DAYS - 1)
    )
    params = GenerationParams(
        start_date=first_day,
        end_date=last_day,
        model=model,
        credential=openai_api_key or "",
        agent_name=agent_name or "",
        behavior_pattern=behavior_pattern,
        min_turns=min_turns,
        max_turns=max_turns,
        min_per_day=min_per_day,
        max_per_day=max_per_day,
        similarity_threshold=similarity_threshold,
    )

    try:
        snapshot = asyncio.run(
            _generate_async(
                params=params,
                backend_url=backend_url,
                backend_token=backend_token,
                call_timeout=call_timeout,
                seed=seed,
                json_output=json_output,
                csv_output=csv_output,
            )
        )
    except RequestValidationError as e:
        logger.error(str(e))
        raise typer.Exit(code=EXIT_CODE_ERROR)
    except Exception as e:
        logger.exception(LogMessage.ERROR_OCCURRED.format(e))
        raise typer.Exit(code=EXIT_CODE_ERROR)

    if snapshot.status == SessionStatus.FAILED:
        logger.error(snapshot.last_error)
        raise typer.Exit(code=EXIT_CODE_ERROR)


@app.command()
def report(
    input_path: Path = typer.Option(
        DEFAULT_JSON_OUTPUT, "--input", "-i", help=CliHelp.REPORT_INPUT
    ),
    daily_output: Path = typer.Option(
        None, "--daily-output", "-d", help=CliHelp.DAILY_OUTPUT
    ),
) -> None:
    """Summarize a saved set of conversations."""
    try:
        items = ConversationStorage().load_conversations(filepath=input_path)
        _print_summary(summarize(items), aggregate_by_shift(items))
        if daily_output:
            aggregate_by_day(items).to_csv(daily_output, index=False)
            logger.success(f"Saved per-day averages to {daily_output}")
    except Exception as e:
        logger.exception(LogMessage.ERROR_OCCURRED.format(e))
        raise typer.Exit(code=EXIT_CODE_ERROR)


async def _fetch_async(
    *, backend_url: str, backend_token: str, json_output: Path, csv_output: Path
) -> None:
    backend = SyntheticChatLogBackend(base_url=backend_url, token=backend_token)
    try:
        items = await backend.fetch_all()
    finally:
        await backend.aclose()

    storage = ConversationStorage()
    storage.save_conversations(conversations=items, filepath=json_output)
    storage.export_csv(conversations=items, filepath=csv_output)


@app.command()
def fetch(
    backend_url: str = typer.Option(
        DEFAULT_BACKEND_URL,
        "--backend-url",
        envvar="CHATLOG_BACKEND_URL",
        help=CliHelp.BACKEND_URL,
    ),
    backend_token: str = typer.Option(
        None, "--backend-token", envvar="CHATLOG_BACKEND_TOKEN", help=CliHelp.BACKEND_TOKEN
    ),
    json_output: Path = typer.Option(
        DEFAULT_JSON_OUTPUT, "--json-output", "-j", help=CliHelp.JSON_OUTPUT
    ),
    csv_output: Path = typer.Option(
        DEFAULT_CSV_OUTPUT, "--csv-output", "-c", help=CliHelp.CSV_OUTPUT
    ),
) -> None:
    """Download previously saved chat logs from the backend."""
    if not backend_token:
        logger.error(
            "A backend token is required. Set CHATLOG_BACKEND_TOKEN or use --backend-token."
        )
        raise typer.Exit(code=EXIT_CODE_ERROR)

    try:
        asyncio.run(
            _fetch_async(
                backend_url=backend_url,
                backend_token=backend_token,
                json_output=json_output,
                csv_output=csv_output,
            )
        )
    except Exception as e:
        logger.exception(LogMessage.ERROR_OCCURRED.format(e))
        raise typer.Exit(code=EXIT_CODE_ERROR)
