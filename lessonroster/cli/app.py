"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from pendulum import DateTime
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_store import InMemoryRepository
from ..config import AppConfig, get_default_config_path
from ..domain.conflict_resolver import ConflictResolver
from ..domain.exceptions import LessonRosterError, TransferAborted
from ..domain.models import PaymentStatement
from ..domain.payment_engine import PaymentEngine
from ..domain.schedule_time import WEEKDAY_NAMES, format_minute, parse_minute
from ..services import CoverageService, PayrollService, SchedulingService, TransferService

app = typer.Typer(
    name="lessonroster",
    help="Teacher availability, schedule transfers and payroll for a lesson school",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./lessonroster.yaml"),
]
DataOption = Annotated[
    Optional[Path],
    typer.Option("--data", help="Fixture file with teachers, slots and lessons. Overrides data_file."),
]
NowOption = Annotated[
    Optional[str],
    typer.Option("--now", help="Reference instant (ISO 8601). Defaults to the current time."),
]


class _Context:
    """Configuration, repository and services for one CLI invocation."""

    def __init__(self, config: AppConfig, repository: InMemoryRepository):
        self.config = config
        self.repository = repository
        self.clock = repository.clock
        self.resolver = ConflictResolver(
            self.clock,
            open_time_step_minutes=config.open_time_step_minutes,
            booking_horizon_days=config.booking_horizon_days,
        )
        self.engine = PaymentEngine(self.clock)

    def scheduling(self) -> SchedulingService:
        return SchedulingService(self.repository, self.resolver)

    def transfers(self) -> TransferService:
        return TransferService(self.repository, self.resolver)

    def payroll(self) -> PayrollService:
        return PayrollService(self.repository, self.engine)

    def coverage(self) -> CoverageService:
        return CoverageService(self.repository, self.clock, self.config.week_last_day)

    def now(self, value: Optional[str]) -> DateTime:
        if value:
            return self.clock.parse_instant(value)
        return pendulum.now(self.config.timezone)


def _load_context(config_file: Optional[Path], data_file: Optional[Path]) -> _Context:
    """Load configuration, set up logging and seed the repository."""
    config_path = config_file or get_default_config_path()
    if config_path.exists():
        config = AppConfig.load_from_yaml(config_path)
    elif config_file is not None:
        raise FileNotFoundError(f"Config file not found: {config_file}")
    else:
        config = AppConfig()

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    data_path = data_file or config.resolve_data_file(config_path)
    if data_path is None:
        raise FileNotFoundError(
            "No data file configured. Set data_file in the config or pass --data."
        )
    repository = InMemoryRepository.load_from_yaml(data_path, config.make_clock())
    return _Context(config, repository)


def _fail(exc: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {exc}")
    raise typer.Exit(1)


@app.command()
def check(
    teacher_id: Annotated[str, typer.Argument(help="Teacher id")],
    start: Annotated[str, typer.Argument(help="Lesson start, e.g. '2025-03-03 09:00'")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Lesson duration in minutes")] = None,
    exclude_lesson: Annotated[Optional[str], typer.Option("--exclude-lesson", help="Lesson being moved, ignored as a conflict")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Check whether a teacher can take a lesson at the given time.
    """
    try:
        ctx = _load_context(config_file, data_file)
        start_at = ctx.clock.parse_instant(start)
        minutes = duration if duration is not None else ctx.config.default_lesson_minutes

        decision = asyncio.run(
            ctx.scheduling().check_availability(teacher_id, start_at, minutes, exclude_lesson)
        )
        when = f"{start_at.format('DD/MM/YYYY HH:mm')} ({minutes} min)"
        if decision.available:
            console.print(f"[bold green]✓ Available[/bold green] {teacher_id} at {when}")
        else:
            console.print(f"[bold yellow]✗ Not available[/bold yellow] {teacher_id} at {when}")
            console.print(f"  {decision.reason}")
            raise typer.Exit(2)

    except (LessonRosterError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("free-teachers")
def free_teachers(
    days: Annotated[List[int], typer.Option("--day", help="Day of week, 0=Sunday ... 6=Saturday. Repeatable.")],
    start: Annotated[str, typer.Option("--start", help="Start time of day (HH:MM)")],
    end: Annotated[str, typer.Option("--end", help="End time of day (HH:MM)")],
    now: NowOption = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    List active teachers free for a weekly recurring lesson on every given day.
    """
    try:
        ctx = _load_context(config_file, data_file)
        start_minute, end_minute = parse_minute(start), parse_minute(end)

        teachers = asyncio.run(
            ctx.scheduling().find_free_teachers(days, start_minute, end_minute, ctx.now(now))
        )
        day_names = ", ".join(WEEKDAY_NAMES[day] for day in sorted(set(days)))
        window = f"{format_minute(start_minute)}-{format_minute(end_minute)}"
        if not teachers:
            console.print(f"[yellow]⚠ No free teacher on {day_names} {window}.[/yellow]")
            return

        table = Table(title=f"Free on {day_names} {window}", show_header=True, header_style="bold cyan")
        table.add_column("Id", style="dim")
        table.add_column("Teacher", style="bold yellow")
        for teacher in teachers:
            table.add_row(teacher.id, teacher.name)
        console.print(table)

    except (LessonRosterError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("open-times")
def open_times(
    teacher_id: Annotated[str, typer.Argument(help="Teacher id")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Lesson duration in minutes")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    List bookable start times of a teacher on one date.
    """
    try:
        ctx = _load_context(config_file, data_file)
        date = ctx.clock.parse_date(day)
        minutes = duration if duration is not None else ctx.config.default_lesson_minutes

        times = asyncio.run(ctx.scheduling().open_start_times(teacher_id, date, minutes))
        if not times:
            console.print(f"[yellow]⚠ No open time on {date.format('DD/MM/YYYY')}.[/yellow]")
            return

        console.print(f"[bold green]✓ {len(times)} open time(s) on {date.format('DD/MM/YYYY')}:[/bold green]\n")
        for item in times:
            console.print(f"  {item.format_display()}")

    except (LessonRosterError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("available-dates")
def available_dates(
    teacher_id: Annotated[str, typer.Argument(help="Teacher id")],
    start: Annotated[Optional[str], typer.Option("--from", help="First date (YYYY-MM-DD). Defaults to today.")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Lesson duration in minutes")] = None,
    now: NowOption = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    List dates within the booking horizon that still have an open start time.
    """
    try:
        ctx = _load_context(config_file, data_file)
        from_day = ctx.clock.parse_date(start) if start else ctx.clock.start_of_day(ctx.now(now))
        minutes = duration if duration is not None else ctx.config.default_lesson_minutes

        dates = asyncio.run(ctx.scheduling().available_dates(teacher_id, from_day, minutes))
        if not dates:
            console.print("[yellow]⚠ No available date within the booking horizon.[/yellow]")
            return
        for key in dates:
            console.print(f"  {key}")

    except (LessonRosterError, FileNotFoundError, ValueError) as e:
        _fail(e)


def _statement_table(statements: List[PaymentStatement], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Teacher", style="bold yellow")
    table.add_column("Period")
    table.add_column("Rate", justify="right")
    table.add_column("Est. h", justify="right")
    table.add_column("Reg. h", justify="right")
    table.add_column("Records", justify="right")
    table.add_column("Hours", justify="right")
    table.add_column("Period amt", justify="right")
    table.add_column("Extra", justify="right")
    table.add_column("Payable", justify="right", style="bold green")
    table.add_column("Status")
    for statement in statements:
        terms = statement.terms
        table.add_row(
            statement.teacher_name,
            f"{terms.period_start.format('DD/MM')} - {terms.period_end.format('DD/MM/YYYY')}",
            f"{terms.hourly_rate:.2f}",
            f"{statement.estimated_hours}",
            f"{statement.registered_hours}",
            f"{statement.result.record_count}/{statement.estimated.expected_records}",
            f"{statement.result.hours_amount}",
            f"{terms.period_amount:.2f}",
            f"{terms.extra_amount:.2f}",
            f"{statement.payable_amount}",
            terms.payment_status.value,
        )
    return table


@app.command()
def statement(
    teacher_id: Annotated[str, typer.Argument(help="Teacher id")],
    year: Annotated[Optional[int], typer.Option("--year", help="Statement year")] = None,
    month: Annotated[Optional[int], typer.Option("--month", help="Statement month (1-12)")] = None,
    now: NowOption = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Show the payment statement of one teacher.
    """
    try:
        ctx = _load_context(config_file, data_file)
        result = asyncio.run(
            ctx.payroll().teacher_statement(teacher_id, now=ctx.now(now), year=year, month=month)
        )
        terms = result.terms
        console.print(Panel.fit(
            f"[bold]Period:[/bold] {terms.period_start.format('DD/MM/YYYY')} - {terms.period_end.format('DD/MM/YYYY')}\n"
            f"[bold]Hourly rate:[/bold] {terms.hourly_rate:.2f}\n"
            f"[bold]Estimated hours:[/bold] {result.estimated_hours} "
            f"({result.estimated.expected_records} lesson(s))\n"
            f"[bold]Registered hours:[/bold] {result.registered_hours} "
            f"({result.result.record_count} record(s))\n"
            f"[bold]Hours amount:[/bold] {result.result.hours_amount}\n"
            f"[bold]Period amount:[/bold] {terms.period_amount:.2f}\n"
            f"[bold]Extra amount:[/bold] {terms.extra_amount:.2f}\n"
            f"[bold green]Payable:[/bold green] {result.payable_amount}\n"
            f"[bold]Status:[/bold] {terms.payment_status.value}",
            title=f"{result.teacher_name} {terms.month:02d}/{terms.year}"
        ))

    except (LessonRosterError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def payroll(
    year: Annotated[Optional[int], typer.Option("--year", help="Payroll year")] = None,
    month: Annotated[Optional[int], typer.Option("--month", help="Payroll month (1-12)")] = None,
    now: NowOption = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Show the payment statements of every active teacher.
    """
    try:
        ctx = _load_context(config_file, data_file)
        statements = asyncio.run(ctx.payroll().payroll_overview(now=ctx.now(now), year=year, month=month))
        if not statements:
            console.print("[yellow]No active teachers.[/yellow]")
            return
        first = statements[0].terms
        console.print(_statement_table(statements, f"Payroll {first.month:02d}/{first.year}"))

    except (LessonRosterError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command("transfer-candidates")
def transfer_candidates(
    source_teacher: Annotated[str, typer.Argument(help="Teacher whose schedule is handed over")],
    start: Annotated[Optional[str], typer.Option("--from", help="First date (YYYY-MM-DD). Defaults to today.")] = None,
    now: NowOption = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    List teachers able to take over every weekly slot of another teacher.
    """
    try:
        ctx = _load_context(config_file, data_file)
        from_date = ctx.clock.parse_date(start) if start else ctx.clock.start_of_day(ctx.now(now))
        scheduling = ctx.scheduling()

        required = asyncio.run(scheduling.required_slots_for(source_teacher, from_date))
        if not required:
            console.print(f"[yellow]⚠ Teacher {source_teacher} has no lessons from {from_date.format('DD/MM/YYYY')}.[/yellow]")
            return

        console.print("[bold cyan]Slots to cover:[/bold cyan]")
        for slot in required:
            console.print(f"  {slot.format_display()}")
        console.print()

        teachers = asyncio.run(scheduling.available_teachers_for_transfer(source_teacher, from_date))
        if not teachers:
            console.print("[yellow]⚠ No teacher can take over every slot.[/yellow]")
            return
        for teacher in teachers:
            console.print(f"  [bold yellow]{teacher.name}[/bold yellow] ({teacher.id})")

    except (LessonRosterError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def transfer(
    source_teacher: Annotated[str, typer.Argument(help="Teacher giving up the schedule")],
    destination_teacher: Annotated[str, typer.Argument(help="Teacher taking over")],
    start: Annotated[Optional[str], typer.Option("--from", help="First date (YYYY-MM-DD). Defaults to today.")] = None,
    actor: Annotated[str, typer.Option("--actor", help="Name recorded in the audit trail")] = "admin",
    now: NowOption = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Move every lesson of one teacher from a date onward to another teacher.

    All lessons move or none do. Changes live in the loaded data set only.
    """
    try:
        ctx = _load_context(config_file, data_file)
        reference = ctx.now(now)
        from_date = ctx.clock.parse_date(start) if start else ctx.clock.start_of_day(reference)

        result = asyncio.run(
            ctx.transfers().transfer_schedule(
                source_teacher, destination_teacher, from_date, actor=actor, now=reference
            )
        )
        if result.transferred_count == 0:
            console.print(f"[yellow]⚠ No lessons to transfer from {from_date.format('DD/MM/YYYY')}.[/yellow]")
            return
        console.print(Panel.fit(
            f"[bold green]✓ {result.transferred_count} lesson(s) transferred[/bold green]\n\n"
            f"[bold]From:[/bold] {source_teacher}\n"
            f"[bold]To:[/bold] {destination_teacher}\n"
            f"[bold]Since:[/bold] {from_date.format('DD/MM/YYYY')}",
            title="Transfer"
        ))

    except TransferAborted as e:
        console.print(Panel.fit(
            f"[bold red]✗ {e}[/bold red]\n\n{e.reason}\n\nNo lesson was changed.",
            title="Transfer rejected"
        ))
        raise typer.Exit(1)

    except (LessonRosterError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def coverage(
    now: NowOption = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Show active enrollments without a teacher this week and next week.
    """
    try:
        ctx = _load_context(config_file, data_file)
        report = asyncio.run(ctx.coverage().weekly_coverage(ctx.now(now)))

        table = Table(title="Enrollments without teacher", show_header=True, header_style="bold cyan")
        table.add_column("Week", style="bold")
        table.add_column("Count", justify="right")
        table.add_column("Enrollments", style="dim")
        table.add_row(
            "This week",
            str(len(report.without_teacher_this_week)),
            ", ".join(report.without_teacher_this_week) or "-",
        )
        table.add_row(
            "Next week",
            str(len(report.without_teacher_next_week)),
            ", ".join(report.without_teacher_next_week) or "-",
        )
        console.print(table)

    except (LessonRosterError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]lessonroster[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
