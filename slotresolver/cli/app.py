"""
Main CLI application using Typer.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from pendulum import DateTime
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.graph_authenticator import GraphAuthenticator
from ..adapters.graph_client import GraphCalendarClient
from ..adapters.mock_calendar_client import MockCalendarClient
from ..config import AppConfig, load_config
from ..domain.exceptions import (
    InputValidationError,
    ProviderFetchError,
    SlotResolverError,
    ValidationReason,
)
from ..domain.models import AvailabilityRequest, AvailabilityResult
from ..domain.slot_calculator import SlotCalculator
from ..services.availability import AvailabilityService

app = typer.Typer(
    name="slotresolver",
    help="Find common meeting slots across attendees' calendars",
    add_completion=False
)

console = Console()
err_console = Console(stderr=True)

VALIDATION_MESSAGES = {
    ValidationReason.NO_ATTENDEES: "No attendees supplied.",
    ValidationReason.NO_VALID_ATTENDEES: "No valid attendee email addresses provided.",
    ValidationReason.INVALID_DURATION: "Meeting duration must be a positive number of minutes.",
    ValidationReason.INVALID_WINDOW: "The search window end must be after its start.",
}


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _parse_instant(value: str, tz: str, end_of_day: bool = False) -> DateTime:
    """
    Parse an ISO 8601 date or datetime in the reference timezone.

    Plain dates expand to the start of that day, or its end when ``end_of_day``.
    """
    try:
        parsed = pendulum.parse(value, tz=tz)
    except ValueError as e:
        raise typer.BadParameter(f"Could not parse '{value}': {e}") from e

    if isinstance(parsed, DateTime):
        return parsed.in_timezone(tz)

    if isinstance(parsed, pendulum.Date):
        day = pendulum.datetime(parsed.year, parsed.month, parsed.day, tz=tz)
        return day.end_of("day") if end_of_day else day

    raise typer.BadParameter(f"'{value}' is not a date or datetime")


def _build_fetcher(config: AppConfig, tz: str, mock: bool, mock_data: Optional[Path]):
    if mock:
        if mock_data:
            return MockCalendarClient.from_json_file(mock_data, timezone=tz, config=config)
        return MockCalendarClient(timezone=tz, config=config)

    authenticator = GraphAuthenticator(
        client_id=config.client_id,
        tenant_id=config.tenant_id,
        authority_url=config.get_authority_url()
    )
    access_token = authenticator.get_access_token(force_refresh=False)
    return GraphCalendarClient(
        access_token=access_token,
        timezone=tz,
        request_timeout=config.fetch_timeout_seconds
    )


def _print_result(result: AvailabilityResult, duration: int) -> None:
    if result.invalid_attendees:
        console.print(
            "[yellow]Ignored invalid attendees:[/yellow] "
            + ", ".join(repr(a) for a in result.invalid_attendees)
        )

    if not result.slots:
        console.print(
            "[yellow]No available slots found.[/yellow]\n"
            "Try a longer search window or a shorter duration."
        )
        return

    table = Table(
        title=f"{len(result.slots)} slot(s) of {duration} min for {', '.join(result.attendees)}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Day", style="bold yellow")
    table.add_column("Date")
    table.add_column("Start")
    table.add_column("End")

    for slot in result.slots:
        table.add_row(
            slot.start.format("dddd"),
            slot.start.format("YYYY-MM-DD"),
            slot.start.format("HH:mm"),
            slot.end.format("HH:mm"),
        )

    console.print(table)


@app.command()
def find(
    attendees: Annotated[Optional[List[str]], typer.Argument(help="Attendee email addresses or configured aliases.")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Meeting duration in minutes.")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Window start (ISO 8601 date or datetime). Defaults to now.")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="Window end (ISO 8601 date or datetime).")] = None,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use mock calendar data and skip authentication.")] = False,
    mock_data: Annotated[Optional[Path], typer.Option("--mock-data", help="JSON file with mock calendar events.")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the result as JSON.")] = False,
):
    """
    Find meeting slots where all attendees are free.

    Examples:

        slotresolver find alice@example.com bob@example.com --duration 60

        slotresolver find alice bob --start 2024-11-25 --end 2024-11-29

        slotresolver find alice@example.com --mock --mock-data events.json --json
    """
    try:
        config = load_config(config_file)
        tz = config.get_timezone_name()

        window_start = _parse_instant(start, tz) if start else None
        window_end = _parse_instant(end, tz, end_of_day=True) if end else None
        min_duration = duration if duration is not None else config.defaults.duration_minutes

        request = AvailabilityRequest(
            attendees=config.expand_aliases(attendees or []),
            duration_minutes=min_duration,
            window_start=window_start,
            window_end=window_end
        )

        fetcher = _build_fetcher(config, tz, mock, mock_data)
        service = AvailabilityService(
            fetcher,
            SlotCalculator(business_hours=config.business_hours()),
            fetch_timeout=config.fetch_timeout_seconds,
            default_window_days=config.defaults.window_days
        )

        result = asyncio.run(service.resolve(request))

    except InputValidationError as e:
        err_console.print(f"[bold red]Invalid request:[/bold red] {VALIDATION_MESSAGES[e.reason]}")
        if e.invalid_attendees:
            err_console.print("Rejected: " + ", ".join(repr(a) for a in e.invalid_attendees))
        raise typer.Exit(1)

    except ProviderFetchError as e:
        err_console.print(f"[bold red]Could not determine availability:[/bold red] {e}")
        raise typer.Exit(1)

    except (SlotResolverError, FileNotFoundError, ValueError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_result(result, min_duration)


@app.command()
def list_colleagues(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to config file"
    )
):
    """
    List all configured colleague aliases.
    """
    try:
        config = load_config(config_file)
    except (SlotResolverError, FileNotFoundError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    if not config.colleagues:
        console.print("[yellow]No colleagues defined in the config file.[/yellow]")
        return

    table = Table(
        title="Configured colleagues",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Name (alias)", style="bold yellow")
    table.add_column("Email", style="dim")

    for colleague in config.colleagues:
        table.add_row(colleague.name, colleague.email)

    console.print(table)


@app.command()
def test_auth(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to config file"
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Force re-authentication"
    )
):
    """
    Test Microsoft Graph authentication.
    """
    try:
        config = load_config(config_file)

        authenticator = GraphAuthenticator(
            client_id=config.client_id,
            tenant_id=config.tenant_id,
            authority_url=config.get_authority_url()
        )
        access_token = authenticator.get_access_token(force_refresh=force)

        client = GraphCalendarClient(
            access_token=access_token,
            timezone=config.get_timezone_name(),
            request_timeout=config.fetch_timeout_seconds
        )
        user_info = client.test_connection()

    except (SlotResolverError, FileNotFoundError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"[bold green]Authentication successful[/bold green]\n\n"
        f"[bold]User:[/bold] {user_info.get('displayName', 'N/A')}\n"
        f"[bold]Email:[/bold] {user_info.get('mail') or user_info.get('userPrincipalName', 'N/A')}\n"
        f"[bold]Token cache:[/bold] {authenticator.cache_backend}",
        title="Connection test"
    ))


@app.command()
def clear_cache(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to config file"
    )
):
    """
    Clear the authentication token cache.
    """
    try:
        config = load_config(config_file)
        authenticator = GraphAuthenticator(
            client_id=config.client_id,
            tenant_id=config.tenant_id
        )
        authenticator.clear_cache()
    except (SlotResolverError, FileNotFoundError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print("[green]Token cache cleared. You will need to re-authenticate.[/green]")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"[bold cyan]slotresolver[/bold cyan] version [bold]{__version__}[/bold]")


if __name__ == "__main__":
    app()
