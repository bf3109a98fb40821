"""Execution commands: run a file, list languages, check the runtime."""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.panel import Panel
from rich.table import Table

from ofco.cli.utils import console, err_console
from ofco.exceptions import OfcoError, UnsupportedLanguageError
from ofco.sandbox.coordinator import ExecutionCoordinator
from ofco.sandbox.outcomes import (
    Completed,
    ExecutionRequest,
    RunnerStartFailure,
    TimedOut,
    UnsupportedLanguage,
)

# Exit codes for outcomes that are not a program's own exit status
EXIT_USAGE = 2
EXIT_TIMED_OUT = 124
EXIT_RUNNER_FAILURE = 125


def run(
    file: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, readable=True, help="Source file to execute"),
    ],
    language: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--language", "-l", help="Language (inferred from the file extension if omitted)"),
    ] = None,
    timeout: Annotated[
        Optional[float],  # noqa: UP007
        typer.Option("--timeout", "-t", help="Timeout in seconds"),
    ] = None,
) -> None:
    """Execute a source file in the sandbox.

    Program stdout and stderr are forwarded unchanged and the command
    exits with the program's exit code.
    """
    try:
        coordinator = ExecutionCoordinator.from_settings()
        if language is None:
            language = coordinator.registry.for_extension(file.suffix).language
    except UnsupportedLanguageError:
        err_console.print(f"[red]Cannot infer language from '{file.name}'. Use --language.[/red]")
        raise typer.Exit(EXIT_USAGE) from None
    except OfcoError as e:
        err_console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1) from None

    try:
        source = file.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        err_console.print(f"[red]❌ '{file.name}' is not UTF-8 text[/red]")
        raise typer.Exit(1) from None
    except OSError as e:
        err_console.print(f"[red]❌ Cannot read '{file.name}': {e}[/red]")
        raise typer.Exit(1) from None

    request = ExecutionRequest(language=language, source=source, timeout_seconds=timeout)

    try:
        outcome = asyncio.run(coordinator.execute(request))
    except OfcoError as e:
        err_console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1) from None

    if isinstance(outcome, Completed):
        typer.echo(outcome.stdout, nl=False)
        typer.echo(outcome.stderr, nl=False, err=True)
        raise typer.Exit(outcome.exit_code)
    if isinstance(outcome, TimedOut):
        err_console.print(f"[red]⏱ Execution timed out after {outcome.timeout_seconds:g}s[/red]")
        raise typer.Exit(EXIT_TIMED_OUT)
    if isinstance(outcome, RunnerStartFailure):
        err_console.print(f"[red]❌ Failed to start runner: {outcome.reason}[/red]")
        raise typer.Exit(EXIT_RUNNER_FAILURE)
    if isinstance(outcome, UnsupportedLanguage):
        err_console.print(f"[red]Unsupported language: {outcome.language}[/red]")
        raise typer.Exit(EXIT_USAGE)


def languages() -> None:
    """List supported languages and their container images."""
    from ofco.sandbox.profiles import get_default_registry

    registry = get_default_registry()

    table = Table(title="Supported Languages", show_header=True)
    table.add_column("Language", style="cyan")
    table.add_column("Extension")
    table.add_column("Image")
    table.add_column("Command", style="dim")

    for name in registry.languages():
        profile = registry.resolve(name)
        table.add_row(name, f".{profile.file_extension}", profile.image, " ".join(profile.entrypoint))

    console.print(table)


def check() -> None:
    """Check that the container engine and images are available."""
    try:
        coordinator = ExecutionCoordinator.from_settings()
    except OfcoError as e:
        err_console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1) from None

    registry = coordinator.registry
    images = [registry.resolve(name).image for name in registry.languages()]

    status = asyncio.run(coordinator.runner.check_runtime(images))

    if not status["isolated"]:
        console.print(
            Panel(
                "[yellow]Sandbox disabled: code runs directly on this host.[/yellow]",
                title="Runtime",
                border_style="yellow",
            )
        )
        return

    table = Table(title="Sandbox Runtime", show_header=True)
    table.add_column("Component", style="cyan")
    table.add_column("Status")

    def _mark(ok: bool) -> str:
        return "[green]✓[/green]" if ok else "[red]✗[/red]"

    table.add_row(f"Engine ({status['engine']})", _mark(status["engine_available"]))
    table.add_row("gVisor (runsc)", _mark(status["gvisor_available"]))
    for image, present in status["images"].items():
        table.add_row(f"Image {image}", _mark(present))
    console.print(table)

    for error in status["errors"]:
        console.print(f"[yellow]• {error}[/yellow]")

    if not status["engine_available"]:
        raise typer.Exit(1)
