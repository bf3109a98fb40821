"""CLI entry point and base commands.

Provides the main CLI application with commands for:
- serve: Run the API server
- run: Execute a source file in the sandbox
- languages: List supported languages
- check: Verify the container runtime
"""

import typer
from rich.panel import Panel

from ofco import __version__
from ofco.cli.commands.execute import check, languages, run
from ofco.cli.commands.serve import serve
from ofco.cli.utils import console
from ofco.logging_config import configure_logging

app = typer.Typer(
    name="ofco",
    help="Sandboxed code execution service",
    add_completion=False,
    no_args_is_help=True,
)


@app.callback()
def main() -> None:
    """Sandboxed code execution service."""
    configure_logging()


app.command()(serve)
app.command()(run)
app.command()(languages)
app.command()(check)


@app.command()
def version() -> None:
    """Show ofco version information."""
    console.print(
        Panel(
            f"[bold]ofco[/bold] v{__version__}\nSandboxed code execution service",
            title="Version",
            border_style="blue",
        )
    )


# Entry point for: python -m ofco.cli.main
if __name__ == "__main__":
    app()
