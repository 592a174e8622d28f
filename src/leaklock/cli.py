"""Command-line interface for leaklock."""

import typer
from rich.console import Console

from leaklock.cli_commands.clean import clean
from leaklock.cli_commands.deps import doctor, install
from leaklock.cli_commands.scan import scan

app = typer.Typer(
    name="leaklock",
    help="Find leaked secrets with Nosey Parker and scrub them from git history with BFG.",
    no_args_is_help=True,
)
console = Console()

app.command()(doctor)
app.command()(install)
app.command()(scan)
app.command()(clean)


@app.command()
def version() -> None:
    """Show leaklock version."""
    from leaklock import __version__

    console.print(f"leaklock [bold green]{__version__}[/bold green]")


if __name__ == "__main__":
    app()
