"""Helpers shared by CLI commands."""

from __future__ import annotations

import tomllib
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from leaklock.config import ConfigNotFoundError, LeakLockSettings, load_config


def load_settings(
    config_file: Path | None,
    console: Console,
    history: bool | None = None,
) -> LeakLockSettings:
    """Load settings, exiting with code 1 on a missing or broken config file."""
    try:
        settings = load_config(config_file)
    except ConfigNotFoundError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e
    except tomllib.TOMLDecodeError as e:
        console.print(f"[red]Error:[/red] Invalid TOML in config file: {e}")
        raise typer.Exit(code=1) from e
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid configuration: {escape(str(e))}")
        raise typer.Exit(code=1) from e

    if history is not None:
        settings = settings.model_copy(update={"git_history": "full" if history else "none"})
    return settings


def progress_printer(console: Console, quiet: bool = False):
    """Return an on_progress callback that prints stage labels."""
    if quiet:
        return lambda _label: None
    return lambda label: console.print(f"[dim]{label}...[/dim]")


def parse_replacements(values: list[str] | None) -> dict[str, str]:
    """Parse ``SECRET=REPLACEMENT`` pairs.

    The last ``=`` separates the two, so secrets ending in base64 padding
    still parse.

    Raises:
        typer.BadParameter: If a value has no ``=`` or an empty secret.
    """
    replacements: dict[str, str] = {}
    for value in values or []:
        secret, sep, replacement = value.rpartition("=")
        if not sep or not secret:
            raise typer.BadParameter(f"Expected SECRET=REPLACEMENT, got {value!r}")
        replacements[secret] = replacement
    return replacements
