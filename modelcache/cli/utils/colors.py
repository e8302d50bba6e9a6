"""
ModelCache CLI — styled output.

    success(), error(), warning(), info(), dim(), bold()
    section()  — heading with underline
    kv()       — aligned key-value pair

click.style handles NO_COLOR / TERM=dumb, so output degrades on plain
terminals.
"""

from __future__ import annotations

import click

_CHECK = "\u2713"   # ✓
_CROSS = "\u2717"   # ✗
_WARN  = "\u26a0"   # ⚠
_RULE  = "\u2500"   # ─


def success(message: str) -> None:
    click.echo(click.style(message, fg="green"))


def error(message: str) -> None:
    click.echo(click.style(message, fg="red"))


def warning(message: str) -> None:
    click.echo(click.style(message, fg="yellow"))


def info(message: str) -> None:
    click.echo(click.style(message, fg="cyan"))


def dim(message: str) -> None:
    click.echo(click.style(message, dim=True))


def bold(message: str) -> str:
    """Return bold-styled text (does not echo)."""
    return click.style(message, bold=True)


def section(title: str, *, width: int = 40) -> None:
    """Print a cyan heading followed by a thin rule."""
    click.echo(click.style(title, fg="cyan", bold=True))
    click.echo(_RULE * width)


def kv(key: str, value: object, *, key_width: int = 18, indent: int = 2) -> None:
    """
    Print an aligned key-value pair.

        Store:            memory
        Cache minutes:    60
    """
    padding = " " * max(1, key_width - len(key) - 1)
    click.echo(f"{' ' * indent}{key}:{padding}{click.style(str(value), fg='cyan')}")
