"""
Keygate CLI - styled output helpers built on Click.

    success(), error(), warning()   coloured one-liners
    banner()                                 bordered header
    kv()                                     aligned key-value pair

Diagnostics go to stderr by default so that stdout stays machine-readable.
"""

from __future__ import annotations

import shutil
from typing import Optional

import click

_H_TL = "\u250f"   # ┏
_H_TR = "\u2513"   # ┓
_H_BL = "\u2517"   # ┗
_H_BR = "\u251b"   # ┛
_H_H  = "\u2501"   # ━
_H_V  = "\u2503"   # ┃

_CHECK = "\u2713"  # ✓
_CROSS = "\u2717"  # ✗


def _tw() -> int:
    """Terminal width clamped to a sane range."""
    return max(40, min(shutil.get_terminal_size((80, 24)).columns, 120))


def success(message: str, err: bool = True) -> None:
    click.echo(click.style(message, fg="green"), err=err)


def error(message: str, err: bool = True) -> None:
    click.echo(click.style(message, fg="red"), err=err)


def warning(message: str, err: bool = True) -> None:
    click.echo(click.style(message, fg="yellow"), err=err)


def banner(title: str = "Keygate", subtitle: str = "", *, width: Optional[int] = None, fg: str = "cyan") -> None:
    """
    Print a bordered banner with centred title.

        ┏━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━┓
        ┃               Keygate                ┃
        ┃     credential issuance service      ┃
        ┗━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━┛
    """
    w = width or min(_tw(), 60)
    inner = w - 2
    click.echo(click.style(f"{_H_TL}{_H_H * inner}{_H_TR}", fg=fg))
    click.echo(click.style(f"{_H_V}{title.center(inner)}{_H_V}", fg=fg, bold=True))
    if subtitle:
        click.echo(click.style(f"{_H_V}{subtitle.center(inner)}{_H_V}", fg=fg))
    click.echo(click.style(f"{_H_BL}{_H_H * inner}{_H_BR}", fg=fg))


def kv(key: str, value: str, *, key_width: int = 24, indent: int = 2) -> None:
    """
    Print an aligned key-value pair.

        cache_ttl:              900
        redis_url:              None
    """
    prefix = " " * indent
    k = click.style(f"{key}:", fg="white")
    v = click.style(str(value), fg="cyan")
    padding = " " * max(1, key_width - len(key) - 1)
    click.echo(f"{prefix}{k}{padding}{v}")
