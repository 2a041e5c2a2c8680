"""Human-readable rendering of commands and pipelines for log messages."""

from __future__ import annotations

import os
from collections.abc import Iterable, Sequence


def format_command(program: str, args: Sequence[str]) -> str:
    """Render ``basename(program) arg...``."""

    name = os.path.basename(program) or program
    if not args:
        return name
    return f"{name} {' '.join(args)}"


def format_pipeline(parts: Iterable[str]) -> str:
    return " | ".join(parts)
