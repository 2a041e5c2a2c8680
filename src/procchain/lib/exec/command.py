"""Immutable description of one stage of a pipeline."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from typing import IO, Any, TypeAlias

from procchain.lib.formatting import format_command

InputSource: TypeAlias = bytes | IO[bytes] | asyncio.StreamReader
OutputSink: TypeAlias = IO[bytes]


@dataclass(frozen=True, slots=True)
class Command:
    """One executable invocation plus optional stream overrides.

    ``stdin`` is legal only on the first stage of a pipeline and ``stdout``
    only on the last; ``stderr`` may be set on any stage. The ``with_*``
    helpers return a new Command and never mutate the receiver.
    """

    program: str
    args: tuple[str, ...] = ()
    stdin: InputSource | None = field(default=None, compare=False)
    stdout: OutputSink | None = field(default=None, compare=False)
    stderr: OutputSink | None = field(default=None, compare=False)

    def with_stdin(self, source: InputSource | None) -> Command:
        return replace(self, stdin=source)

    def with_stdout(self, sink: OutputSink | None) -> Command:
        return replace(self, stdout=sink)

    def with_stderr(self, sink: OutputSink | None) -> Command:
        return replace(self, stderr=sink)

    @property
    def argv(self) -> tuple[str, ...]:
        return (self.program, *self.args)

    def __str__(self) -> str:
        return format_command(self.program, self.args)


def command(program: str, *args: str, **streams: Any) -> Command:
    """Build a Command: ``command("grep", "-v", "x", stderr=sys.stderr.buffer)``."""

    unknown = set(streams) - {"stdin", "stdout", "stderr"}
    if unknown:
        raise TypeError(f"Unexpected stream overrides: {sorted(unknown)}")
    return Command(program=program, args=tuple(args), **streams)
