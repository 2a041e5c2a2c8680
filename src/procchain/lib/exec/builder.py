"""Validate a command sequence and wire it into a Pipeline."""

from __future__ import annotations

import asyncio
import io
from collections.abc import Sequence

import structlog

from procchain.lib.exec.command import Command
from procchain.lib.exec.context import PipelineContext
from procchain.lib.exec.errors import (
    InvalidStdinPlacementError,
    InvalidStdoutPlacementError,
    NoCommandsError,
    PipelineConfigError,
)
from procchain.lib.exec.pipeline import Pipeline, PipelineMode, PipelineOptions
from procchain.lib.exec.pipes import PipeLink
from procchain.lib.exec.stage import Binding, BindingKind, Stage, bind_sink, bind_source
from procchain.lib.formatting import format_pipeline
from procchain.lib.logging import null_logger


def _is_readable(source: object) -> bool:
    if isinstance(source, bytes | bytearray | memoryview | asyncio.StreamReader):
        return True
    return callable(getattr(source, "read", None)) or callable(getattr(source, "fileno", None))


def _is_writable(sink: object) -> bool:
    return callable(getattr(sink, "write", None)) or callable(getattr(sink, "fileno", None))


def validate_commands(commands: Sequence[Command], mode: PipelineMode) -> None:
    """Raise ``PipelineConfigError`` if the sequence cannot form a pipeline."""

    total = len(commands)
    if total == 0:
        raise NoCommandsError()

    last = total - 1
    for index, cmd in enumerate(commands):
        if not isinstance(cmd, Command):
            raise PipelineConfigError(
                f"stage {index}: expected Command, got {type(cmd).__name__}"
            )
        if not isinstance(cmd.program, str) or not cmd.program.strip():
            raise PipelineConfigError(f"stage {index}: program must be a non-empty string")
        if not all(isinstance(arg, str) for arg in cmd.args):
            raise PipelineConfigError(f"stage {index}: arguments must be strings")

        if index != 0 and cmd.stdin is not None:
            raise InvalidStdinPlacementError(index)
        if index != last and cmd.stdout is not None:
            raise InvalidStdoutPlacementError(index)

        if cmd.stdin is not None and not _is_readable(cmd.stdin):
            raise PipelineConfigError(f"stage {index}: unsupported stdin {cmd.stdin!r}")
        for name, sink in (("stdout", cmd.stdout), ("stderr", cmd.stderr)):
            if sink is not None and not _is_writable(sink):
                raise PipelineConfigError(f"stage {index}: unsupported {name} {sink!r}")

    if mode == PipelineMode.STREAM and commands[last].stdout is not None:
        raise PipelineConfigError("stdout cannot be redirected when streaming pipeline output")


def prepare(
    commands: Sequence[Command],
    options: PipelineOptions | None = None,
    *,
    mode: PipelineMode = PipelineMode.CREATE,
    logger: structlog.typing.FilteringBoundLogger | None = None,
) -> Pipeline:
    """Build a Pipeline in the ``created`` state.

    Pipes are only allocated once the whole sequence has been validated, so
    a configuration error never leaks file descriptors.
    """

    resolved_options = options or PipelineOptions()
    log = logger if logger is not None else null_logger()
    validate_commands(commands, mode)

    total = len(commands)
    last = total - 1
    log.debug(
        "pipeline.prepare",
        pipeline=format_pipeline(str(cmd) for cmd in commands),
        mode=str(mode),
        timeout_seconds=resolved_options.timeout_seconds,
    )

    links: list[PipeLink] = []
    stages: list[Stage] = []
    stdout_buffer: io.BytesIO | None = None
    stderr_buffer: io.BytesIO | None = None
    previous_link: PipeLink | None = None

    try:
        for index, cmd in enumerate(commands):
            stdin = bind_source(cmd.stdin) if index == 0 else Binding(BindingKind.LINK, previous_link)
            stderr = bind_sink(cmd.stderr)
            out_link: PipeLink | None = None

            if index < last:
                out_link = PipeLink(index)
                links.append(out_link)
                stdout = Binding(BindingKind.LINK, out_link)
            elif mode == PipelineMode.STREAM:
                stdout = Binding(BindingKind.EXPOSE)
                if cmd.stderr is None:
                    stderr = Binding(BindingKind.EXPOSE)
            elif mode == PipelineMode.CAPTURE:
                if cmd.stdout is None:
                    stdout_buffer = io.BytesIO()
                    stdout = Binding(BindingKind.PUMP, stdout_buffer)
                else:
                    stdout = bind_sink(cmd.stdout)
                if cmd.stderr is None:
                    stderr_buffer = io.BytesIO()
                    stderr = Binding(BindingKind.PUMP, stderr_buffer)
            else:
                stdout = bind_sink(cmd.stdout)

            stage = Stage(
                index=index,
                command=cmd,
                stdin=stdin,
                stdout=stdout,
                stderr=stderr,
                in_link=previous_link,
                out_link=out_link,
                logger=log,
            )
            stages.append(stage)
            log.debug(
                "stage.prepare",
                index=index,
                total=total,
                command=str(cmd),
                stdin=stdin.describe(),
                stdout=stdout.describe(),
                stderr=stderr.describe(),
            )
            previous_link = out_link
    except BaseException:
        for link in links:
            link.close()
        raise

    return Pipeline(
        stages=stages,
        links=links,
        context=PipelineContext(resolved_options.timeout_seconds),
        options=resolved_options,
        mode=mode,
        logger=log,
        stdout_buffer=stdout_buffer,
        stderr_buffer=stderr_buffer,
    )
