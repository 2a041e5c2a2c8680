"""Pipeline construction entry points."""

from __future__ import annotations

import structlog

from procchain.lib.exec.builder import prepare
from procchain.lib.exec.command import Command
from procchain.lib.exec.pipeline import Pipeline, PipelineMode, PipelineOptions
from procchain.lib.exec.results import CapturedOutput


def create(
    *commands: Command,
    options: PipelineOptions | None = None,
    logger: structlog.typing.FilteringBoundLogger | None = None,
) -> Pipeline:
    """Build a pipeline; the caller drives start/wait/kill/cancel."""

    return prepare(commands, options, mode=PipelineMode.CREATE, logger=logger)


def pipe_output(
    *commands: Command,
    options: PipelineOptions | None = None,
    logger: structlog.typing.FilteringBoundLogger | None = None,
) -> Pipeline:
    """Build a pipeline whose terminal stdout/stderr are read by the caller.

    ``stdout_stream`` and ``stderr_stream`` become available after
    ``start()``. Read them before (or while) awaiting ``wait()``.
    """

    return prepare(commands, options, mode=PipelineMode.STREAM, logger=logger)


async def output(
    *commands: Command,
    options: PipelineOptions | None = None,
    logger: structlog.typing.FilteringBoundLogger | None = None,
) -> CapturedOutput:
    """Run the pipeline to completion and return its buffered output.

    Stage failures come back inside the result; configuration and spawn
    errors are raised.
    """

    pipeline = prepare(commands, options, mode=PipelineMode.CAPTURE, logger=logger)
    result = await pipeline.run()
    return CapturedOutput(
        stdout=pipeline.captured_stdout,
        stderr=pipeline.captured_stderr,
        result=result,
    )
