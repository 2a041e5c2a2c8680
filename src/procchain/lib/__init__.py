"""Core procchain library exports."""

from procchain.lib.exec import (
    CapturedOutput,
    Command,
    Pipeline,
    PipelineOptions,
    PipelineResult,
    command,
    create,
    output,
    pipe_output,
)

__all__ = [
    "CapturedOutput",
    "Command",
    "Pipeline",
    "PipelineOptions",
    "PipelineResult",
    "command",
    "create",
    "output",
    "pipe_output",
]
