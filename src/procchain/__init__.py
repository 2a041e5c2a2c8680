"""Async shell-style process pipelines (``cmd1 | cmd2 | cmd3``).

Usage::

    from procchain import command, output

    captured = await output(command("ls", "-la"), command("grep", "py"))
    print(captured.exit_code, captured.text())
"""

from procchain.lib import (
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

__version__ = "0.1.0"

__all__ = [
    "CapturedOutput",
    "Command",
    "Pipeline",
    "PipelineOptions",
    "PipelineResult",
    "__version__",
    "command",
    "create",
    "output",
    "pipe_output",
]
