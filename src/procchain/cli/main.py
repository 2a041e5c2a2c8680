"""Cyclopts CLI entry point for procchain."""

from __future__ import annotations

import asyncio
import json
import shlex
import sys
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, BinaryIO

import structlog
from cyclopts import App, Parameter

from procchain import __version__
from procchain.lib.config.settings import load_config
from procchain.lib.exec import (
    Command,
    PipelineConfigError,
    PipelineOptions,
    PipelineResult,
    StageSpawnError,
    StopSignalListener,
    command,
    output,
    pipe_output,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = structlog.get_logger(__name__)

EXIT_CONFIG_ERROR = 2
EXIT_SPAWN_ERROR = 127

app = App(
    name="procchain",
    help="Run shell-style process pipelines without a shell.",
    version=__version__,
    help_formatter="plain",
)


def parse_stage(raw: str) -> Command:
    """Split one STAGE argument into program and arguments."""

    parts = shlex.split(raw)
    if not parts:
        raise PipelineConfigError(f"empty stage: {raw!r}")
    return command(parts[0], *parts[1:])


def _result_payload(result: PipelineResult) -> dict[str, object]:
    status = result.status
    return {
        "exit_code": result.exit_code,
        "exit_status": str(status.exit_status) if status is not None else None,
        "returncode": status.returncode if status is not None else None,
        "stage_index": result.stage_index,
        "killed": result.killed,
        "timed_out": result.timed_out,
        "error": str(result.error) if result.error is not None else None,
    }


async def _relay(reader: asyncio.StreamReader | None, target: BinaryIO) -> None:
    if reader is None:
        return
    while line := await reader.readline():
        target.write(line)
        target.flush()


async def _run_pipeline(
    commands: Sequence[Command],
    options: PipelineOptions,
    *,
    stream: bool,
    json_mode: bool,
) -> int:
    with StopSignalListener() as listener:
        resolved = replace(options, stop_event=listener.event)
        if stream:
            pipeline = pipe_output(*commands, options=resolved, logger=logger)
            await pipeline.start()
            await asyncio.gather(
                _relay(pipeline.stdout_stream, sys.stdout.buffer),
                _relay(pipeline.stderr_stream, sys.stderr.buffer),
            )
            result = await pipeline.wait()
            if json_mode:
                print(json.dumps(_result_payload(result)))
            return result.exit_code

        captured = await output(*commands, options=resolved, logger=logger)

    if json_mode:
        payload = _result_payload(captured.result)
        payload["stdout"] = captured.stdout.decode("utf-8", errors="replace")
        payload["stderr"] = captured.stderr.decode("utf-8", errors="replace")
        print(json.dumps(payload))
    else:
        sys.stdout.buffer.write(captured.stdout)
        sys.stdout.buffer.flush()
        sys.stderr.buffer.write(captured.stderr)
        sys.stderr.buffer.flush()
    return captured.exit_code


@app.command(name="run")
def run(
    *stages: str,
    timeout: Annotated[
        float | None,
        Parameter(name="--timeout", help="Kill the whole pipeline after this many seconds."),
    ] = None,
    stream: Annotated[
        bool,
        Parameter(name="--stream", help="Relay terminal-stage output as it is produced."),
    ] = False,
    json_mode: Annotated[
        bool,
        Parameter(name="--json", help="Emit a JSON summary of the pipeline result."),
    ] = False,
    config: Annotated[
        Path | None,
        Parameter(name="--config", help="Read settings from this TOML file."),
    ] = None,
) -> None:
    """Pipe each STAGE into the next, e.g. procchain run 'ls -la' 'grep py'."""

    try:
        settings = load_config(config)
        commands = [parse_stage(stage) for stage in stages]
        options = PipelineOptions.from_config(settings)
        if timeout is not None:
            options = replace(options, timeout_seconds=timeout)
        exit_code = asyncio.run(
            _run_pipeline(commands, options, stream=stream, json_mode=json_mode)
        )
    except StageSpawnError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_SPAWN_ERROR) from None
    except (ValueError, OSError) as exc:
        # PipelineConfigError is a ValueError; OSError covers unreadable config files.
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_CONFIG_ERROR) from None
    raise SystemExit(exit_code)


def _extract_verbosity(argv: Sequence[str]) -> tuple[list[str], int]:
    cleaned: list[str] = []
    verbosity = 0
    for arg in argv:
        if arg in {"-v", "--verbose"}:
            verbosity += 1
            continue
        if arg.startswith("-v") and set(arg[1:]) == {"v"}:
            verbosity += len(arg) - 1
            continue
        cleaned.append(arg)
    return cleaned, verbosity


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point used by `procchain` and `python -m procchain`."""

    from procchain.lib.logging import configure_logging

    args, verbosity = _extract_verbosity(list(sys.argv[1:] if argv is None else argv))
    # Configure logging early so structlog output goes to stderr, not stdout.
    configure_logging(json_mode="--json" in args, verbosity=verbosity)
    app(args)
