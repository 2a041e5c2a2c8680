"""Runtime instance of one pipeline stage: stdio bindings, process, pumps."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from dataclasses import dataclass
from enum import StrEnum
from typing import IO, Any, cast

import structlog

from procchain.lib.exec.command import Command
from procchain.lib.exec.context import CancelReason, PipelineContext
from procchain.lib.exec.pipes import PipeLink
from procchain.lib.exec.process_groups import signal_process_group
from procchain.lib.exec.signals import StageStatus

_CHUNK_SIZE = 64 * 1024


class BindingKind(StrEnum):
    NULL = "null"
    LINK = "pipe"
    FD = "fd"
    PUMP = "pump"
    EXPOSE = "expose"


@dataclass(frozen=True, slots=True)
class Binding:
    """Where one standard stream of a stage is connected."""

    kind: BindingKind
    target: Any = None

    @classmethod
    def null(cls) -> Binding:
        return cls(BindingKind.NULL)

    def describe(self) -> str:
        if self.kind == BindingKind.LINK:
            return f"pipe[{cast('PipeLink', self.target).index}]"
        if self.kind == BindingKind.FD:
            return f"fd[{usable_fileno(self.target)}]"
        return str(self.kind)


def usable_fileno(obj: object) -> int | None:
    """Return the OS file descriptor behind ``obj``, if it has a real one."""

    fileno = getattr(obj, "fileno", None)
    if fileno is None:
        return None
    try:
        value = fileno()
    except (OSError, ValueError):
        # io.UnsupportedOperation for in-memory streams, ValueError once closed.
        return None
    return value if isinstance(value, int) else None


def bind_source(source: object) -> Binding:
    if source is None:
        return Binding.null()
    if isinstance(source, bytes | bytearray | memoryview | asyncio.StreamReader):
        return Binding(BindingKind.PUMP, source)
    if usable_fileno(source) is not None:
        return Binding(BindingKind.FD, source)
    return Binding(BindingKind.PUMP, source)


def bind_sink(sink: object) -> Binding:
    if sink is None:
        return Binding.null()
    if usable_fileno(sink) is not None:
        return Binding(BindingKind.FD, sink)
    return Binding(BindingKind.PUMP, sink)


def _popen_target(binding: Binding, *, reading: bool) -> int:
    if binding.kind == BindingKind.NULL:
        return asyncio.subprocess.DEVNULL
    if binding.kind == BindingKind.LINK:
        link = cast("PipeLink", binding.target)
        return link.read_fd if reading else link.write_fd
    if binding.kind == BindingKind.FD:
        flush = getattr(binding.target, "flush", None)
        if not reading and callable(flush):
            flush()
        fd = usable_fileno(binding.target)
        if fd is None:
            raise ValueError(f"stream {binding.target!r} lost its file descriptor")
        return fd
    return asyncio.subprocess.PIPE


class Stage:
    """One spawned (or spawnable) stage, linked to its Command by index."""

    def __init__(
        self,
        *,
        index: int,
        command: Command,
        stdin: Binding,
        stdout: Binding,
        stderr: Binding,
        in_link: PipeLink | None,
        out_link: PipeLink | None,
        logger: structlog.typing.FilteringBoundLogger,
    ) -> None:
        self.index = index
        self.command = command
        self.stdin = stdin
        self.stdout = stdout
        self.stderr = stderr
        self.in_link = in_link
        self.out_link = out_link
        self.process: asyncio.subprocess.Process | None = None
        self.status: StageStatus | None = None
        self._logger = logger
        self._io_tasks: list[asyncio.Task[None]] = []

    def __repr__(self) -> str:
        return f"Stage(index={self.index}, command={str(self.command)!r})"

    def __str__(self) -> str:
        return str(self.command)

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process is not None else None

    @property
    def exit_code(self) -> int | None:
        """Raw return code, set once this stage has been waited on."""

        return self.status.returncode if self.status is not None else None

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def spawn(self, context: PipelineContext) -> None:
        """Create the process and start any pump tasks its bindings need.

        The parent's copies of the pipe ends handed to the child are closed
        right after the spawn, so EOF flows downstream when this stage exits.
        """

        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.command.argv,
                stdin=_popen_target(self.stdin, reading=True),
                stdout=_popen_target(self.stdout, reading=False),
                stderr=_popen_target(self.stderr, reading=False),
                start_new_session=True,
            )
        finally:
            if self.in_link is not None:
                self.in_link.close_read()
            if self.out_link is not None:
                self.out_link.close_write()

        context.add_callback(self._on_context_cancelled)

        process = self.process
        if self.stdin.kind == BindingKind.PUMP and process.stdin is not None:
            self._io_tasks.append(
                asyncio.create_task(self._feed(self.stdin.target, process.stdin))
            )
        if self.stdout.kind == BindingKind.PUMP and process.stdout is not None:
            self._io_tasks.append(
                asyncio.create_task(self._drain(process.stdout, self.stdout.target))
            )
        if self.stderr.kind == BindingKind.PUMP and process.stderr is not None:
            self._io_tasks.append(
                asyncio.create_task(self._drain(process.stderr, self.stderr.target))
            )

    def kill(self) -> bool:
        """SIGKILL this stage's process group. False when nothing was running."""

        if self.process is None:
            return False
        return signal_process_group(self.process, signal.SIGKILL)

    async def wait(self) -> StageStatus:
        """Block until the process exits and its pumps have drained."""

        if self.process is None:
            raise RuntimeError(f"stage {self.index} was never spawned")
        returncode = await self.process.wait()
        if self._io_tasks:
            await asyncio.gather(*self._io_tasks)
        self.status = StageStatus.from_returncode(returncode)
        return self.status

    async def finish_io(self, grace_seconds: float) -> None:
        """Give pumps a bounded chance to drain, then cancel the stragglers."""

        pending = [task for task in self._io_tasks if not task.done()]
        if pending:
            _done, still_pending = await asyncio.wait(pending, timeout=grace_seconds)
            for task in still_pending:
                task.cancel()
            if still_pending:
                await asyncio.gather(*still_pending, return_exceptions=True)
        if self.process is not None and self.process.returncode is not None and self.status is None:
            self.status = StageStatus.from_returncode(self.process.returncode)

    def _on_context_cancelled(self, reason: CancelReason) -> None:
        if self.kill():
            self._logger.debug(
                "stage.killed", index=self.index, command=str(self.command), reason=str(reason)
            )

    async def _feed(self, source: object, writer: asyncio.StreamWriter) -> None:
        try:
            if isinstance(source, bytes | bytearray | memoryview):
                writer.write(bytes(source))
                await writer.drain()
            elif isinstance(source, asyncio.StreamReader):
                while chunk := await source.read(_CHUNK_SIZE):
                    writer.write(chunk)
                    await writer.drain()
            else:
                reader = cast("IO[bytes]", source)
                while chunk := reader.read(_CHUNK_SIZE):
                    writer.write(chunk)
                    await writer.drain()
        except (BrokenPipeError, ConnectionResetError):
            # The child stopped reading; its exit status tells the story.
            self._logger.debug("stage.stdin_closed_early", index=self.index)
        finally:
            writer.close()
            with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                await writer.wait_closed()

    async def _drain(self, reader: asyncio.StreamReader, sink: object) -> None:
        target = cast("IO[bytes]", sink)
        while chunk := await reader.read(_CHUNK_SIZE):
            target.write(chunk)
        flush = getattr(target, "flush", None)
        if callable(flush):
            flush()
