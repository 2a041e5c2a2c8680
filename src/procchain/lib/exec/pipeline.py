"""Pipeline lifecycle: start, wait, run, kill, cancel and teardown."""

from __future__ import annotations

import asyncio
import io
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

import structlog

from procchain.lib.config.settings import ProcchainConfig
from procchain.lib.exec.bridge import StopRegistration, watch_external_stop
from procchain.lib.exec.context import CancelReason, PipelineContext
from procchain.lib.exec.errors import (
    AlreadyStartedError,
    NotStartedError,
    PipelineExecutionError,
    PipelineTimeoutError,
    StageExitError,
    StageSpawnError,
    WaitInProgressError,
)
from procchain.lib.exec.pipes import PipeLink
from procchain.lib.exec.results import PipelineResult
from procchain.lib.exec.signals import map_stage_exit_code
from procchain.lib.exec.stage import BindingKind, Stage
from procchain.lib.exec.timeout import DEFAULT_KILL_GRACE_SECONDS, reap_process
from procchain.lib.formatting import format_pipeline


class PipelineState(StrEnum):
    CREATED = "created"
    STARTED = "started"
    EXITED = "exited"


class PipelineMode(StrEnum):
    CREATE = "create"
    CAPTURE = "capture"
    STREAM = "stream"


@dataclass(frozen=True, slots=True)
class PipelineOptions:
    """Per-pipeline options. ``timeout_seconds == 0`` means no deadline."""

    timeout_seconds: float = 0.0
    stop_event: asyncio.Event | None = None
    kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS

    @classmethod
    def from_config(cls, config: ProcchainConfig) -> PipelineOptions:
        return cls(
            timeout_seconds=config.timeout_seconds,
            kill_grace_seconds=config.kill_grace_seconds,
        )

    def __post_init__(self) -> None:
        if self.timeout_seconds < 0:
            raise ValueError("timeout_seconds must be >= 0.")
        if self.kill_grace_seconds < 0:
            raise ValueError("kill_grace_seconds must be >= 0.")


class Pipeline:
    """A prepared, single-use chain of stages.

    State moves ``created -> started -> exited`` and never goes back. A
    finished pipeline cannot be restarted; prepare the commands again.
    """

    def __init__(
        self,
        *,
        stages: Sequence[Stage],
        links: Sequence[PipeLink],
        context: PipelineContext,
        options: PipelineOptions,
        mode: PipelineMode,
        logger: structlog.typing.FilteringBoundLogger,
        stdout_buffer: io.BytesIO | None = None,
        stderr_buffer: io.BytesIO | None = None,
    ) -> None:
        self.stages: tuple[Stage, ...] = tuple(stages)
        self.links: tuple[PipeLink, ...] = tuple(links)
        self.context = context
        self.options = options
        self.mode = mode
        self.kill_requested = False
        self._logger = logger
        self._state = PipelineState.CREATED
        self._waiting = False
        self._registrations: list[StopRegistration] = []
        self._stdout_buffer = stdout_buffer
        self._stderr_buffer = stderr_buffer

    def __len__(self) -> int:
        return len(self.stages)

    def __str__(self) -> str:
        return f"Pipeline({self.display}, state={self._state})"

    def __repr__(self) -> str:
        return f"Pipeline(stages={len(self.stages)}, mode={self.mode}, state={self._state})"

    @property
    def display(self) -> str:
        return format_pipeline(str(stage) for stage in self.stages)

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def started(self) -> bool:
        return self._state != PipelineState.CREATED

    @property
    def exited(self) -> bool:
        return self._state == PipelineState.EXITED

    @property
    def stdout_stream(self) -> asyncio.StreamReader | None:
        """Live stdout of the terminal stage in streaming mode, after start."""

        return self._exposed("stdout")

    @property
    def stderr_stream(self) -> asyncio.StreamReader | None:
        """Live stderr of the terminal stage in streaming mode, after start."""

        return self._exposed("stderr")

    @property
    def captured_stdout(self) -> bytes:
        return self._stdout_buffer.getvalue() if self._stdout_buffer is not None else b""

    @property
    def captured_stderr(self) -> bytes:
        return self._stderr_buffer.getvalue() if self._stderr_buffer is not None else b""

    def register_external_stop(self, event: asyncio.Event) -> StopRegistration:
        """Kill the pipeline once ``event`` is set.

        The observer is disposed during teardown; dispose it earlier through
        the returned registration.
        """

        registration = watch_external_stop(self, event, self._logger)
        self._registrations.append(registration)
        return registration

    async def start(self) -> None:
        """Spawn every stage in declared order.

        The first spawn failure tears the pipeline down (stages already
        spawned are killed through the shared context) and raises
        ``StageSpawnError``. A stage spawned after ``kill()`` was requested is
        killed as soon as it exists.
        """

        if self._state != PipelineState.CREATED:
            raise AlreadyStartedError()

        self._state = PipelineState.STARTED
        self.context.add_callback(self._on_context_cancelled)
        self.context.arm()
        if self.options.stop_event is not None:
            self.register_external_stop(self.options.stop_event)

        total = len(self.stages)
        for stage in self.stages:
            self._logger.debug(
                "stage.start", index=stage.index, total=total, command=str(stage)
            )
            try:
                await stage.spawn(self.context)
            except OSError as exc:
                self._logger.debug(
                    "stage.spawn_failed", index=stage.index, command=str(stage), error=str(exc)
                )
                await self._teardown()
                raise StageSpawnError(stage.index, str(stage), exc) from exc
            if self.kill_requested and stage.kill():
                # kill() ran while earlier stages were spawning.
                self._logger.debug("stage.killed", index=stage.index, command=str(stage))

    async def wait(self) -> PipelineResult:
        """Wait on each stage in order and report the pipeline's exit code.

        Iteration stops at the first stage that exits non-zero or is
        signaled; that stage's reconciled exit code is reported. A kill that
        lands after every stage already exited 0 still reports 0, with
        ``killed`` set on the result.

        Teardown always runs before returning: the shared context is
        cancelled, every still-running stage is killed and reaped, and every
        pipe end closed.
        """

        if self._state != PipelineState.STARTED:
            raise NotStartedError()
        if self._waiting:
            raise WaitInProgressError()

        self._waiting = True
        try:
            return await self._wait_stages()
        finally:
            self._waiting = False
            await self._teardown()

    async def run(self) -> PipelineResult:
        """Start then wait, with the same ordering and cleanup rules."""

        await self.start()
        return await self.wait()

    def kill(self) -> None:
        """SIGKILL every running stage and mark the pipeline as killed.

        Every stage is signaled directly instead of relying on broken pipes
        to bring the downstream stages down.
        """

        self._logger.debug("pipeline.kill", pipeline=self.display)
        if self._state != PipelineState.STARTED:
            raise NotStartedError()

        self.kill_requested = True
        for stage in self.stages:
            stage.kill()

    def cancel(self) -> None:
        """Cancel the shared context, terminating every stage, and mark exited."""

        self._logger.debug("pipeline.cancel", pipeline=self.display)
        if self._state != PipelineState.STARTED:
            raise NotStartedError()

        self.kill_requested = True
        self._close()

    async def close(self) -> None:
        """Release every resource; safe to call any number of times."""

        await self._teardown()

    async def _wait_stages(self) -> PipelineResult:
        total = len(self.stages)
        for stage in self.stages:
            self._logger.debug("stage.wait", index=stage.index, total=total, command=str(stage))
            status = await stage.wait()
            self._logger.debug(
                "stage.exit",
                index=stage.index,
                command=str(stage),
                returncode=status.returncode,
                exit_status=str(status.exit_status),
            )

            if not status.success:
                error: PipelineExecutionError
                if self.context.deadline_exceeded:
                    error = PipelineTimeoutError(self.context.timeout_seconds)
                else:
                    error = StageExitError(stage.index, str(stage), status)
                return PipelineResult(
                    exit_code=map_stage_exit_code(status, kill_requested=self.kill_requested),
                    status=status,
                    stage_index=stage.index,
                    error=error,
                    killed=self.kill_requested,
                    timed_out=self.context.deadline_exceeded,
                )

            if stage.out_link is not None:
                stage.out_link.close_write()
            if stage.in_link is not None:
                stage.in_link.close_read()

        last = self.stages[-1]
        if last.status is None:
            raise RuntimeError(f"stage {last.index} finished without an exit status")
        return PipelineResult(
            exit_code=map_stage_exit_code(last.status, kill_requested=False),
            status=last.status,
            stage_index=last.index,
            killed=self.kill_requested,
            timed_out=False,
        )

    def _exposed(self, name: str) -> asyncio.StreamReader | None:
        last = self.stages[-1]
        binding = last.stdout if name == "stdout" else last.stderr
        if binding.kind != BindingKind.EXPOSE or last.process is None:
            return None
        stream: asyncio.StreamReader | None = getattr(last.process, name)
        return stream

    def _close(self) -> None:
        self._state = PipelineState.EXITED
        self.context.cancel()
        for link in self.links:
            link.close()
        for registration in self._registrations:
            registration.dispose()

    async def _teardown(self) -> None:
        self._close()
        grace = self.options.kill_grace_seconds
        for stage in self.stages:
            if stage.process is not None:
                await reap_process(stage.process, grace_seconds=grace)
            await stage.finish_io(grace)

    def _on_context_cancelled(self, reason: CancelReason) -> None:
        if reason == CancelReason.DEADLINE_EXCEEDED:
            self.kill_requested = True
            self._logger.debug(
                "pipeline.timeout",
                pipeline=self.display,
                timeout_seconds=self.context.timeout_seconds,
            )
