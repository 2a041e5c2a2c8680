"""Exit status reconciliation and OS signal plumbing for pipelines."""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass
from enum import StrEnum
from threading import Lock, RLock
from types import FrameType
from typing import Final, cast

TARGET_SIGNALS: Final[tuple[signal.Signals, ...]] = (signal.SIGINT, signal.SIGTERM)

# 128 + SIGINT, what a shell reports for an interrupted job.
INTERRUPT_EXIT_CODE: Final[int] = 128 + signal.SIGINT.value


class ExitStatus(StrEnum):
    NIL = "<nil>"
    EXITED = "exited"
    SIGNALED = "signaled"


@dataclass(frozen=True, slots=True)
class StageStatus:
    """How one stage's process ended, decoded from its raw return code."""

    returncode: int | None
    exit_status: ExitStatus
    signal: signal.Signals | None = None

    @classmethod
    def from_returncode(cls, returncode: int | None) -> StageStatus:
        if returncode is None:
            return cls(returncode=None, exit_status=ExitStatus.NIL)
        if returncode < 0:
            try:
                signum: signal.Signals | None = signal.Signals(-returncode)
            except ValueError:
                signum = None
            return cls(returncode=returncode, exit_status=ExitStatus.SIGNALED, signal=signum)
        return cls(returncode=returncode, exit_status=ExitStatus.EXITED)

    @property
    def success(self) -> bool:
        return self.exit_status == ExitStatus.EXITED and self.returncode == 0

    def describe(self) -> str:
        if self.exit_status == ExitStatus.SIGNALED:
            name = self.signal.name if self.signal is not None else str(-(self.returncode or 0))
            return f"terminated by signal {name}"
        if self.exit_status == ExitStatus.NIL:
            return "did not exit"
        return f"exited with status {self.returncode}"


def signal_to_exit_code(received_signal: signal.Signals | None) -> int | None:
    """Map a forwarded stop signal to the documented shell exit code."""

    if received_signal == signal.SIGINT:
        return INTERRUPT_EXIT_CODE
    if received_signal == signal.SIGTERM:
        return 128 + signal.SIGTERM.value
    return None


def map_stage_exit_code(status: StageStatus, *, kill_requested: bool) -> int:
    """Collapse a stage status into the single exit code reported to callers.

    A signaled stage reports ``INTERRUPT_EXIT_CODE`` instead of the negative
    return code. Once a kill was requested every failure reports it too.
    """

    if kill_requested:
        return INTERRUPT_EXIT_CODE
    if status.exit_status == ExitStatus.SIGNALED:
        return INTERRUPT_EXIT_CODE
    if status.returncode is None:
        return -1
    return status.returncode


class SignalCoordinator:
    """Owns the SIGINT/SIGTERM handlers while any stop listener is active.

    Handlers are installed when the first listener registers and the previous
    ones are put back when the last listener leaves.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._listeners: set[StopSignalListener] = set()
        self._previous_handlers: dict[signal.Signals, signal.Handlers] = {}

    def register_listener(self, listener: StopSignalListener) -> None:
        with self._lock:
            if not self._listeners:
                self._install_handlers()
            self._listeners.add(listener)

    def unregister_listener(self, listener: StopSignalListener) -> None:
        with self._lock:
            self._listeners.discard(listener)
            if not self._listeners:
                self._restore_handlers()

    def _install_handlers(self) -> None:
        try:
            for signum in TARGET_SIGNALS:
                previous = signal.signal(signum, self._on_signal)
                self._previous_handlers[signum] = (
                    signal.SIG_DFL if previous is None else cast("signal.Handlers", previous)
                )
        except ValueError:
            # Not the main thread: listeners only hear explicit notify() calls.
            self._restore_handlers()

    def _restore_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _on_signal(self, raw_signum: int, _frame: FrameType | None) -> None:
        signum = signal.Signals(raw_signum)
        with self._lock:
            listeners = tuple(self._listeners)
        for listener in listeners:
            listener.notify(signum)


_COORDINATOR_LOCK = Lock()
_COORDINATOR: SignalCoordinator | None = None


def signal_coordinator() -> SignalCoordinator:
    """Return the process-global signal coordinator singleton."""

    global _COORDINATOR
    if _COORDINATOR is None:
        with _COORDINATOR_LOCK:
            if _COORDINATOR is None:
                _COORDINATOR = SignalCoordinator()
    return _COORDINATOR


class StopSignalListener:
    """Scoped SIGINT/SIGTERM listener that sets an asyncio event on delivery.

    Must be entered from a running event loop. The event is what a pipeline
    consumes through ``PipelineOptions.stop_event`` or
    ``Pipeline.register_external_stop``.
    """

    def __init__(self, event: asyncio.Event | None = None) -> None:
        self.event = event if event is not None else asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._received_signal: signal.Signals | None = None

    @property
    def received_signal(self) -> signal.Signals | None:
        return self._received_signal

    def __enter__(self) -> StopSignalListener:
        self._loop = asyncio.get_running_loop()
        signal_coordinator().register_listener(self)
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        _ = (exc_type, exc, tb)
        signal_coordinator().unregister_listener(self)

    def notify(self, signum: signal.Signals) -> None:
        """Record the signal and wake the event from whatever thread delivered it."""

        self._received_signal = signum
        if self._loop is None or self._loop.is_closed():
            self.event.set()
            return
        self._loop.call_soon_threadsafe(self.event.set)
