"""Shared cancellation and deadline scope for every stage of a pipeline."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import StrEnum


class CancelReason(StrEnum):
    CANCELLED = "cancelled"
    DEADLINE_EXCEEDED = "deadline_exceeded"


class PipelineContext:
    """One cancellation scope covering an entire pipeline's lifetime.

    Stages register callbacks that terminate their process; cancelling the
    context (explicitly or when the deadline fires) runs each callback once.
    The deadline is armed by ``arm()`` from a running event loop, so a
    timeout bounds the pipeline from start to teardown.
    """

    def __init__(self, timeout_seconds: float = 0.0) -> None:
        if timeout_seconds < 0:
            raise ValueError("timeout_seconds must be >= 0.")
        self.timeout_seconds = timeout_seconds
        self._reason: CancelReason | None = None
        self._callbacks: list[Callable[[CancelReason], None]] = []
        self._timer: asyncio.TimerHandle | None = None

    @property
    def has_deadline(self) -> bool:
        return self.timeout_seconds > 0

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> CancelReason | None:
        return self._reason

    @property
    def deadline_exceeded(self) -> bool:
        return self._reason == CancelReason.DEADLINE_EXCEEDED

    def arm(self) -> None:
        """Start the deadline timer if a timeout is configured."""

        if not self.has_deadline or self._timer is not None or self.cancelled:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timeout_seconds, self._expire)

    def add_callback(self, callback: Callable[[CancelReason], None]) -> None:
        """Run ``callback`` on cancellation, immediately if already cancelled."""

        if self._reason is not None:
            callback(self._reason)
            return
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[CancelReason], None]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            return

    def cancel(self) -> bool:
        """Cancel the scope. Returns False when it was already cancelled."""

        return self._finish(CancelReason.CANCELLED)

    def _expire(self) -> None:
        self._timer = None
        self._finish(CancelReason.DEADLINE_EXCEEDED)

    def _finish(self, reason: CancelReason) -> bool:
        if self._reason is not None:
            return False
        self._reason = reason
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(reason)
        return True
