"""Detached observer that kills a pipeline when an external stop arrives."""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog

from procchain.lib.exec.errors import PipelineStateError


class Killable(Protocol):
    def kill(self) -> None: ...


class StopRegistration:
    """Handle for one external-stop observer; ``dispose()`` unregisters it."""

    def __init__(self, task: asyncio.Task[None]) -> None:
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    def dispose(self) -> None:
        if not self._task.done():
            self._task.cancel()


async def _observe(
    target: Killable,
    event: asyncio.Event,
    logger: structlog.typing.FilteringBoundLogger,
) -> None:
    await event.wait()
    logger.debug("stop.received")
    try:
        target.kill()
    except PipelineStateError as exc:
        logger.debug("stop.ignored", reason=str(exc))


def watch_external_stop(
    target: Killable,
    event: asyncio.Event,
    logger: structlog.typing.FilteringBoundLogger,
) -> StopRegistration:
    """Spawn the observer task; must be called from a running event loop."""

    loop = asyncio.get_running_loop()
    return StopRegistration(loop.create_task(_observe(target, event, logger)))
