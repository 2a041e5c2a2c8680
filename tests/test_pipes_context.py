"""PipeLink and shared-context behavior."""

from __future__ import annotations

import asyncio
import os

import pytest

from procchain.lib.exec.context import CancelReason, PipelineContext
from procchain.lib.exec.pipes import PipeLink


def test_pipe_link_carries_bytes_then_eof() -> None:
    link = PipeLink(0)
    try:
        os.write(link.write_fd, b"abc")
        link.close_write()
        assert os.read(link.read_fd, 16) == b"abc"
        assert os.read(link.read_fd, 16) == b""
    finally:
        link.close()


def test_pipe_link_double_close_is_noop() -> None:
    link = PipeLink(3)
    link.close_write()
    link.close_write()
    link.close()
    link.close()

    assert link.closed
    with pytest.raises(ValueError, match="pipe 3"):
        _ = link.read_fd


def test_context_rejects_negative_timeout() -> None:
    with pytest.raises(ValueError):
        PipelineContext(-0.5)


def test_context_cancel_runs_callbacks_once() -> None:
    context = PipelineContext()
    seen: list[CancelReason] = []
    context.add_callback(seen.append)

    assert context.cancel() is True
    assert context.cancel() is False
    assert seen == [CancelReason.CANCELLED]
    assert context.cancelled
    assert not context.deadline_exceeded


def test_callback_added_after_cancel_runs_immediately() -> None:
    context = PipelineContext()
    context.cancel()
    seen: list[CancelReason] = []

    context.add_callback(seen.append)

    assert seen == [CancelReason.CANCELLED]


def test_removed_callback_is_not_run() -> None:
    context = PipelineContext()
    seen: list[CancelReason] = []
    context.add_callback(seen.append)
    context.remove_callback(seen.append)
    context.remove_callback(seen.append)

    context.cancel()

    assert seen == []


@pytest.mark.asyncio
async def test_context_deadline_expires_once() -> None:
    context = PipelineContext(0.05)
    seen: list[CancelReason] = []
    context.add_callback(seen.append)
    context.arm()

    await asyncio.sleep(0.3)

    assert seen == [CancelReason.DEADLINE_EXCEEDED]
    assert context.deadline_exceeded
    assert context.cancel() is False


@pytest.mark.asyncio
async def test_context_without_timeout_never_expires() -> None:
    context = PipelineContext(0)
    context.arm()

    await asyncio.sleep(0.05)

    assert not context.has_deadline
    assert not context.cancelled


@pytest.mark.asyncio
async def test_explicit_cancel_disarms_deadline() -> None:
    context = PipelineContext(0.05)
    seen: list[CancelReason] = []
    context.add_callback(seen.append)
    context.arm()
    context.cancel()

    await asyncio.sleep(0.2)

    assert seen == [CancelReason.CANCELLED]
