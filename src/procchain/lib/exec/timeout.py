"""Grace-bounded reaping of stage processes during teardown."""

from __future__ import annotations

import asyncio
import signal

from procchain.lib.config.settings import ProcchainConfig
from procchain.lib.exec.process_groups import signal_process_group

DEFAULT_KILL_GRACE_SECONDS = ProcchainConfig().kill_grace_seconds


async def reap_process(
    process: asyncio.subprocess.Process,
    *,
    grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
) -> int:
    """Wait for a process that was already told to die, force-killing on expiry."""

    if process.returncode is not None:
        return process.returncode

    try:
        return await asyncio.wait_for(process.wait(), timeout=grace_seconds)
    except TimeoutError:
        signal_process_group(process, signal.SIGKILL)
        return await process.wait()
