"""Process-group helpers for stage lifecycle management."""

from __future__ import annotations

import asyncio
import os
import signal


def signal_process_group(
    process: asyncio.subprocess.Process,
    signum: signal.Signals,
) -> bool:
    """Send one signal to the stage's process group.

    Stages are spawned as session leaders, so the group id equals the pid.
    The child may exit between returncode checks and signal delivery, so
    a vanished or reaped pid is treated as an expected race. Returns whether the
    signal was delivered.
    """

    if process.returncode is not None:
        return False

    pid = process.pid
    if pid is None:
        return False

    try:
        pgid = os.getpgid(pid)
        if pgid != pid:
            # Not a group leader; never signal a group we do not own.
            os.kill(pid, signum)
        else:
            os.killpg(pgid, signum)
    except (ProcessLookupError, PermissionError):
        return False
    return True
