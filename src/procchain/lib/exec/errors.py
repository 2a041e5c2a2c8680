"""Pipeline error taxonomy.

Configuration and state errors are raised. Execution errors (a stage that
exits non-zero, a signaled stage, an expired deadline) are carried inside
``PipelineResult`` and only raised through ``PipelineResult.raise_on_error``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from procchain.lib.exec.signals import StageStatus


class ProcchainError(Exception):
    """Base class for every error raised by procchain."""


class PipelineConfigError(ProcchainError, ValueError):
    """The command sequence cannot be wired into a pipeline."""


class NoCommandsError(PipelineConfigError):
    def __init__(self) -> None:
        super().__init__("at least one command is required")


class InvalidStdinPlacementError(PipelineConfigError):
    def __init__(self, index: int) -> None:
        self.index = index
        super().__init__(f"stdin allowed only for the first command (got it on stage {index})")


class InvalidStdoutPlacementError(PipelineConfigError):
    def __init__(self, index: int) -> None:
        self.index = index
        super().__init__(f"stdout allowed only for the last command (got it on stage {index})")


class PipelineStateError(ProcchainError, RuntimeError):
    """A lifecycle operation was invoked in the wrong state."""


class AlreadyStartedError(PipelineStateError):
    def __init__(self) -> None:
        super().__init__("process already started")


class NotStartedError(PipelineStateError):
    def __init__(self) -> None:
        super().__init__("process not started")


class WaitInProgressError(PipelineStateError):
    def __init__(self) -> None:
        super().__init__("wait already in progress")


class StageSpawnError(ProcchainError, OSError):
    """The process for one stage could not be created.

    ``errno`` is copied from the underlying OSError.
    """

    def __init__(self, index: int, display: str, cause: OSError) -> None:
        super().__init__(f"stage {index} ({display}) failed to start: {cause}")
        self.index = index
        self.display = display
        self.cause = cause
        self.errno = cause.errno


class PipelineExecutionError(ProcchainError):
    """A started pipeline did not complete cleanly."""


class StageExitError(PipelineExecutionError):
    """One stage exited non-zero or was terminated by a signal."""

    def __init__(self, index: int, display: str, status: StageStatus) -> None:
        self.index = index
        self.display = display
        self.status = status
        super().__init__(f"stage {index} ({display}) {status.describe()}")


class PipelineTimeoutError(PipelineExecutionError, TimeoutError):
    """The shared pipeline deadline expired before every stage finished."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Pipeline exceeded timeout after {timeout_seconds:.3f}s")
