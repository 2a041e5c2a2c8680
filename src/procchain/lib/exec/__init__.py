"""Pipeline execution engine."""

from procchain.lib.exec.api import create, output, pipe_output
from procchain.lib.exec.bridge import StopRegistration
from procchain.lib.exec.builder import prepare, validate_commands
from procchain.lib.exec.command import Command, command
from procchain.lib.exec.context import CancelReason, PipelineContext
from procchain.lib.exec.errors import (
    AlreadyStartedError,
    InvalidStdinPlacementError,
    InvalidStdoutPlacementError,
    NoCommandsError,
    NotStartedError,
    PipelineConfigError,
    PipelineExecutionError,
    PipelineStateError,
    PipelineTimeoutError,
    ProcchainError,
    StageExitError,
    StageSpawnError,
    WaitInProgressError,
)
from procchain.lib.exec.pipeline import Pipeline, PipelineMode, PipelineOptions, PipelineState
from procchain.lib.exec.pipes import PipeLink
from procchain.lib.exec.results import CapturedOutput, PipelineResult
from procchain.lib.exec.signals import (
    INTERRUPT_EXIT_CODE,
    ExitStatus,
    StageStatus,
    StopSignalListener,
)

__all__ = [
    "INTERRUPT_EXIT_CODE",
    "AlreadyStartedError",
    "CancelReason",
    "CapturedOutput",
    "Command",
    "ExitStatus",
    "InvalidStdinPlacementError",
    "InvalidStdoutPlacementError",
    "NoCommandsError",
    "NotStartedError",
    "PipeLink",
    "Pipeline",
    "PipelineConfigError",
    "PipelineContext",
    "PipelineExecutionError",
    "PipelineMode",
    "PipelineOptions",
    "PipelineResult",
    "PipelineState",
    "PipelineStateError",
    "PipelineTimeoutError",
    "ProcchainError",
    "StageExitError",
    "StageSpawnError",
    "StageStatus",
    "StopRegistration",
    "StopSignalListener",
    "WaitInProgressError",
    "command",
    "create",
    "output",
    "pipe_output",
    "prepare",
    "validate_commands",
]
