"""Values returned by pipeline wait/run/output."""

from __future__ import annotations

from dataclasses import dataclass

from procchain.lib.exec.errors import PipelineExecutionError
from procchain.lib.exec.signals import StageStatus


@dataclass(frozen=True, slots=True)
class PipelineResult:
    """Outcome of one pipeline wait.

    ``stage_index`` names the stage the exit code came from: the terminal
    stage on success, the first failing stage otherwise.
    """

    exit_code: int
    status: StageStatus | None
    stage_index: int | None
    error: PipelineExecutionError | None = None
    killed: bool = False
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.exit_code == 0

    def __bool__(self) -> bool:
        return self.ok

    def raise_on_error(self) -> PipelineResult:
        if self.error is not None:
            raise self.error
        return self


@dataclass(frozen=True, slots=True)
class CapturedOutput:
    """Buffered terminal-stage output plus the pipeline result."""

    stdout: bytes
    stderr: bytes
    result: PipelineResult

    @property
    def exit_code(self) -> int:
        return self.result.exit_code

    @property
    def status(self) -> StageStatus | None:
        return self.result.status

    @property
    def error(self) -> PipelineExecutionError | None:
        return self.result.error

    @property
    def ok(self) -> bool:
        return self.result.ok

    def __bool__(self) -> bool:
        return self.ok

    def text(self, encoding: str = "utf-8") -> str:
        return self.stdout.decode(encoding, errors="replace")
