"""Domain exceptions for covpipe."""

from typing import Optional

from .constants import (
    EXIT_CANCELLED,
    EXIT_CONFIG,
    EXIT_DISCOVERY,
    EXIT_EXECUTION,
    EXIT_MERGE,
    EXIT_REPORT,
)
from .models import StageName, StageResult


class CovpipeError(RuntimeError):
    """Base class for expected pipeline errors (maps to a CLI exit code)."""

    exit_code = 1


class ConfigError(CovpipeError):
    """Configuration file is unreadable or invalid."""

    exit_code = EXIT_CONFIG


class PipelineCancelled(CovpipeError):
    """Cancellation was requested while the pipeline was running."""

    exit_code = EXIT_CANCELLED


class StageError(CovpipeError):
    """A pipeline stage failed; carries the failing invocation when there was one."""

    stage: StageName

    def __init__(self, message: str, result: Optional[StageResult] = None):
        super().__init__(message)
        self.result = result

    @property
    def stderr(self) -> str:
        return self.result.stderr if self.result is not None else ""


class DiscoveryError(StageError):
    """Zero or several test targets, unparsable output, or a failed build."""

    stage = StageName.DISCOVERY
    exit_code = EXIT_DISCOVERY


class ExecutionError(StageError):
    """Instrumented test executable crashed, failed or hung."""

    stage = StageName.EXECUTION
    exit_code = EXIT_EXECUTION


class MergeError(StageError):
    """Raw profile missing or corrupt, or the merge tool failed."""

    stage = StageName.MERGE
    exit_code = EXIT_MERGE


class ReportError(StageError):
    """Report renderer failed."""

    stage = StageName.REPORT
    exit_code = EXIT_REPORT


STAGE_ERRORS = {
    StageName.DISCOVERY: DiscoveryError,
    StageName.EXECUTION: ExecutionError,
    StageName.MERGE: MergeError,
    StageName.REPORT: ReportError,
}
