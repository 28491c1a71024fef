"""covpipe Pydantic Models"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    DEFAULT_DEMANGLER,
    DEFAULT_DISCOVERY_COMMAND,
    DEFAULT_HTML_ARGS,
    DEFAULT_HTML_OUTPUT,
    DEFAULT_IGNORE_FILENAME_REGEX,
    DEFAULT_INSTRUMENTATION_ENV_VAR,
    DEFAULT_INSTRUMENTATION_VALUE,
    DEFAULT_MERGE_ARGS,
    DEFAULT_MERGE_TOOL,
    DEFAULT_MERGED_PROFILE,
    DEFAULT_RAW_PROFILE,
    DEFAULT_REPORT_TOOL,
    DEFAULT_STAGE_TIMEOUTS,
    DEFAULT_SUMMARY_ARGS,
)


class StageName(str, Enum):
    DISCOVERY = "discovery"
    EXECUTION = "execution"
    MERGE = "merge"
    REPORT = "report"


class ReportFormat(str, Enum):
    HTML = "html"
    SUMMARY_TEXT = "summary-text"


class StageResult(BaseModel):
    """Outcome of one external process invocation."""

    stage: StageName
    argv: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ExecutableLocator(BaseModel):
    executable: str
    target_name: Optional[str] = None
    package_id: Optional[str] = None


class ProfileArtifactPaths(BaseModel):
    raw_profile: str
    merged_profile: str


class PipelineOutcome(BaseModel):
    html_report_path: str
    text_summary: str
    executable: Optional[str] = None
    artifacts: Optional[ProfileArtifactPaths] = None
    stages: List[StageName] = Field(default_factory=list)


# === Configuration ===


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class InstrumentationConfig(_Section):
    env_var: str = DEFAULT_INSTRUMENTATION_ENV_VAR
    value: str = DEFAULT_INSTRUMENTATION_VALUE


class DiscoveryConfig(_Section):
    command: List[str] = Field(default_factory=lambda: list(DEFAULT_DISCOVERY_COMMAND))

    @field_validator("command")
    @classmethod
    def _non_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("discovery.command must not be empty")
        return value


class MergeConfig(_Section):
    tool: str = DEFAULT_MERGE_TOOL
    args: List[str] = Field(default_factory=lambda: list(DEFAULT_MERGE_ARGS))
    raw_profile: str = DEFAULT_RAW_PROFILE
    output: str = DEFAULT_MERGED_PROFILE


class ReportConfig(_Section):
    tool: str = DEFAULT_REPORT_TOOL
    demangler: Optional[str] = DEFAULT_DEMANGLER
    ignore_filename_regex: Optional[str] = DEFAULT_IGNORE_FILENAME_REGEX
    html_output: str = DEFAULT_HTML_OUTPUT
    html_args: List[str] = Field(default_factory=lambda: list(DEFAULT_HTML_ARGS))
    summary_args: List[str] = Field(default_factory=lambda: list(DEFAULT_SUMMARY_ARGS))


class TimeoutConfig(_Section):
    """Per-stage timeouts in seconds (None disables the timeout)."""

    discovery: Optional[float] = DEFAULT_STAGE_TIMEOUTS["discovery"]
    execution: Optional[float] = DEFAULT_STAGE_TIMEOUTS["execution"]
    merge: Optional[float] = DEFAULT_STAGE_TIMEOUTS["merge"]
    report: Optional[float] = DEFAULT_STAGE_TIMEOUTS["report"]

    @field_validator("discovery", "execution", "merge", "report")
    @classmethod
    def _positive(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    def for_stage(self, stage: StageName) -> Optional[float]:
        return getattr(self, stage.value)


class ToolchainConfig(_Section):
    instrumentation: InstrumentationConfig = Field(default_factory=InstrumentationConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)

    def artifact_paths(self) -> ProfileArtifactPaths:
        return ProfileArtifactPaths(
            raw_profile=self.merge.raw_profile,
            merged_profile=self.merge.output,
        )
