"""Coverage pipeline: discover, execute, merge, report.

Each stage's artifact is a strict prerequisite of the next one, so the first
failing stage aborts the run; nothing is retried and no partial report is
produced.
"""

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path
from typing import Dict, List, Optional, TextIO

from . import metrics
from .discovery import parse_records, select_test_executable
from .environ import env_without, scoped_env
from .errors import STAGE_ERRORS, MergeError, ReportError
from .models import (
    ExecutableLocator,
    PipelineOutcome,
    ReportFormat,
    StageName,
    StageResult,
    ToolchainConfig,
)
from .paths import resolve_in
from .process import ProcessRunner

logger = logging.getLogger(__name__)


class CoveragePipelineRunner:
    """Orchestrates the four external stages for one working directory."""

    def __init__(self, process_runner: Optional[ProcessRunner] = None, summary_sink: Optional[TextIO] = None):
        self.process_runner = process_runner or ProcessRunner()
        self.summary_sink = summary_sink

    def cancel(self) -> None:
        """Request cancellation; the running child is terminated and no further stage starts."""
        logger.info("Pipeline cancellation requested")
        self.process_runner.cancel()

    def run(self, working_directory: Path | str, config: Optional[ToolchainConfig] = None) -> PipelineOutcome:
        config = config or ToolchainConfig()
        workdir = Path(working_directory).resolve()
        if not workdir.is_dir():
            raise FileNotFoundError(f"Working directory does not exist: {workdir}")

        completed: List[StageName] = []
        started = time.monotonic()
        logger.info("Starting coverage pipeline in %s", workdir)

        locator = self.discover(workdir, config)
        completed.append(StageName.DISCOVERY)

        executable = str(resolve_in(workdir, locator.executable))
        self.execute(workdir, config, executable)
        completed.append(StageName.EXECUTION)

        merged = self.merge(workdir, config)
        completed.append(StageName.MERGE)

        html_path, summary = self.report(workdir, config, executable, merged)
        completed.append(StageName.REPORT)

        logger.info("Coverage pipeline finished; HTML report at %s", html_path)
        metrics.pipeline_finished(len(completed), time.monotonic() - started)
        return PipelineOutcome(
            html_report_path=config.report.html_output,
            text_summary=summary,
            executable=executable,
            artifacts=config.artifact_paths(),
            stages=completed,
        )

    # === Stages ===

    def discover(self, workdir: Path, config: ToolchainConfig) -> ExecutableLocator:
        """Build tests with instrumentation and locate the single test executable."""
        instrumentation = config.instrumentation
        with scoped_env(instrumentation.env_var, instrumentation.value):
            result = self._invoke(StageName.DISCOVERY, config.discovery.command, workdir, config)
        return select_test_executable(parse_records(result.stdout))

    def execute(self, workdir: Path, config: ToolchainConfig, executable: str) -> StageResult:
        """Run the instrumented binary; it writes the raw profile as a side effect."""
        return self._invoke(
            StageName.EXECUTION,
            [executable],
            workdir,
            config,
            env=env_without(config.instrumentation.env_var),
        )

    def merge(self, workdir: Path, config: ToolchainConfig) -> Path:
        """Merge the raw profile into the profile-data file and return its path."""
        raw = resolve_in(workdir, config.merge.raw_profile)
        merged = resolve_in(workdir, config.merge.output)
        if not raw.is_file():
            raise MergeError(f"Raw profile not found: {raw}")

        self._invoke(
            StageName.MERGE,
            [config.merge.tool, *config.merge.args, str(raw), "-o", str(merged)],
            workdir,
            config,
            env=env_without(config.instrumentation.env_var),
        )
        return merged

    def report(self, workdir: Path, config: ToolchainConfig, executable: str, merged: Path) -> tuple[Path, str]:
        """Render the HTML report to a file and return it with the text summary."""
        env = env_without(config.instrumentation.env_var)

        html = self._invoke(
            StageName.REPORT,
            self.report_argv(config, ReportFormat.HTML, executable, merged),
            workdir,
            config,
            env=env,
        )
        summary = self._invoke(
            StageName.REPORT,
            self.report_argv(config, ReportFormat.SUMMARY_TEXT, executable, merged),
            workdir,
            config,
            env=env,
        )

        # Written only once both renders succeeded
        html_path = resolve_in(workdir, config.report.html_output)
        try:
            html_path.write_text(html.stdout, encoding="utf-8")
        except OSError as exc:
            raise ReportError(f"Could not write HTML report {html_path}: {exc}") from exc
        logger.info("Wrote HTML report %s", html_path)
        if self.summary_sink is not None:
            self.summary_sink.write(summary.stdout)
            self.summary_sink.flush()
        return html_path, summary.stdout

    @staticmethod
    def report_argv(config: ToolchainConfig, fmt: ReportFormat, executable: str, merged: Path) -> List[str]:
        """Report tool arguments; the two formats differ only in the selector arguments."""
        report = config.report
        selector = report.html_args if fmt is ReportFormat.HTML else report.summary_args
        argv = [report.tool, *selector, executable, f"--instr-profile={merged}"]
        if report.demangler:
            argv.append(f"-Xdemangler={report.demangler}")
        if report.ignore_filename_regex:
            argv.append(f"--ignore-filename-regex={report.ignore_filename_regex}")
        return argv

    # === Helpers ===

    def _invoke(
        self,
        stage: StageName,
        argv: List[str],
        workdir: Path,
        config: ToolchainConfig,
        env: Optional[Dict[str, str]] = None,
    ) -> StageResult:
        """Run one external command and turn any failure into the stage's error."""
        error_cls = STAGE_ERRORS[stage]
        timeout = config.timeouts.for_stage(stage)
        logger.info("[%s] running %s", stage.value, argv[0])

        with metrics.StageTimer(stage.value, argv[0]):
            try:
                result = self.process_runner.run(argv, stage=stage, cwd=str(workdir), env=env, timeout=timeout)
            except subprocess.TimeoutExpired as exc:
                raise error_cls(f"{argv[0]} timed out after {exc.timeout}s") from exc
            except OSError as exc:
                raise error_cls(f"Could not launch {argv[0]}: {exc}") from exc

            if not result.ok:
                logger.error("[%s] %s exited with %s: %s", stage.value, argv[0], result.returncode, result.stderr.strip())
                raise error_cls(f"{argv[0]} exited with status {result.returncode}", result)
        return result
