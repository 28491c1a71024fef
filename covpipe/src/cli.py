"""covpipe CLI"""

import functools
import logging
import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import typer

from .config import load_toolchain_config
from .constants import CONFIG_FILENAME, EXIT_CONFIG
from .errors import ConfigError, PipelineCancelled, StageError
from .runner import CoveragePipelineRunner

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="covpipe",
    help="covpipe - build instrumented tests, run them, merge profiles and render a coverage report.",
    add_completion=False,
)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )


def _emit_error(message: str, details: Optional[str] = None, suggestion: Optional[str] = None, exit_code: int = 1):
    typer.echo(f"Error: {message}", err=True)
    if details and details.strip():
        typer.echo(details.rstrip(), err=True)
    if suggestion:
        typer.echo(f"Suggestion: {suggestion}", err=True)
    raise typer.Exit(exit_code)


def _stage_error(exc: StageError):
    _emit_error(f"{exc.stage.value} stage failed: {exc}", details=exc.stderr, exit_code=exc.exit_code)


def _config_error(details: str):
    _emit_error(f"Configuration error: {details}", suggestion=f"Check {CONFIG_FILENAME}", exit_code=EXIT_CONFIG)


def _handle_exception(exc: Exception):
    if isinstance(exc, StageError):
        _stage_error(exc)

    if isinstance(exc, PipelineCancelled):
        _emit_error(f"Pipeline cancelled: {exc}", exit_code=exc.exit_code)

    if isinstance(exc, ConfigError):
        _config_error(str(exc))

    if isinstance(exc, (FileNotFoundError, NotADirectoryError, PermissionError)):
        _config_error(str(exc))

    logger.debug("Unhandled error", exc_info=exc)
    _emit_error(str(exc))


def cli_handler(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except Exception as exc:
            _handle_exception(exc)

    return wrapper


@contextmanager
def forward_signals(runner: CoveragePipelineRunner):
    """Turn SIGINT/SIGTERM into pipeline cancellation while the block runs."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handle_signal(signum, _frame):
        logger.warning("Received signal %s, cancelling pipeline", signum)
        runner.cancel()

    previous = {sig: signal.signal(sig, handle_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@app.command(help="Run the coverage pipeline in the working directory")
@cli_handler
def main(
    workdir: Optional[Path] = typer.Option(
        None, "--workdir", "-C", help="Project directory (defaults to the current directory)"
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help=f"Config file (defaults to $COVPIPE_CONFIG or ./{CONFIG_FILENAME})"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log stage commands and timings"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print the coverage summary"),
):
    """Discover, execute, merge and report; print the text summary."""
    _configure_logging(verbose)

    working_directory = (workdir or Path.cwd()).resolve()
    if not working_directory.is_dir():
        raise NotADirectoryError(f"Working directory not found: {working_directory}")

    toolchain = load_toolchain_config(config, str(working_directory))
    runner = CoveragePipelineRunner()
    with forward_signals(runner):
        outcome = runner.run(working_directory, toolchain)

    typer.echo(outcome.text_summary, nl=not outcome.text_summary.endswith("\n"))
    if not quiet:
        typer.echo(f"HTML report: {outcome.html_report_path}", err=True)


if __name__ == "__main__":
    app()
