"""Shared constants for covpipe."""

# Instrumentation injected into the discovery build only
DEFAULT_INSTRUMENTATION_ENV_VAR = "RUSTFLAGS"
DEFAULT_INSTRUMENTATION_VALUE = "-C instrument-coverage"

DEFAULT_DISCOVERY_COMMAND = [
    "cargo",
    "test",
    "--tests",
    "--no-run",
    "--message-format=json",
]

# Profile artifacts (raw name is chosen by the instrumented runtime)
DEFAULT_RAW_PROFILE = "default.profraw"
DEFAULT_MERGED_PROFILE = "default.profdata"
DEFAULT_MERGE_TOOL = "llvm-profdata"
DEFAULT_MERGE_ARGS = ["merge", "-sparse"]

# Report rendering
DEFAULT_REPORT_TOOL = "llvm-cov"
DEFAULT_DEMANGLER = "rustfilt"
DEFAULT_IGNORE_FILENAME_REGEX = "(.cargo|rustc)"
DEFAULT_HTML_OUTPUT = "result.html"
DEFAULT_HTML_ARGS = ["show", "--format=html"]
DEFAULT_SUMMARY_ARGS = ["report"]

# Default timeouts (seconds); None waits forever
DEFAULT_STAGE_TIMEOUTS = {
    "discovery": None,
    "execution": 600,
    "merge": 300,
    "report": 300,
}
TERMINATE_GRACE_SECONDS = 5.0
CANCEL_POLL_INTERVAL_SECONDS = 0.1

CONFIG_FILENAME = "covpipe.yml"
CONFIG_ENV_VAR = "COVPIPE_CONFIG"

# CLI exit codes
EXIT_OK = 0
EXIT_DISCOVERY = 1
EXIT_EXECUTION = 2
EXIT_MERGE = 3
EXIT_REPORT = 4
EXIT_CONFIG = 5
EXIT_CANCELLED = 130
