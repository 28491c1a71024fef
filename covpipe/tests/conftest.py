import json
import os
import stat
import sys
import textwrap
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

# Ensure the repository root is on sys.path for imports when running tests directly
ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from covpipe.src.models import StageName, StageResult, ToolchainConfig

INSTRUMENT_VAR = "RUSTFLAGS"
INSTRUMENT_VALUE = "-C instrument-coverage"
RAW_CONTENT = "raw-profile-bytes\n"
HTML_CONTENT = "<html><body>stub coverage</body></html>\n"
SUMMARY_TEXT = "TOTAL 10 2 80.00% 4 1 75.00%\n"


def write_script(path: Path, body: str) -> Path:
    """Write an executable Python script run by the current interpreter."""
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body).lstrip())
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


# Build tool: fails unless the instrumentation variable is set, then echoes cargo_output.jsonl
CARGO_STUB = f"""
import os, sys
if os.environ.get({INSTRUMENT_VAR!r}) != {INSTRUMENT_VALUE!r}:
    sys.stderr.write("instrumentation flag missing\\n")
    sys.exit(7)
sys.stdout.write(open("cargo_output.jsonl").read())
"""

# Instrumented test binary: records the environment it saw and writes the raw profile
TEST_BINARY_STUB = f"""
import json, os
with open("exec_env.json", "w") as f:
    json.dump({{"instrument": os.environ.get({INSTRUMENT_VAR!r})}}, f)
with open("default.profraw", "w") as f:
    f.write({RAW_CONTENT!r})
print("running 3 tests ... ok")
"""

FAILING_BINARY_STUB = """
import sys
sys.stderr.write("test result: FAILED. 1 failed\\n")
sys.exit(101)
"""

# Merge tool: copies the raw profile to the -o path
MERGE_STUB = f"""
import os, shutil, sys
if {INSTRUMENT_VAR!r} in os.environ:
    sys.exit(9)
args = sys.argv[1:]
out = args[args.index("-o") + 1]
inputs = [a for a in args[:args.index("-o")] if a != "merge" and not a.startswith("-")]
with open("merge_calls.log", "a") as f:
    f.write(" ".join(args) + "\\n")
shutil.copyfile(inputs[0], out)
"""

# Report tool: html for "show", summary for "report"
REPORT_STUB = f"""
import os, sys
if {INSTRUMENT_VAR!r} in os.environ:
    sys.exit(9)
args = sys.argv[1:]
profile = [a for a in args if a.startswith("--instr-profile=")][0].split("=", 1)[1]
if not os.path.exists(profile):
    sys.stderr.write("no profile\\n")
    sys.exit(1)
with open("report_calls.log", "a") as f:
    f.write(" ".join(args) + "\\n")
if args[0] == "show":
    sys.stdout.write({HTML_CONTENT!r})
else:
    sys.stdout.write({SUMMARY_TEXT!r})
"""

FAILING_TOOL_STUB = """
import sys
sys.stderr.write("tool exploded\\n")
sys.exit(1)
"""


def cargo_record(executable: Optional[str], test: object = True, name: str = "demo") -> Dict:
    record = {
        "reason": "compiler-artifact",
        "package_id": f"{name} 0.1.0 (path+file:///work/{name})",
        "target": {"name": name, "kind": ["lib"]},
        "profile": {"opt_level": "0", "debuginfo": 2, "test": test},
        "executable": executable,
    }
    return record


def write_records(workdir: Path, records: List[Dict]) -> None:
    lines = [json.dumps(record) for record in records]
    lines.append(json.dumps({"reason": "build-finished", "success": True}))
    (workdir / "cargo_output.jsonl").write_text("\n".join(lines) + "\n")


class StubToolchain:
    """A working directory populated with stub tools and a matching config."""

    def __init__(self, root: Path):
        self.root = root
        self.workdir = root / "project"
        self.bin_dir = root / "bin"
        self.workdir.mkdir()
        self.bin_dir.mkdir()
        self.cargo = write_script(self.bin_dir / "cargo", CARGO_STUB)
        self.test_binary = write_script(self.bin_dir / "t1", TEST_BINARY_STUB)
        self.merge_tool = write_script(self.bin_dir / "llvm-profdata", MERGE_STUB)
        self.report_tool = write_script(self.bin_dir / "llvm-cov", REPORT_STUB)
        write_records(self.workdir, [cargo_record(str(self.test_binary))])

    def replace(self, name: str, body: str) -> Path:
        return write_script(self.bin_dir / name, body)

    def config_dict(self) -> Dict:
        return {
            "instrumentation": {"env_var": INSTRUMENT_VAR, "value": INSTRUMENT_VALUE},
            "discovery": {"command": [str(self.cargo), "test", "--tests", "--no-run", "--message-format=json"]},
            "merge": {"tool": str(self.merge_tool)},
            "report": {"tool": str(self.report_tool)},
            "timeouts": {"discovery": 60, "execution": 60, "merge": 60, "report": 60},
        }

    def config(self) -> ToolchainConfig:
        return ToolchainConfig(**self.config_dict())

    def read(self, name: str) -> str:
        return (self.workdir / name).read_text(encoding="utf-8")

    def exists(self, name: str) -> bool:
        return (self.workdir / name).exists()


@pytest.fixture
def stub_toolchain(tmp_path, monkeypatch):
    monkeypatch.delenv(INSTRUMENT_VAR, raising=False)
    monkeypatch.delenv("COVPIPE_CONFIG", raising=False)
    return StubToolchain(tmp_path)


class FakeProcessRunner:
    """In-memory ProcessRunner double that counts invocations per stage."""

    def __init__(self, handlers: Optional[Dict[StageName, Callable]] = None):
        self.handlers = handlers or {}
        self.calls: List[Dict] = []
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def count(self, stage: StageName) -> int:
        return sum(1 for call in self.calls if call["stage"] == stage)

    def run(self, argv, *, stage, cwd=None, env=None, timeout=None) -> StageResult:
        self.calls.append({
            "argv": list(argv),
            "stage": stage,
            "cwd": cwd,
            "env": None if env is None else dict(env),
            "environ_instrument": os.environ.get(INSTRUMENT_VAR),
            "timeout": timeout,
        })
        handler = self.handlers.get(stage)
        outcome = handler(list(argv), cwd) if handler else (0, "", "")
        if isinstance(outcome, BaseException):
            raise outcome
        returncode, stdout, stderr = outcome
        return StageResult(stage=stage, argv=list(argv), returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def fake_runner_factory():
    return FakeProcessRunner
