"""Per-stage timing and outcome metrics, emitted as structured log lines.

Each stage produces one ``stage.start`` line and one ``stage.finish`` line
carrying the outcome and elapsed time, so a CI log shows where a run spent
its time and which stage stopped it.
"""

import logging
import time
from typing import Dict, Optional

logger = logging.getLogger("covpipe.metrics")


def _emit(event: str, fields: Dict[str, object]) -> None:
    logger.info("metric=%s %s", event, " ".join(f"{k}={v}" for k, v in fields.items()))


class StageTimer:
    """Context manager timing one stage; an exception leaving the block marks it failed."""

    def __init__(self, stage: str, command: Optional[str] = None):
        self.stage = stage
        self.command = command
        self.elapsed: Optional[float] = None
        self._started = 0.0

    def __enter__(self) -> "StageTimer":
        self._started = time.monotonic()
        _emit("stage.start", {"stage": self.stage, "command": self.command or "-"})
        return self

    def __exit__(self, exc_type, exc, _tb) -> bool:
        self.elapsed = time.monotonic() - self._started
        outcome = "ok" if exc_type is None else f"failed error={exc_type.__name__}"
        _emit("stage.finish", {"stage": self.stage, "outcome": outcome, "seconds": f"{self.elapsed:.3f}"})
        return False


def pipeline_finished(stage_count: int, seconds: float) -> None:
    """Record a successful end-to-end run."""
    _emit("pipeline.finish", {"stages": stage_count, "seconds": f"{seconds:.3f}"})
