"""Blocking child-process execution with timeout and cooperative cancellation."""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from typing import List, Mapping, Optional, Sequence, Tuple

from .constants import CANCEL_POLL_INTERVAL_SECONDS, TERMINATE_GRACE_SECONDS
from .errors import PipelineCancelled
from .models import StageName, StageResult

logger = logging.getLogger(__name__)


class ProcessRunner:
    """Runs one child process at a time and waits for it.

    ``cancel()`` may be called from another thread or a signal handler; the
    running child is terminated at the next poll and ``PipelineCancelled`` is
    raised to the caller.
    """

    def __init__(
        self,
        poll_interval: float = CANCEL_POLL_INTERVAL_SECONDS,
        terminate_grace: float = TERMINATE_GRACE_SECONDS,
    ):
        self.poll_interval = poll_interval
        self.terminate_grace = terminate_grace
        self._cancel_event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        self._cancel_event.set()

    def run(
        self,
        argv: Sequence[str],
        *,
        stage: StageName,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> StageResult:
        """
        Launch ``argv`` and block until it exits.

        Raises OSError when the program cannot be started, subprocess.TimeoutExpired
        when ``timeout`` elapses (the child is killed first) and PipelineCancelled
        when cancellation was requested.
        """
        if self.cancelled:
            raise PipelineCancelled(f"Cancelled before {stage.value} stage started")

        args: List[str] = [str(arg) for arg in argv]
        logger.debug("[%s] launching: %s", stage.value, " ".join(args))
        started = time.monotonic()
        proc = subprocess.Popen(
            args,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        stdout, stderr = self._wait(proc, args, timeout, started)
        duration = time.monotonic() - started
        logger.debug("[%s] exited with %s after %.2fs", stage.value, proc.returncode, duration)
        return StageResult(
            stage=stage,
            argv=args,
            returncode=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration_seconds=duration,
        )

    def _wait(
        self,
        proc: subprocess.Popen,
        args: List[str],
        timeout: Optional[float],
        started: float,
    ) -> Tuple[str, str]:
        deadline = started + timeout if timeout is not None else None
        while True:
            if self.cancelled:
                logger.warning("Cancellation requested; terminating pid %s", proc.pid)
                self._stop(proc)
                raise PipelineCancelled(f"Cancelled while running {args[0]}")

            wait_for = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning("Timed out after %ss; killing pid %s", timeout, proc.pid)
                    stdout, stderr = self._stop(proc)
                    raise subprocess.TimeoutExpired(args, timeout, output=stdout, stderr=stderr)
                wait_for = min(wait_for, remaining)

            try:
                # Retrying communicate() after TimeoutExpired does not lose output
                return proc.communicate(timeout=wait_for)
            except subprocess.TimeoutExpired:
                continue

    def _stop(self, proc: subprocess.Popen) -> Tuple[str, str]:
        proc.terminate()
        try:
            return proc.communicate(timeout=self.terminate_grace)
        except subprocess.TimeoutExpired:
            proc.kill()
            return proc.communicate()
