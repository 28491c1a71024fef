"""Test executable discovery from the build tool's JSON record stream.

The build tool (``cargo test --no-run --message-format=json`` by default)
prints one JSON object per line. Artifacts built with the test profile carry
``"profile": {"test": true}`` and the path of the produced binary under
``"executable"``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List

from .errors import DiscoveryError
from .models import ExecutableLocator

logger = logging.getLogger(__name__)


def parse_records(text: str) -> List[Dict[str, Any]]:
    """Parse a line-delimited JSON stream into records. Blank lines are skipped."""
    records: List[Dict[str, Any]] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            raise DiscoveryError(f"Unparsable build output on line {lineno}: {exc}") from exc
        if not isinstance(record, dict):
            raise DiscoveryError(f"Expected a JSON object on line {lineno}, got {type(record).__name__}")
        records.append(record)
    return records


def is_test_profile(record: Dict[str, Any]) -> bool:
    profile = record.get("profile")
    # Only the JSON literal true counts
    return isinstance(profile, dict) and profile.get("test") is True


def select_test_executable(records: Iterable[Dict[str, Any]]) -> ExecutableLocator:
    """Return the single test-profile record's executable.

    Raises DiscoveryError when zero or more than one record matches, or when
    the match has no executable path.
    """
    matches = [record for record in records if is_test_profile(record)]
    if not matches:
        raise DiscoveryError("No test executable found in build output")
    if len(matches) > 1:
        found = ", ".join(str(m.get("executable")) for m in matches)
        raise DiscoveryError(f"Expected exactly one test executable, found {len(matches)}: {found}")

    record = matches[0]
    executable = record.get("executable")
    if not isinstance(executable, str) or not executable:
        raise DiscoveryError("Test profile record has no executable path")

    target = record.get("target")
    target_name = target.get("name") if isinstance(target, dict) else None
    package_id = record.get("package_id")
    locator = ExecutableLocator(
        executable=executable,
        target_name=target_name if isinstance(target_name, str) else None,
        package_id=package_id if isinstance(package_id, str) else None,
    )
    logger.info("Discovered test executable %s", locator.executable)
    return locator
