"""Environment scoping helpers.

The instrumentation variable is the only process-wide state the pipeline
touches; it is visible to the discovery build and nothing else.
"""

import logging
import os
from contextlib import contextmanager
from typing import Dict, Iterator, Mapping, Optional

logger = logging.getLogger(__name__)


@contextmanager
def scoped_env(name: str, value: str) -> Iterator[None]:
    """Set ``name`` in os.environ for the duration of the block.

    The prior value is restored (or the variable removed if it was unset)
    however the block exits.
    """
    previous = os.environ.get(name)
    os.environ[name] = value
    logger.debug("Set %s=%r for scoped block", name, value)
    try:
        yield
    finally:
        if previous is None:
            os.environ.pop(name, None)
        else:
            os.environ[name] = previous
        logger.debug("Restored %s", name)


def env_without(name: str, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Return a copy of the environment with ``name`` removed."""
    source = os.environ if base is None else base
    return {key: val for key, val in source.items() if key != name}
