"""Root logger setup for the dataset CLI."""

import logging
import sys
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Chatty client libraries that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def setup_logging(level: str = "INFO", format_string: Optional[str] = None) -> None:
    """Send pipeline logs to stdout at ``level``.

    Unknown level names fall back to INFO. Replaces handlers installed by
    earlier calls so repeated CLI invocations in one process don't duplicate
    output.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    numeric = getattr(logging, str(level).upper(), None)
    root.setLevel(numeric if isinstance(numeric, int) else logging.INFO)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
