"""
Logging setup.

Every module logs through ``logging.getLogger(__name__)``; this only
configures the root handler once, at application start-up.
"""

import logging

from app.core.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Apply the process-wide log level and format. Safe to call repeatedly."""
    global _configured
    if _configured:
        return

    resolved = (level or LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format=LOG_FORMAT,
    )
    _configured = True
