"""
Shared helpers.

Every module gets its logger through ``get_logger(__name__)`` so that the
handler and level are configured exactly once.
"""
import logging
import os
import sys

_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring the root handler on first use."""
    global _configured
    if not _configured:
        level = os.environ.get("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=level,
            stream=sys.stdout,
            format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        )
        _configured = True
    return logging.getLogger(name)
