"""
Logging setup.

Modules log through ``logging.getLogger(__name__)``. This module
installs one stream handler on the package logger at startup.
Calling configure_logging() more than once is harmless.
"""

import logging

from ledger_recon.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> logging.Logger:
    """Configure the ``ledger_recon`` logger and return it."""
    global _configured

    root = logging.getLogger("ledger_recon")
    root.setLevel((level or get_settings().LOG_LEVEL).upper())

    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        _configured = True

    return root
