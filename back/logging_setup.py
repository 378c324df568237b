"""
Logging setup for the backend.

Modules log through `logging.getLogger(__name__)`; this only wires the root
handler once at startup.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if any(getattr(h, "_animehub", False) for h in root.handlers):
        root.setLevel(level.upper())
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    handler._animehub = True
    root.addHandler(handler)
    root.setLevel(level.upper())

    # httpx logs every request at INFO, too chatty next to our own messages
    logging.getLogger("httpx").setLevel(logging.WARNING)
