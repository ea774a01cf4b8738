"""
Logging setup for the AlgoViz backend.

API modules obtain loggers through ``get_logger(__name__)``; engine modules
use ``logging.getLogger(__name__)`` directly so the engine never imports the
API package. Both end up under the root handler installed here.

Usage:
    from api.shared.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Session %s created", session_id)
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False


def setup_logging(level: str = "INFO", force: bool = False) -> None:
    """Configure root logging once; later calls only change the level.

    ``force`` reinstalls the handler, which tests use after pytest has
    replaced ``sys.stdout``.
    """
    global _configured
    resolved = getattr(logging, str(level).upper(), logging.INFO)
    if _configured and not force:
        logging.getLogger().setLevel(resolved)
        return

    logging.basicConfig(
        level=resolved,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
