"""Logging configuration for the pipeline and CLI."""

import json
import logging
import sys
from typing import Any, Optional

from protofhir.models import utcnow

_HANDLER_NAME = "protofhir"


class StructuredFormatter(logging.Formatter):
    """Formatter that outputs JSON-structured log records."""

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict)


def configure_logging(
    level: Optional[str] = None,
    structured: Optional[bool] = None,
) -> None:
    """Configure the ``protofhir`` logger hierarchy.

    Safe to call repeatedly; the handler is installed once and later calls
    only adjust level and formatter.

    Args:
        level: Log level name (default from settings).
        structured: Emit JSON lines instead of plain text (default from settings).
    """
    from protofhir.config import settings

    level = (level or settings.log_level).upper()
    structured = settings.log_json if structured is None else structured

    logger = logging.getLogger("protofhir")
    logger.setLevel(level)

    handler = next((h for h in logger.handlers if h.get_name() == _HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(_HANDLER_NAME)
        logger.addHandler(handler)

    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
