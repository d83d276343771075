"""Process-wide logging setup."""

from __future__ import annotations

import logging

from definy_core.config import Settings
from definy_core.telemetry.json_formatter import JSONFormatter

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    """Install a single root handler according to *settings*.

    Structured mode writes one JSON object per line; otherwise a plain text
    format is used.  Calling this more than once replaces the handler.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    if settings.structured_logging:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level)

    # SQL echo stays off unless debugging.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.debug else logging.WARNING)
