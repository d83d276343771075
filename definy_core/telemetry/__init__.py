"""Logging helpers."""

from definy_core.telemetry.json_formatter import JSONFormatter
from definy_core.telemetry.log_config import configure_logging

__all__ = ["JSONFormatter", "configure_logging"]
