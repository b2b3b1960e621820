"""Observability: structured logging."""

from groundwork.observability.logging import configure_from_config, configure_logging, get_logger

__all__ = ["configure_from_config", "configure_logging", "get_logger"]
