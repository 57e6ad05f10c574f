"""Structured logging for verification runs."""

from verus_orchestrator.observability.logging import (
    LoggingConfig,
    configure_structlog,
    correlation_scope,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "configure_structlog",
    "correlation_scope",
    "setup_structured_logging",
    "shutdown_logging",
]
