"""Observability: structlog-backed JSON logging and per-run trace files."""

from boxsafe.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    redact_text,
    redact_value,
    run_context,
    setup_logging,
)
from boxsafe.observability.trace import TraceLogger, TraceSink

__all__ = [
    "LoggingConfig",
    "StructuredLoggingHandle",
    "TraceLogger",
    "TraceSink",
    "redact_text",
    "redact_value",
    "run_context",
    "setup_logging",
]
