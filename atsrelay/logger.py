"""
Structured logging system for the relay.

Provides centralized logging with console and file output, secret
redaction of log context, and counters for monitoring upstream calls,
write-safety blocks and candidate index refreshes.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Any, Optional, TextIO
from datetime import datetime
import json


SECRET_KEY_PATTERN = re.compile(r"token|confirmation|api[_-]?key|authorization|secret|password", re.IGNORECASE)
MAX_STRING_LENGTH = 2000
MAX_LIST_ITEMS = 40
MAX_DEPTH = 4


def redact_for_log(value: Any, depth: int = 0) -> Any:
    """Return a log-safe copy of ``value`` with secrets masked and size bounded."""
    if value is None:
        return None
    if depth > MAX_DEPTH:
        return "[Truncated]"
    if isinstance(value, str):
        if len(value) > MAX_STRING_LENGTH:
            return f"{value[:MAX_STRING_LENGTH]}...[truncated]"
        return value
    if isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [redact_for_log(item, depth + 1) for item in list(value)[:MAX_LIST_ITEMS]]
    if isinstance(value, dict):
        out = {}
        for key, nested in value.items():
            if SECRET_KEY_PATTERN.search(str(key)):
                out[key] = "[REDACTED]"
                continue
            out[key] = redact_for_log(nested, depth + 1)
        return out
    return str(value)


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for upstream calls and index maintenance.
    """

    def __init__(
        self,
        name: str = "atsrelay",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
        console_stream: Optional[TextIO] = None,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
            console_stream: Console stream (default: stdout)
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers
        self.logger.propagate = False

        self.metrics = {
            "api_calls": 0,
            "api_errors": 0,
            "writes_blocked": {},
            "index_refreshes": {},
            "index_refresh_failures": 0,
            "sync_token_fallbacks": 0,
        }

        if enable_console:
            console_handler = logging.StreamHandler(console_stream or sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"atsrelay_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            safe = redact_for_log(context)
            message = f"{message} | Context: {json.dumps(safe, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_api_call(self):
        """Increment upstream call counter."""
        self.metrics["api_calls"] += 1

    def record_api_error(self):
        self.metrics["api_errors"] += 1

    def record_write_blocked(self, reason: str):
        """Record a write-safety block by reason."""
        blocked = self.metrics["writes_blocked"]
        blocked[reason] = blocked.get(reason, 0) + 1

    def record_index_refresh(self, mode: str):
        """Record a completed index refresh (``full`` or ``incremental``)."""
        refreshes = self.metrics["index_refreshes"]
        refreshes[mode] = refreshes.get(mode, 0) + 1

    def record_index_refresh_failure(self):
        self.metrics["index_refresh_failures"] += 1

    def record_sync_token_fallback(self):
        self.metrics["sync_token_fallbacks"] += 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        metrics_copy = dict(self.metrics)
        metrics_copy["writes_blocked"] = dict(self.metrics["writes_blocked"])
        metrics_copy["index_refreshes"] = dict(self.metrics["index_refreshes"])
        metrics_copy["writes_blocked_total"] = sum(metrics_copy["writes_blocked"].values())
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Relay Session Metrics ===")
        self.info(f"API Calls: {metrics['api_calls']} ({metrics['api_errors']} failed)")

        if metrics["index_refreshes"]:
            self.info("Index Refreshes:")
            for mode, count in metrics["index_refreshes"].items():
                self.info(f"  {mode}: {count}")
        if metrics["index_refresh_failures"]:
            self.info(f"Index Refresh Failures: {metrics['index_refresh_failures']}")
        if metrics["sync_token_fallbacks"]:
            self.info(f"Sync Token Fallbacks: {metrics['sync_token_fallbacks']}")

        if metrics["writes_blocked"]:
            self.info("Blocked Writes:")
            for reason, count in metrics["writes_blocked"].items():
                self.info(f"  {reason}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "atsrelay",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
