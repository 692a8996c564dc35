"""
Structured logging for the retrieval core.
Search, session, vector and heartbeat operations share one log line format.
"""

import logging
from typing import Any, Dict, Optional

_MAX_TEXT_CHARS = 50


def _clip(text: str, limit: int = _MAX_TEXT_CHARS) -> str:
    """Shorten user text before it lands in a log line."""
    if text is None:
        return ""
    return text[:limit] + "..." if len(text) > limit else text


class StructuredLogger:
    """Structured logger for search, pagination and indexing operations."""

    def __init__(self, name: str = "lifeinbox"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None,
                      level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_search(self, user_id: str, query: str, status: str = "success", details: Dict[str, Any] = None):
        """Log a search request and its outcome."""
        log_details = {"user_id": user_id, "query": _clip(query)}
        if details:
            log_details.update(details)

        self.log_operation("search", status, log_details)

    def log_session_event(self, event: str, user_id: str, details: Dict[str, Any] = None):
        """Log a pagination session transition (created, advanced, expired, swept...)."""
        log_details = {"user_id": user_id}
        if details:
            log_details.update(details)

        self.log_operation(f"session.{event}", "ok", log_details)

    def log_vector_operation(self, operation: str, record_id: str, details: Dict[str, Any] = None,
                             status: str = "success"):
        """Log a vector operation."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update(details)

        level = logging.WARNING if status == "failed" else logging.INFO
        self.log_operation(f"vector.{operation}", status, log_details, level=level)

    def log_degraded_dependency(self, dependency: str, reason: str, details: Dict[str, Any] = None):
        """Log a dependency failure that was absorbed by a fallback."""
        log_details = {"dependency": dependency, "reason": _clip(str(reason), 200)}
        if details:
            log_details.update(details)

        self.log_operation("degraded", "fallback", log_details, level=logging.WARNING)

    def log_heartbeat_task(self, task_name: str, start_time: float, end_time: float, status: str = "success",
                           details: Optional[Dict[str, Any]] = None):
        """Log heartbeat task execution."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        elif status == "success":
            log_details["message"] = f"Heartbeat task '{task_name}' completed in {duration_ms}ms"
        elif status == "failed":
            log_details["message"] = f"Heartbeat task '{task_name}' failed after {duration_ms}ms"

        level = logging.ERROR if status == "failed" else logging.INFO
        self.log_operation(f"heartbeat.{task_name}", status, log_details, level=level)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
