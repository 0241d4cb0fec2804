"""
Utility functions for warporch.

Includes logging setup, retries and canonical hashing.
"""

import hashlib
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from rich.console import Console
from rich.logging import RichHandler


# Global console for pretty output
console = Console()

# LogRecord attributes copied into structured output when present
_EXTRA_FIELDS = ("job_id", "step_id", "chain", "attempt", "event", "metadata")


def utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "structured",
    log_file: Optional[Path] = None,
    console_output: bool = True,
) -> logging.Logger:
    """
    Set up logging for an operator node.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "structured" (JSON) or "pretty" (human-readable)
        log_file: Optional path to a log file
        console_output: Also log to console

    Returns:
        Configured logger
    """
    logger = logging.getLogger("warporch")
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers = []  # Clear existing handlers
    logger.propagate = False

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        if log_format == "structured":
            file_handler.setFormatter(StructuredFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
        logger.addHandler(file_handler)

    if console_output:
        if log_format == "pretty":
            console_handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_time=False)
        else:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(StructuredFormatter())
        logger.addHandler(console_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def retry_with_backoff(
    func: Callable[[], Any],
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    backoff_multiplier: float = 2.0,
    logger: Optional[logging.Logger] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Retry a function with exponential backoff.

    Args:
        func: Function to retry
        retry_on: Exception types that trigger a retry; others propagate at once
        max_attempts: Maximum number of attempts
        backoff_seconds: Initial backoff time in seconds
        backoff_multiplier: Multiplier for each retry
        logger: Logger for retry messages
        sleep: Sleep function (injectable for tests)

    Returns:
        Result of successful function call

    Raises:
        Exception: The last error if all retries are exhausted
    """
    attempt = 1
    wait_time = backoff_seconds

    while True:
        try:
            return func()
        except retry_on as e:
            if attempt >= max_attempts:
                if logger:
                    logger.error(f"All {max_attempts} attempts failed: {e}")
                raise

            if logger:
                logger.warning(
                    f"Attempt {attempt}/{max_attempts} failed: {e}. Retrying in {wait_time}s..."
                )

            sleep(wait_time)
            wait_time *= backoff_multiplier
            attempt += 1


def hash_canonical(data: Any) -> str:
    """
    Compute canonical hash of a JSON-compatible value.

    Uses JSON serialization with sorted keys for determinism.

    Returns:
        SHA256 hash prefixed with "sha256:"
    """
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(canonical.encode()).hexdigest()
    return f"sha256:{digest}"
