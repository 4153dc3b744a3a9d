"""
Structured logging system for run analysis and debugging.
Provides JSON-formatted event logs with context and metadata.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class StructuredLogger:
    """
    Logger that emits both human-readable and machine-parseable entries.

    Usage:
        logger = StructuredLogger("genvault", log_dir=Path("data/output/logs"))
        logger.info("item_acquired", item_id="a1", size_mb=12.0, strategy="direct")
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            log_dir: Directory for JSON log files (None = disabled)
            enable_json: Enable JSON file logging
            enable_console: Mirror events to the standard logger
        """
        self.name = name
        self.log_dir = log_dir
        self.enable_json = enable_json and log_dir is not None
        self.enable_console = enable_console

        self._logger = logging.getLogger(name)

        self._json_file = None
        self.json_log_path: Path | None = None
        if self.enable_json:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.json_log_path = log_dir / f"genvault_{timestamp}.jsonl"
            self._json_file = open(self.json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        # Session context (added to all log entries)
        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
            "start_time": datetime.now().isoformat(),
        }

    def set_session_context(self, **kwargs) -> None:
        """Set session-level context that appears in all logs."""
        self._session_context.update(kwargs)

    def _format_message(self, event: str, **context) -> str:
        parts = [f"[{event}]"]
        for key, value in context.items():
            parts.append(f"{key}={value}")
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        if not self._json_file or self._json_file.closed:
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }

        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, TypeError, ValueError) as e:
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def _emit(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            self._logger.log(level, self._format_message(event, **context))
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        self._emit(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        self._emit(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        self._emit(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        self._emit(logging.ERROR, event, **context)

    def close(self) -> None:
        """Close JSON log file."""
        if self._json_file and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class AcquisitionLogger:
    """Specialized logger for per-item acquisition events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def item_started(self, item_id: str, title: str, status: str, position: int):
        self.logger.debug(
            "item_started",
            item_id=item_id,
            title=title,
            previous_status=status,
            position=position,
        )

    def item_acquired(self, item_id: str, size_bytes: int, strategy: str):
        self.logger.info(
            "item_acquired",
            item_id=item_id,
            size_bytes=size_bytes,
            size_mb=round(size_bytes / (1024 * 1024), 2),
            strategy=strategy,
        )

    def item_failed(self, item_id: str, error: str, consecutive_failures: int):
        self.logger.error(
            "item_failed",
            item_id=item_id,
            error=error,
            consecutive_failures=consecutive_failures,
        )

    def promotion_failed(self, item_id: str, error: str):
        self.logger.error("promotion_failed", item_id=item_id, error=error)

    def circuit_tripped(self, failure_count: int, remaining: int):
        self.logger.error(
            "circuit_breaker_tripped",
            failure_count=failure_count,
            remaining_items=remaining,
        )


class SessionLogger:
    """Specialized logger for run-level events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def sync_started(self, source_mode: str, dry_run: bool, batch_size: int):
        self.logger.info(
            "sync_started",
            source_mode=source_mode,
            dry_run=dry_run,
            batch_size=batch_size,
        )

    def listing_merged(self, fetched: int, new_items: int, total_items: int):
        self.logger.info(
            "listing_merged",
            fetched=fetched,
            new_items=new_items,
            total_items=total_items,
        )

    def sync_completed(
        self,
        duration_s: float,
        acquired: int,
        failed: int,
        circuit_tripped: bool,
    ):
        self.logger.info(
            "sync_completed",
            duration_s=round(duration_s, 2),
            items_acquired=acquired,
            items_failed=failed,
            circuit_tripped=circuit_tripped,
        )

    def verification_completed(self, verified: int, missing: int):
        self.logger.info("verification_completed", verified=verified, missing=missing)


def create_structured_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> tuple[StructuredLogger, AcquisitionLogger, SessionLogger]:
    """
    Create all structured loggers.

    Returns:
        Tuple of (base_logger, acquisition_logger, session_logger)
    """
    base = StructuredLogger(
        "genvault.events",
        log_dir=log_dir,
        enable_json=enable_json,
        enable_console=False,
    )
    return base, AcquisitionLogger(base), SessionLogger(base)
