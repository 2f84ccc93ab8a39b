"""
Inspection Sync - Centralized Logging Configuration
Supports both plain text (terminal) and JSON structured logging
"""

import logging
import sys
import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar


LOGGER_NAME = "inspection_sync"

# Context variables for tracing a sync pass
pass_id_var: ContextVar[str] = ContextVar('pass_id', default='')
mutation_id_var: ContextVar[str] = ContextVar('mutation_id', default='')


def get_pass_id() -> str:
    """Get current sync pass ID from context"""
    return pass_id_var.get() or ''


def set_pass_id(pass_id: str) -> None:
    """Set sync pass ID in context"""
    pass_id_var.set(pass_id)


def get_mutation_id() -> str:
    """Get the mutation currently being replayed"""
    return mutation_id_var.get() or ''


def set_mutation_id(mutation_id: str) -> None:
    """Set the mutation currently being replayed"""
    mutation_id_var.set(mutation_id)


def generate_pass_id() -> str:
    """Generate a short unique sync pass ID"""
    return str(uuid.uuid4())[:8]


_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'taskName', 'pass_id', 'mutation_id',
}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging
    One object per line, suitable for shipping to a log aggregator
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        pass_id = get_pass_id()
        if pass_id:
            log_data["pass_id"] = pass_id

        mutation_id = get_mutation_id()
        if mutation_id:
            log_data["mutation_id"] = mutation_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info) if record.exc_info[0] else None
            }

        # Extra fields passed through `extra=`
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ContextualFormatter(logging.Formatter):
    """
    Formatter that includes the current sync pass and mutation ids
    Used for readable terminal and file output
    """

    def format(self, record: logging.LogRecord) -> str:
        record.pass_id = get_pass_id() or '-'
        record.mutation_id = get_mutation_id() or '-'

        return super().format(record)


class SyncLogger(logging.Logger):
    """
    Custom logger with convenience methods for structured logging
    """

    def log_replay(self, kind: str, action: str, success: bool,
                   duration_ms: float, retry_count: int = 0, **kwargs) -> None:
        """Log the outcome of replaying one mutation"""
        level = logging.INFO if success else logging.WARNING
        self.log(
            level,
            f"Replay {kind} {action}: {'ok' if success else 'failed'} "
            f"({duration_ms:.2f}ms)" +
            (f" - retry {retry_count}" if not success else ""),
            extra={
                "event_type": "replay",
                "mutation_kind": kind,
                "mutation_action": action,
                "replay_success": success,
                "duration_ms": duration_ms,
                "retry_count": retry_count,
                **kwargs
            }
        )

    def log_pass(self, attempted: int, synced: int, failed: int,
                 aborted_offline: bool, duration_ms: float, **kwargs) -> None:
        """Log a completed sync pass"""
        level = logging.WARNING if failed or aborted_offline else logging.INFO
        self.log(
            level,
            f"Sync pass finished: {synced}/{attempted} synced, {failed} failed" +
            (" (stopped: offline)" if aborted_offline else "") +
            f" ({duration_ms:.2f}ms)",
            extra={
                "event_type": "sync_pass",
                "attempted": attempted,
                "synced": synced,
                "failed": failed,
                "aborted_offline": aborted_offline,
                "duration_ms": duration_ms,
                **kwargs
            }
        )

    def log_error_with_context(self, error: Exception, context: str = None,
                               **kwargs) -> None:
        """Log error with full context"""
        self.error(
            f"Error in {context}: {type(error).__name__}: {str(error)}",
            exc_info=True,
            extra={
                "event_type": "error",
                "error_type": type(error).__name__,
                "error_message": str(error),
                "error_context": context,
                **kwargs
            }
        )


# Register before the first getLogger call for our name
logging.setLoggerClass(SyncLogger)


def get_logger(name: Optional[str] = None) -> SyncLogger:
    """Get the package logger or one of its children"""
    full_name = LOGGER_NAME if not name else f"{LOGGER_NAME}.{name}"
    logger = logging.getLogger(full_name)
    if not isinstance(logger, SyncLogger):
        logger.__class__ = SyncLogger  # created before our class was registered
    return logger


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    log_file: Optional[str] = None,
) -> SyncLogger:
    """Setup logging for the package logger"""

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Clear existing handlers
    logger.handlers.clear()

    if log_format == "json":
        console_formatter = JSONFormatter()
        file_formatter = JSONFormatter()
    else:
        detailed_format = (
            "%(asctime)s | %(levelname)-8s | "
            "[%(pass_id)s] [%(mutation_id)s] | "
            "%(name)s:%(lineno)d | %(message)s"
        )
        simple_format = "%(levelname)-8s | %(message)s"
        console_formatter = ContextualFormatter(simple_format)
        file_formatter = ContextualFormatter(detailed_format)

    # Console output goes to stderr so rich output on stdout stays clean
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logger.level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=5242880,  # 5MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger.debug(
        "Logging initialized",
        extra={"log_level": level, "json_logging": log_format == "json"}
    )

    return logger


logger: SyncLogger = get_logger()


__all__ = [
    'logger',
    'get_logger',
    'setup_logging',
    'get_pass_id',
    'set_pass_id',
    'get_mutation_id',
    'set_mutation_id',
    'generate_pass_id',
    'SyncLogger',
]
