"""
Structured logging for the report worker.

structlog events are rendered and handed to the stdlib root logger, so the
operation events from the worker and the plain ``logging.getLogger(__name__)``
messages from the pipeline modules end up in the same console and rotating
file output.
"""

import os
import logging
import logging.handlers
import structlog
from typing import Any, Dict, List
from datetime import datetime

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 5

# Rendered first, in this order, so one report can be followed through the log
LEADING_KEYS = ('correlation_id', 'operation', 'scheduled_time', 'artifact')


class ReportLogger:
    """Configures structured logging for the report worker."""

    @staticmethod
    def setup_logging(
        log_level: str = None,
        log_format: str = None,
        log_file: str = None
    ) -> None:
        """Route structlog through the root logger with console and optional file output."""
        log_level = (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()
        log_format = (log_format or os.getenv('LOG_FORMAT', 'console')).lower()
        log_file = log_file or os.getenv('LOG_FILE')
        level = getattr(logging, log_level)

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.format_exc_info,
                ReportLogger._lead_with_report_keys,
                ReportLogger._get_renderer(log_format),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()
        root_logger.handlers.extend(ReportLogger._build_handlers(level, log_file))

        structlog.get_logger("gocator_report").info(
            "Logging initialized",
            log_level=log_level,
            log_format=log_format,
            log_file=log_file or "console"
        )

    @staticmethod
    def _build_handlers(level: int, log_file: str = None) -> List[logging.Handler]:
        handlers = [logging.StreamHandler()]

        if log_file:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            handlers.append(logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUP_COUNT,
                encoding='utf-8'
            ))

        for handler in handlers:
            handler.setLevel(level)

        return handlers

    @staticmethod
    def _lead_with_report_keys(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        leading = {key: event_dict.pop(key) for key in LEADING_KEYS if key in event_dict}
        return {**leading, **event_dict}

    @staticmethod
    def _get_renderer(log_format: str):
        if log_format == 'json':
            return structlog.processors.JSONRenderer()
        return structlog.dev.ConsoleRenderer(colors=False)


class OperationLogger:
    """Times one worker operation (a slot fire or a safety tick) and logs it.

    Used as a context manager. The yielded object logs with the operation's
    correlation id and context; ``bind`` adds context once it is known (the
    report file name, say) and ``record`` adds result fields to the
    completion event.
    """

    def __init__(self, operation_name: str, correlation_id: str = None, **context):
        self.operation_name = operation_name
        self.correlation_id = correlation_id
        self.start_time = None
        self.outcome: Dict[str, Any] = {}

        self.logger = structlog.get_logger("gocator_report").bind(operation=operation_name, **context)
        if correlation_id:
            self.logger = self.logger.bind(correlation_id=correlation_id)

    def bind(self, **context) -> None:
        self.logger = self.logger.bind(**context)

    def record(self, **fields) -> None:
        self.outcome.update(fields)

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)

    def __enter__(self) -> 'OperationLogger':
        self.start_time = datetime.now()
        self.logger.info(f"Operation started: {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = (datetime.now() - self.start_time).total_seconds()

        if exc_type is None:
            self.logger.info(
                f"Operation completed: {self.operation_name}",
                duration_seconds=duration,
                **self.outcome
            )
        else:
            self.logger.error(
                f"Operation failed: {self.operation_name}",
                duration_seconds=duration,
                error_type=exc_type.__name__,
                error_message=str(exc_val) if exc_val else None,
                **self.outcome
            )

        return False  # Don't suppress exceptions
