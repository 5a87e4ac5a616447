"""Structured JSON logging.

Emits one JSON object per line so a run can be filtered by run ID or
username after the fact. A plain-text formatter is available for
interactive use.
"""

import json
import logging
import os
import secrets
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from importlib.metadata import PackageNotFoundError, version as dist_version
from typing import Any, Dict, Optional


class EventType(str, Enum):
    """Enumeration of structured log event types."""
    STARTUP = "STARTUP"
    USER_LOOKUP = "USER_LOOKUP"
    FETCH_PAGE = "FETCH_PAGE"
    FETCH_COMPLETE = "FETCH_COMPLETE"
    VALUATION_SKIP = "VALUATION_SKIP"
    VALUATION_SUMMARY = "VALUATION_SUMMARY"
    RANKING = "RANKING"
    ERROR = "ERROR"
    # Generic for logs that don't fit a specific event type
    LOG = "LOG"


# Context variables for correlation
_run_id: ContextVar[str] = ContextVar('run_id', default='')
_version: ContextVar[str] = ContextVar('version', default='')
_username: ContextVar[str] = ContextVar('username', default='')
_service: ContextVar[str] = ContextVar('service', default='margin-watch')


def get_app_version() -> str:
    """Get the application version from the environment or package metadata."""
    version = os.getenv('APP_VERSION')
    if version:
        return version

    try:
        return dist_version('manifold-margin-watch')
    except PackageNotFoundError:
        return 'unknown'


def generate_run_id() -> str:
    """Generate a unique ID for one analysis run."""
    timestamp = datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')
    suffix = secrets.token_hex(3)  # 6 character random suffix
    return f"{timestamp}-{suffix}"


class StructuredLogFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: Dict[str, Any] = {
            'ts': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'service': _service.get(),
            'version': _version.get(),
            'run_id': _run_id.get(),
            'message': record.getMessage(),
            'event_type': getattr(record, 'event_type', EventType.LOG.value),
        }

        username = getattr(record, 'username', None) or _username.get()
        if username:
            log_entry['username'] = username

        extra_fields = getattr(record, 'extra_fields', {})
        if extra_fields:
            log_entry.update(extra_fields)

        if record.exc_info:
            log_entry['error_type'] = record.exc_info[0].__name__ if record.exc_info[0] else 'Unknown'
            log_entry['error_msg'] = str(record.exc_info[1]) if record.exc_info[1] else ''
            log_entry['stack'] = ''.join(traceback.format_exception(*record.exc_info))

        log_entry['logger'] = record.name

        return json.dumps(log_entry, default=str)


class TextLogFormatter(logging.Formatter):
    """Human-readable formatter that appends structured fields as key=value pairs."""

    def __init__(self):
        super().__init__('%(asctime)s %(levelname)-7s %(name)s: %(message)s')

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra_fields = getattr(record, 'extra_fields', {})
        if extra_fields:
            pairs = ' '.join(f"{key}={value}" for key, value in extra_fields.items())
            line = f"{line} [{pairs}]"
        return line


class StructuredLogAdapter(logging.LoggerAdapter):
    """Logger adapter that automatically includes structured fields."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Move caller-supplied extra fields under extra_fields."""
        extra = dict(kwargs.get('extra') or {})

        event_type = extra.pop('event_type', EventType.LOG.value)
        username = extra.pop('username', None)

        kwargs['extra'] = {
            'event_type': event_type if isinstance(event_type, str) else event_type.value,
            'username': username,
            'extra_fields': extra,
        }

        return msg, kwargs


def setup_structured_logging(
    service: str = 'margin-watch',
    level: int = logging.INFO,
    json_format: bool = True,
    run_id: Optional[str] = None,
    version: Optional[str] = None,
) -> str:
    """Configure logging for the application.

    Args:
        service: Service name for logs
        level: Logging level
        json_format: Emit JSON lines if True, plain text otherwise
        run_id: Run ID (generated if not provided)
        version: Application version (auto-detected if not provided)

    Returns:
        The run_id being used
    """
    _service.set(service)

    if version is None:
        version = get_app_version()
    _version.set(version)

    if run_id is None:
        run_id = generate_run_id()
    _run_id.set(run_id)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredLogFormatter() if json_format else TextLogFormatter())
    root_logger.addHandler(handler)

    return run_id


def get_logger(name: str) -> StructuredLogAdapter:
    """Get a structured logger adapter for a module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        StructuredLogAdapter wrapping the named logger
    """
    return StructuredLogAdapter(logging.getLogger(name), {})


def set_context(username: Optional[str] = None) -> None:
    """Set the username attached to every subsequent log line."""
    if username is not None:
        _username.set(username)


def clear_context() -> None:
    """Clear context variables."""
    _username.set('')


def get_run_id() -> str:
    """Get the current run ID."""
    return _run_id.get()
