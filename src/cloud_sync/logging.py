"""structlog setup shared by every Cloud Sync module."""

import os
import sys

import structlog

from . import config

_LOG_STREAM = None
_CONFIGURED = False
_DEBUG = None

SECRET_FIELDS = ("passphrase", "password", "secret", "key")


def _log_handle():
    """Open (or reuse) the 0600 log file under ~/.cloud_sync."""
    global _LOG_STREAM
    if _LOG_STREAM is None:
        path = config.get_log_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
        os.chmod(path, 0o600)
        _LOG_STREAM = os.fdopen(fd, "a", buffering=1)
    return _LOG_STREAM


def _filter_secrets(_, __, event_dict):
    for field in SECRET_FIELDS:
        event_dict.pop(field, None)
    return event_dict


def _human_renderer(_, __, event_dict):
    """Render an event dict as one timestamped line."""
    ts = event_dict.pop("timestamp", "")
    level = event_dict.pop("level", "").upper()
    event = event_dict.pop("event", "")
    extras = " ".join(f"{k}={event_dict[k]}" for k in sorted(event_dict))
    return f"{ts} [{level}] {event} {extras}".strip()


def _logger_factory(*args):
    """Resolve the output stream when a logger is first used, not at import."""
    debug = _DEBUG if _DEBUG is not None else config.debug_enabled()
    return structlog.PrintLogger(file=sys.stderr if debug else _log_handle())


def configure(debug: bool | None = None):
    """Configure structlog; stderr in debug mode, otherwise the log file.

    No file is opened here. The log file is created on the first event
    written outside debug mode.
    """
    global _CONFIGURED, _DEBUG
    _DEBUG = debug

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _filter_secrets,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.dict_tracebacks,
            _human_renderer,
        ],
        logger_factory=_logger_factory,
        cache_logger_on_first_use=False,
    )
    _CONFIGURED = True


def get_logger(name: str):
    """Return a lazy structlog logger bound to `name`."""
    if not _CONFIGURED:
        configure()
    return structlog.get_logger(name)
