from __future__ import annotations

import logging
import logging.config
import uuid
from threading import Lock
from typing import Any

import structlog
import structlog.contextvars
import structlog.stdlib

from tradeconnect.core.config import Settings
from tradeconnect.core.constants import REQUEST_ID_CTX_KEY, SERVICE_NAME

_LOGGING_INITIALISED = False
_LOGGING_LOCK = Lock()

# Fields that must never reach the log stream verbatim.
_REDACTED_KEYS = frozenset(
    {
        "password",
        "current_password",
        "new_password",
        "confirm_password",
        "token",
        "refresh_token",
        "access_token",
        "code",
        "secret",
    }
)


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if isinstance(resolved, str):
        return logging.INFO
    return int(resolved)


def _redact_secrets(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    for key in _REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def configure_logging(settings: Settings) -> None:
    """Configure structlog + stdlib logging exactly once per process."""

    global _LOGGING_INITIALISED
    if _LOGGING_INITIALISED:
        return

    with _LOGGING_LOCK:
        if _LOGGING_INITIALISED:
            return

        level = _resolve_level(settings.log_level)
        timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.add_log_level,
                timestamper,
                _redact_secrets,
                structlog.processors.dict_tracebacks,
                structlog.processors.JSONRenderer(),
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "structlog": {
                        "()": structlog.stdlib.ProcessorFormatter,
                        "processors": [
                            structlog.contextvars.merge_contextvars,
                            structlog.processors.add_log_level,
                            timestamper,
                            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                            structlog.processors.JSONRenderer(),
                        ],
                    }
                },
                "handlers": {
                    "default": {
                        "class": "logging.StreamHandler",
                        "formatter": "structlog",
                        "level": level,
                    }
                },
                "loggers": {
                    "": {
                        "handlers": ["default"],
                        "level": level,
                        "propagate": True,
                    },
                    "uvicorn.error": {
                        "handlers": ["default"],
                        "level": level,
                        "propagate": False,
                    },
                    "uvicorn.access": {
                        "handlers": ["default"],
                        "level": level,
                        "propagate": False,
                    },
                    "sqlalchemy.engine": {
                        "handlers": ["default"],
                        "level": (
                            logging.INFO if settings.database.echo else logging.WARNING
                        ),
                        "propagate": False,
                    },
                },
            }
        )

        structlog.contextvars.bind_contextvars(
            service=SERVICE_NAME, environment=settings.environment.value
        )
        _LOGGING_INITIALISED = True


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def bind_request_context(request_id: str, **kwargs: Any) -> None:
    bind_context(**{REQUEST_ID_CTX_KEY: request_id, **kwargs})


def bind_user_context(user_id: uuid.UUID, session_id: uuid.UUID) -> None:
    bind_context(user_id=str(user_id), session_id=str(session_id))


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)
