from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

import structlog

_SECRET_KEYS = {
    "authorization",
    "token",
    "api_key",
    "apikey",
    "secret",
    "cron_secret",
    "password",
}


def _add_ts(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("ts", datetime.now(timezone.utc).isoformat(timespec="milliseconds"))
    return event_dict


def _add_service(service_name: str):
    def _inner(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return _inner


def _redact_secrets(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key in list(event_dict.keys()):
        if str(key).lower() in _SECRET_KEYS:
            event_dict[key] = "***redacted***"
    return event_dict


def configure_logging(
    service_name: str = "newsroom",
    *,
    level: int | str = logging.INFO,
    log_format: str = "json",
) -> None:
    """Configure one structlog stack for the API, the CLI and the tests.

    ``level`` accepts a stdlib level number or name ("DEBUG", "INFO", ...).
    ``log_format`` is "json" for container logs or "console" for local runs.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stderr,
        force=True,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _add_ts,
        _add_service(service_name),
        _redact_secrets,
    ]
    if log_format == "console":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str | None = None) -> Any:
    """Return a lazy structlog logger; binding happens on first use."""
    if component:
        return structlog.get_logger(component=component)
    return structlog.get_logger()
