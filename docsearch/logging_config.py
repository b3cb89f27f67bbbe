"""
Structured logging for the docsearch service.

``logger`` can be imported anywhere at module load. ``setup_logging`` is
called once at startup with the service Settings: it picks the level and the
renderer and stamps every event with the service name and version.
"""
import logging
import sys

import structlog

from . import __version__
from .config import Settings

SERVICE_NAME = "docsearch"

# Chatty client libraries; their INFO lines repeat what our own events say.
QUIET_LOGGERS = ("httpx", "openai", "sentence_transformers", "urllib3")


def _add_service(logger, method_name, event_dict):
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def _processors(json_logs: bool):
    processors = [
        structlog.contextvars.merge_contextvars,
        _add_service,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if json_logs:
        # one JSON object per line, tracebacks rendered into the event
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    return processors


def setup_logging(settings: Settings):
    """
    Configure structlog and the stdlib root logger.

    Args:
        settings: ``log_level`` (DEBUG, INFO, WARNING, ERROR) and
            ``log_json`` (JSON lines instead of console output) are used.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=_processors(settings.log_json),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    logger.debug("Logging configured", level=settings.log_level, json=settings.log_json)
    return logger


logger = structlog.get_logger(SERVICE_NAME)
