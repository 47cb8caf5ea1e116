"""
structlog setup for the admission service.

Every record carries the service name and environment; request-scoped
fields (request_id, method, path) are bound by RequestLoggingMiddleware
through contextvars. JSON in production, console output elsewhere.
"""

import logging
import sys

import structlog
from structlog.types import EventDict, Processor

from app.core.config import Settings, get_settings


def _service_context(settings: Settings) -> Processor:
    def add_service_context(logger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", settings.APP_NAME)
        event_dict.setdefault("environment", settings.ENVIRONMENT)
        return event_dict

    return add_service_context


def _renderer(settings: Settings) -> Processor:
    if settings.ENVIRONMENT == "production":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=settings.ENVIRONMENT == "development")


def setup_logging() -> None:
    """Configure structlog and route stdlib logging through it. Safe to call repeatedly."""
    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _service_context(settings),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.ENVIRONMENT == "production":
        shared_processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings),
            ],
        )
    )

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if isinstance(existing.formatter, structlog.stdlib.ProcessorFormatter):
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
