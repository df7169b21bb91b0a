"""Structured logging for the ragkb pipeline.

Pipeline events are emitted as snake_case structlog events with keyword
context (``document_id``, ``chunk_id``, ``task``, ``provider``).  The same
processor chain renders coloured console output during development and
JSON lines in production.

Standard-library loggers of the SDKs we call (httpx, openai, anthropic,
chromadb, pinecone) are routed through that chain too, and held at
``WARNING`` unless ``RAG_LOG_SDK_DEBUG`` is set, since their per-request
INFO lines drown out task-queue events.
"""

import logging
import os
import sys

import structlog

_SDK_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "chromadb", "pinecone", "urllib3")


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    service: str = "ragkb",
) -> structlog.BoundLogger:
    """Configure structlog for the knowledge-base services.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR).
        json_output: Emit JSON lines. ``APP_ENV=production`` also selects JSON.
        service: Value bound as ``service`` on every event, so that several
                 workers writing to one log stream can be told apart.

    Returns:
        A logger already bound with ``service``.
    """
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"
    level = logging.getLevelName(log_level.upper())

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
            foreign_pre_chain=shared_processors,
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    sdk_level = logging.DEBUG if os.environ.get("RAG_LOG_SDK_DEBUG") else logging.WARNING
    for name in _SDK_LOGGERS:
        logging.getLogger(name).setLevel(max(sdk_level, level))

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service)
    return structlog.get_logger(logger_name=service)


def get_logger(name: str) -> structlog.BoundLogger:
    """Named logger; configures the defaults if nothing has yet."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)
