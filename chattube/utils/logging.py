"""Structured logging setup using structlog.

Implements a **dual-renderer pattern**: the same shared processor chain
(context vars, service identity, log level, timestamps, stack info) feeds
into either a coloured ConsoleRenderer for local development or a
JSONRenderer for production workers.  The renderer is selected from the
``APP_ENV`` environment variable (default ``"development"``), or forced via
the ``json_output`` flag.

Every event carries ``service``, ``version`` and ``pid``.  Several worker
processes usually share one job store, and ``pid`` is what tells their
interleaved ``job_claimed`` / ``job_lease_lost`` lines apart.

Standard-library ``logging`` is rewired through the same structlog
formatter so that httpx, openai and aiosqlite produce identically
formatted output.
"""

import logging
import os
import sys

import structlog

from chattube import __version__

DEFAULT_SERVICE_NAME = "chattube-worker"


def add_service_info(service: str) -> structlog.types.Processor:
    """Build a processor stamping *service*, the package version and the pid.

    Values already present on the event (e.g. bound by a caller) win.
    """
    pid = os.getpid()

    def _processor(
        logger: object, method_name: str, event_dict: structlog.types.EventDict
    ) -> structlog.types.EventDict:
        event_dict.setdefault("service", service)
        event_dict.setdefault("version", __version__)
        event_dict.setdefault("pid", pid)
        return event_dict

    return _processor


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    service: str = DEFAULT_SERVICE_NAME,
) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. When False, uses console rendering in
                     development and JSON in production (detected via APP_ENV).
        service: Name stamped on every event as ``service``.

    Returns:
        A configured structlog BoundLogger.
    """
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"

    # contextvars first so job_id/source_id bindings land on every event
    # emitted while a job runs.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service_info(service),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    # httpx logs every request at INFO; the openai client makes many.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a named structlog logger.

    If structlog has not been configured yet, calls configure_logging() with defaults.

    Args:
        name: Logger name, typically the module name.

    Returns:
        A structlog BoundLogger bound with the given name.
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)
