"""
Centralized logging configuration.

Configure once at the entry point (API lifespan, scripts), not per module.
structlog events are routed through stdlib logging so both styles share handlers.
"""

import logging
import sys

import structlog


def configure_logging(level: int | str = logging.INFO, json_logs: bool = False) -> None:
    """
    Configure stdlib logging and structlog for the entire application.

    Idempotent: the root logger is only configured when it has no handlers yet.

    Args:
        level: Root log level (int or name such as "INFO")
        json_logs: Render structlog events as JSON instead of console key=value
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(message)s",
            handlers=[logging.StreamHandler(sys.stdout)],
        )
    root_logger.setLevel(level)

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Reduce noise
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
