# pocketpet/core/logging_config.py
import logging
import sys
import structlog
import os


def setup_logging(log_level_str: str = "INFO"):
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)
    env_type = os.getenv("ENV_TYPE", "dev")

    # Common processors for all environments
    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    # Configure structlog
    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = structlog.dev.ConsoleRenderer() if env_type == "dev" else structlog.processors.JSONRenderer()

    # Route standard logging through the same formatter so library logs
    # (uvicorn, pymongo) come out in the same shape.
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    structlog_handler = logging.StreamHandler(sys.stdout)
    structlog_handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))

    root_logger.addHandler(structlog_handler)
    root_logger.setLevel(log_level)

    logging.getLogger("pymongo").setLevel(logging.WARNING)

    log = structlog.get_logger("logging_config")
    log.info("Logging configured", log_level=log_level_str,
             renderer="ConsoleRenderer" if env_type == "dev" else "JSONRenderer")
