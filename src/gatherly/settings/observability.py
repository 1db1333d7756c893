"""Logging settings.

Every event, including those from Django, Celery and httpx loggers, goes through
the same structlog chain and is written to stdout as one JSON object per line.
"""

import structlog
from decouple import config

from common.logging import app_context_processor, scrub_pii

from .base import DEBUG, VERSION

ENABLE_OBSERVABILITY = config("ENABLE_OBSERVABILITY", default=True, cast=bool)
LOG_LEVEL = config("LOG_LEVEL", default="DEBUG" if DEBUG else "INFO")
LOG_FORMAT = config("LOG_FORMAT", default="json")  # "json" or "console"

add_app_context = app_context_processor(
    service=config("SERVICE_NAME", default="gatherly"),
    version=VERSION,
    environment=config("DEPLOYMENT_ENVIRONMENT", default="development" if DEBUG else "production"),
)

SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    add_app_context,
    scrub_pii,
]

structlog.configure(
    processors=[*SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],  # type: ignore[list-item]
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

_renderer = structlog.dev.ConsoleRenderer() if LOG_FORMAT == "console" else structlog.processors.JSONRenderer()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "structlog": {
            "()": structlog.stdlib.ProcessorFormatter,
            "processors": [structlog.stdlib.ProcessorFormatter.remove_processors_meta, _renderer],
            "foreign_pre_chain": SHARED_PROCESSORS,
        },
    },
    "handlers": {
        "stdout": {"class": "logging.StreamHandler", "formatter": "structlog"},
    },
    "root": {"handlers": ["stdout"], "level": LOG_LEVEL},
    "loggers": {
        name: {"handlers": ["stdout"], "level": level, "propagate": False}
        for name, level in {
            "django": "INFO",
            "django.db.backends": "WARNING",
            "celery": "INFO",
            "httpx": "WARNING",
        }.items()
    },
}
