"""
Django settings for the arascan indexer.
"""

import logging
from pathlib import Path

import environ
import structlog

root = environ.Path(__file__) - 2

env = environ.Env(DEBUG=(bool, False))

# .env is optional, the process environment always wins
if (env_file := Path(root("..", ".env"))).exists():
    env.read_env(str(env_file))

DEBUG = env("DEBUG")
SECRET_KEY = env.str("SECRET_KEY", default="arascan-insecure-development-key")
ALLOWED_HOSTS = env.list("ALLOWED_HOSTS", default=[])

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "project.core",
]

DATABASES = {
    "default": env.db("DATABASE_URL", default=f"sqlite:///{root('..', 'arascan.sqlite3')}"),
}
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True
TIME_ZONE = "UTC"

# Chain node
SUBSTRATE_URL = env.str("SUBSTRATE_URL", default="ws://127.0.0.1:9944")
SS58_FORMAT = env.int("SS58_FORMAT", default=42)

# Ingestion
MAX_SKIP_BLOCKS = env.int("MAX_SKIP_BLOCKS", default=50)
BLOCK_LOCK_TIMEOUT = env.float("BLOCK_LOCK_TIMEOUT", default=60.0)
RECONCILE_CONCURRENCY = env.int("RECONCILE_CONCURRENCY", default=16)
RECONCILE_PAGE_SIZE = env.int("RECONCILE_PAGE_SIZE", default=500)

ARASCAN_RECORD_STORES = {
    "default": {
        "BACKEND_NAME": env.str("ARASCAN_RECORD_STORE_BACKEND", default="django-orm"),
    },
}

LOG_LEVEL = env.str("LOG_LEVEL", default="INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "main": {
            "()": structlog.stdlib.ProcessorFormatter,
            "processor": structlog.dev.ConsoleRenderer(),
            "foreign_pre_chain": [
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
            ],
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "main",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "websockets": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
        "async_substrate_interface": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
}


def configure_structlog():
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


configure_structlog()

if DEBUG:
    logging.getLogger("arascan").setLevel(logging.DEBUG)
