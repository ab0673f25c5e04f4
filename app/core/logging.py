import logging
import logging.config
from pathlib import Path

from app.core.config import settings

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": settings.LOG_LEVEL,
            "formatter": "default",
            "stream": "ext://sys.stdout"
        },
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "INFO",
            "formatter": "detailed",
            "filename": "logs/app.log",
            "maxBytes": 10485760,
            "backupCount": 5
        },
        "error_file": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "ERROR",
            "formatter": "detailed",
            "filename": "logs/error.log",
            "maxBytes": 10485760,
            "backupCount": 5
        }
    },
    "root": {
        "level": settings.LOG_LEVEL,
        "handlers": ["console", "file", "error_file"]
    },
    "loggers": {
        "app": {
            "level": settings.LOG_LEVEL,
            "handlers": ["console", "file"],
            "propagate": False
        },
        "app.core.cache": {
            "level": "INFO",
            "handlers": ["console", "file"],
            "propagate": False
        },
        "uvicorn.access": {
            "level": "WARNING",
            "handlers": ["console"],
            "propagate": False
        }
    }
}

def configure_logging():
    config = LOGGING_CONFIG
    if settings.LOG_TO_FILE:
        Path("logs").mkdir(exist_ok=True)
    else:
        # console only
        config = {
            **LOGGING_CONFIG,
            "handlers": {"console": LOGGING_CONFIG["handlers"]["console"]},
            "root": {"level": settings.LOG_LEVEL, "handlers": ["console"]},
            "loggers": {
                name: {**logger_conf, "handlers": ["console"]}
                for name, logger_conf in LOGGING_CONFIG["loggers"].items()
            },
        }
    logging.config.dictConfig(config)
