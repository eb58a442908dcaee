import json
import logging
import logging.config
import sys

from core.config import configs

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "PIL", "multipart")


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line, for log aggregation in production.
    """

    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record, ensure_ascii=False)


def build_logging_config(environment: str, level: str) -> dict:
    """dictConfig for the given environment: readable text in development, JSON in production."""
    production = environment.lower() == "production"
    handler = "console_json" if production else "console"

    loggers = {
        "intake": {"level": level, "handlers": [handler], "propagate": False},
        "api": {"level": level, "handlers": [handler], "propagate": False},
        "uvicorn": {"level": "INFO", "handlers": [handler], "propagate": False},
        "uvicorn.access": {"level": "WARNING" if production else "INFO", "handlers": [handler], "propagate": False},
        "uvicorn.error": {"level": "ERROR" if production else "INFO", "handlers": [handler], "propagate": False},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING", "handlers": [handler], "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": JsonFormatter,
                "datefmt": "%Y-%m-%dT%H:%M:%S%z",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "formatter": "default",
            },
            "console_json": {
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "formatter": "json",
            },
        },
        "root": {"level": level, "handlers": [handler]},
        "loggers": loggers,
    }


def setup_logging():
    """
    Set up logging configuration based on the environment.
    """
    logging.config.dictConfig(build_logging_config(configs.ENVIRONMENT, configs.LOG_LEVEL))

    logger = logging.getLogger("intake")
    logger.info(f"Logging setup complete for {configs.ENVIRONMENT} environment with level {configs.LOG_LEVEL}")
