"""
Logging configuration for the stackwatch daemon
"""

import logging
import logging.config
from typing import Any, Dict


class SecretRedactionFilter(logging.Filter):
    """Filter that masks known secret values in log messages."""

    def __init__(self, secrets: tuple = ()):
        super().__init__()
        self.secrets = tuple(s for s in secrets if s)

    def filter(self, record: logging.LogRecord) -> bool:
        """Replace secret values with asterisks; never drops a record."""
        if not self.secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self.secrets:
            redacted = redacted.replace(secret, "****")
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def get_logging_config(level: str = "INFO", secrets: tuple = ()) -> Dict[str, Any]:
    """Get logging configuration with secret redaction."""
    level = level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "redact_secrets": {
                "()": SecretRedactionFilter,
                "secrets": secrets,
            }
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
                "filters": ["redact_secrets"]
            }
        },
        "loggers": {
            "stackwatch": {
                "handlers": ["default"],
                "level": level,
                "propagate": False
            },
            "httpx": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False
            }
        },
        "root": {
            "level": level,
            "handlers": ["default"]
        }
    }


def configure_logging(level: str = "INFO", secrets: tuple = ()) -> None:
    logging.config.dictConfig(get_logging_config(level, secrets))
