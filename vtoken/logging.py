import logging
import sys
import time

from pythonjsonlogger.json import JsonFormatter

SENSITIVE_FIELDS = ("code", "secret", "session_token")


class UTCJsonFormatter(JsonFormatter):
    converter = time.gmtime


class RedactSecretsFilter(logging.Filter):
    """Mask one-time codes and credentials passed through ``extra=``."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in SENSITIVE_FIELDS:
            if getattr(record, field, None) is not None:
                setattr(record, field, "***")
        return True


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    fmt = "%(asctime)s %(levelname)s %(name)s %(message)s"
    handler.setFormatter(UTCJsonFormatter(fmt))
    handler.addFilter(RedactSecretsFilter())
    root.addHandler(handler)

    logging.getLogger("httpx").setLevel("WARNING")
