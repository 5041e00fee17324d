"""
Structured JSON logger.

Usage:
    from mindecho.utils.logging import logger
    logger.warning("face branch failed", extra={"modality": "face", "user_id": uid})

Keys listed in _CONTEXT_KEYS are lifted from `extra` into the JSON line.
"""
import logging
import sys
import json

_CONTEXT_KEYS = ("user_id", "connection_id", "modality")


class _JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> logging.Logger:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JSONFormatter())

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)

    # httpx logs every request at INFO; one line per Eden call is noise
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("mindecho")


logger = setup_logging()
