"""
Loguru helpers shared by the pipeline stages and provider clients
"""

import json
import sys
import time
from contextvars import ContextVar
from functools import wraps
from typing import Optional

from loguru import logger

# Id of the full pipeline run in progress, if any
run_id_var: ContextVar[Optional[str]] = ContextVar("run_id", default=None)


class StructuredLogger:
    """Loguru logger with pipeline context (run id, stage, country, ...) bound"""

    @staticmethod
    def bind(**context):
        context = {"run_id": run_id_var.get(), **context}
        return logger.bind(**{k: v for k, v in context.items() if v is not None})


def log_execution_time(stage: str):
    """Time a stage entry point ``method(self, country_code, ...)``.

    The outcome is logged with ``stage`` and the country bound; failures are
    logged and re-raised.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(self, country_code: str, *args, **kwargs):
            log = StructuredLogger.bind(stage=stage, country=country_code.upper())
            start = time.monotonic()
            try:
                result = await func(self, country_code, *args, **kwargs)
            except Exception as e:
                log.error(
                    f"{stage} failed after {time.monotonic() - start:.1f}s: "
                    f"{type(e).__name__}: {e}"
                )
                raise
            log.info(f"{stage} finished in {time.monotonic() - start:.1f}s")
            return result

        return wrapper

    return decorator


def log_http_request(
    provider: str,
    method: str,
    url: str,
    status_code: int,
    duration: float,
):
    """Log one provider HTTP call; 4xx/5xx responses at ERROR"""
    log = StructuredLogger.bind(
        provider=provider, status_code=status_code, duration=round(duration, 3)
    )
    message = f"{provider} {method} {url[:200]} -> {status_code} ({duration:.2f}s)"
    if status_code >= 400:
        log.error(message)
    else:
        log.info(message)


def json_formatter(record) -> str:
    """One JSON object per line; bound context becomes top-level keys"""
    payload = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["name"],
        "line": record["line"],
        **record["extra"],
    }
    if record["exception"]:
        payload["exception"] = str(record["exception"].value)

    # loguru treats the returned string as a format template
    return json.dumps(payload, default=str).replace("{", "{{").replace("}", "}}") + "\n"


def setup_json_logging(level: str = "INFO"):
    """Replace the sinks with a JSON-lines sink on stdout (production)"""
    logger.remove()
    logger.add(sys.stdout, format=json_formatter, level=level)


__all__ = [
    "logger",
    "StructuredLogger",
    "log_execution_time",
    "log_http_request",
    "setup_json_logging",
    "run_id_var",
]
