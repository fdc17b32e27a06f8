"""Structured logging with request correlation.

Provides:
- JSON structured output for log aggregation
- Request correlation IDs (X-Request-ID / X-Correlation-ID)
- Login service context propagation
- Sensitive data masking (tokens, secrets, authorization codes)
- Timing of async operations (log_operation)

Usage:
    from accounts_oauth.core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Token exchange started", service="fiware")
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Context variables for request-scoped data
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
login_service_var: ContextVar[str | None] = ContextVar("login_service", default=None)

# Sensitive fields to mask in logs
SENSITIVE_FIELDS = {
    "password", "secret", "token", "credential", "authorization",
    "access_token", "refresh_token", "client_secret", "authorization_code",
    "cookie", "session", "state",
}

# Query parameters that carry credentials
SENSITIVE_QUERY_PARAMS = {"code", "state", "access_token"}


def mask_sensitive(data: dict[str, Any]) -> dict[str, Any]:
    """Mask sensitive values in a dictionary."""
    masked = {}
    for key, value in data.items():
        key_lower = key.lower()
        if any(s in key_lower for s in SENSITIVE_FIELDS):
            if isinstance(value, str) and len(value) > 8:
                masked[key] = f"{value[:4]}...{value[-4:]}"
            else:
                masked[key] = "[REDACTED]"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive(value)
        else:
            masked[key] = value
    return masked


def mask_query(params: dict[str, str]) -> str:
    """Render query parameters with credential values hidden."""
    return "&".join(
        f"{k}={'[REDACTED]' if k in SENSITIVE_QUERY_PARAMS else v}"
        for k, v in params.items()
    )


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if request_id := request_id_var.get():
            log_entry["request_id"] = request_id
        if correlation_id := correlation_id_var.get():
            log_entry["correlation_id"] = correlation_id
        if login_service := login_service_var.get():
            log_entry["login_service"] = login_service

        if hasattr(record, "extra_fields"):
            log_entry.update(mask_sensitive(record.extra_fields))

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Source location for warnings and errors
        if record.levelno >= logging.WARNING:
            log_entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_entry, default=str)


class HumanFormatter(logging.Formatter):
    """One-line log output for development, with masked fields appended."""

    def format(self, record: logging.LogRecord) -> str:
        context = []
        if request_id := request_id_var.get():
            context.append(f"req={request_id[:8]}")
        if login_service := login_service_var.get():
            context.append(f"svc={login_service}")

        parts = [
            datetime.now().strftime("%H:%M:%S"),
            record.levelname,
            f"[{record.name}]",
        ]
        if context:
            parts.append(f"[{' '.join(context)}]")
        parts.append(record.getMessage())

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            masked = mask_sensitive(extra_fields)
            parts.append("| " + " ".join(f"{k}={v}" for k, v in masked.items()))

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """Logger that accepts structured keyword fields."""

    def _log_with_extra(
        self,
        level: int,
        msg: str,
        args: tuple,
        exc_info: Any = None,
        **kwargs,
    ):
        extra = {"extra_fields": kwargs} if kwargs else {}
        super()._log(level, msg, args, exc_info=exc_info, extra=extra)

    def info(self, msg: str, *args, **kwargs):
        if self.isEnabledFor(logging.INFO):
            self._log_with_extra(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        if self.isEnabledFor(logging.WARNING):
            self._log_with_extra(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args, exc_info: Any = None, **kwargs):
        if self.isEnabledFor(logging.ERROR):
            self._log_with_extra(logging.ERROR, msg, args, exc_info=exc_info, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module."""
    logging.setLoggerClass(StructuredLogger)
    logger = logging.getLogger(name)
    logging.setLoggerClass(logging.Logger)
    return logger


def setup_logging(json_output: bool = False, level: str = "INFO"):
    """Configure application logging.

    Args:
        json_output: Use JSON format (for production)
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanFormatter())

    root_logger.addHandler(handler)

    # httpx logs full URLs, which can carry access tokens
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging and correlation ID propagation."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )
        correlation_id = request.headers.get("X-Correlation-ID") or request_id

        request_id_token = request_id_var.set(request_id)
        correlation_id_token = correlation_id_var.set(correlation_id)

        start_time = time.monotonic()
        logger = get_logger("http")

        try:
            logger.info(
                "Request started",
                method=request.method,
                path=request.url.path,
                query=mask_query(dict(request.query_params)) if request.query_params else None,
                client_ip=request.client.host if request.client else None,
            )

            response = await call_next(request)

            duration_ms = (time.monotonic() - start_time) * 1000
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Correlation-ID"] = correlation_id
            return response

        except Exception as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                duration_ms=round(duration_ms, 2),
                exc_info=True,
            )
            raise

        finally:
            request_id_var.reset(request_id_token)
            correlation_id_var.reset(correlation_id_token)


def log_operation(operation: str):
    """Log the outcome and duration of a coroutine.

    Failures are logged and re-raised.
    """
    def decorator(func: Callable):
        logger = get_logger(func.__module__)

        @wraps(func)
        async def wrapper(*args, **kwargs):
            start = time.monotonic()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{operation} failed",
                    error=str(e),
                    duration_ms=round((time.monotonic() - start) * 1000, 2),
                )
                raise
            logger.info(
                f"{operation} completed",
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            return result

        return wrapper

    return decorator
