import logging
import logging.handlers
import json
import os
from typing import Optional, Dict, Any
from fastapi import Request
from config import settings
import uuid
import traceback

# Context keys whose values never reach log output outside DEBUG
REDACTED_KEYS = {"code", "otp", "token", "session_token", "password"}
REDACTED = "[redacted]"


def redact(context: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {}
    for key, value in context.items():
        if key in REDACTED_KEYS:
            cleaned[key] = REDACTED
        elif isinstance(value, dict):
            cleaned[key] = redact(value)
        else:
            cleaned[key] = value
    return cleaned


class Logger:
    def __init__(self, log_file: Optional[str] = None, max_log_days: int = 7):
        """
        Initialize the logger with JSON formatting, dynamic log level and optional file rotation.
        """
        self.logger = logging.getLogger("ConcordLogger")
        self.logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
        self.logger.propagate = False

        # Remove existing handlers to avoid duplication
        self.logger.handlers.clear()

        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "action": "%(message)s",
                "user_id": "%(user_id)s",
                "user_email": "%(user_email)s",
                "correlation_id": "%(correlation_id)s",
                "context": "%(context)s"
            }, ensure_ascii=False)
        )

        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        self.logger.addHandler(stream_handler)

        if log_file:
            dirname = os.path.dirname(log_file)
            if dirname:
                os.makedirs(dirname, exist_ok=True)
            file_handler = logging.handlers.TimedRotatingFileHandler(
                filename=log_file,
                when="midnight",
                interval=1,
                backupCount=max_log_days,
                encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def log_action(
        self,
        action: str,
        level: str = "INFO",
        user=None,
        correlation_id: str = "",
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Log a user action with context and correlation ID.
        """
        user_id = user.id if user else "anonymous"
        user_email = user.email if user else "anonymous"
        context = context or {}
        if not settings.DEBUG:
            context = redact(context)
        context_str = json.dumps(context, ensure_ascii=False, default=str)

        self.logger.log(
            level=getattr(logging, level.upper(), logging.INFO),
            msg=action,
            extra={
                "user_id": user_id,
                "user_email": user_email,
                "correlation_id": correlation_id,
                "context": context_str
            }
        )

    async def log_request(
        self,
        request: Request,
        action: str,
        user=None,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Log an HTTP request and return the correlation ID it was logged under.
        """
        correlation_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
        context = dict(context or {})
        context.update({
            "method": request.method,
            "url": str(request.url),
            "client_ip": request.client.host if request.client else "unknown"
        })
        self.log_action(action, "INFO", user, correlation_id, context)
        return correlation_id

    def log_error(
        self,
        action: str,
        error: Exception,
        user=None,
        correlation_id: str = "",
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Log an error with stack trace and correlation ID.
        """
        context = dict(context or {})
        context["error"] = str(error)
        context["stack_trace"] = "".join(traceback.format_tb(error.__traceback__)) if error.__traceback__ else "N/A"
        self.log_action(action, "ERROR", user, correlation_id, context)

# Singleton logger instance
logger_instance = Logger(settings.LOG_FILE)

# Convenience functions for use in other modules
def log_action(action: str, user=None, correlation_id: str = "", context: Optional[Dict[str, Any]] = None, level: str = "INFO"):
    logger_instance.log_action(action, level, user, correlation_id, context)

async def log_request(request: Request, action: str, user=None, context: Optional[Dict[str, Any]] = None):
    return await logger_instance.log_request(request, action, user, context)

def log_error(action: str, error: Exception, user=None, correlation_id: str = "", context: Optional[Dict[str, Any]] = None):
    logger_instance.log_error(action, error, user, correlation_id, context)
