"""
Structured logging with correlation ids and a dedicated audit trail.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from loanquote.core.config import settings


class JsonFormatter(logging.Formatter):
    """Renders each record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            payload["correlation_id"] = correlation_id
        audit = getattr(record, "audit", None)
        if audit:
            payload["audit"] = audit
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _build_logger(name: str) -> logging.Logger:
    instance = logging.getLogger(name)
    if not instance.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        instance.addHandler(handler)
    instance.setLevel(settings.LOG_LEVEL.upper())
    instance.propagate = False
    return instance


logger = _build_logger(settings.APP_NAME.lower())
_audit_logger = _build_logger(f"{settings.APP_NAME.lower()}.audit")
_audit_logger.setLevel(logging.INFO)


def get_logger_with_correlation(correlation_id: Optional[str]) -> logging.LoggerAdapter:
    """Returns a logger adapter that stamps every record with the correlation id."""
    return logging.LoggerAdapter(logger, {"correlation_id": correlation_id})


def audit_log(action: str, user: str, resource: str, details: Optional[Dict[str, Any]] = None) -> None:
    """Emits an audit record. Audit entries are never filtered below INFO."""
    _audit_logger.info(
        f"AUDIT action={action} user={user} resource={resource}",
        extra={"audit": {"action": action, "user": user, "resource": resource, "details": details or {}}}
    )
