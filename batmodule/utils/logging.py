import contextvars
import json
import logging
from datetime import UTC, datetime

current_request_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default="-"
)


class StructuredFormatter(logging.Formatter):
    """JSON structured logging with the request correlation ID."""

    def format(self, record):
        log_data = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "request_id": current_request_id.get(),
            "msg": record.getMessage(),
            "module": record.module,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(level: str = "INFO") -> None:
    """Configure root and audit loggers."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Audit lines are already JSON
    audit = logging.getLogger("audit")
    audit.propagate = False
    audit.handlers.clear()
    audit_handler = logging.StreamHandler()
    audit_handler.setFormatter(logging.Formatter("%(message)s"))
    audit.addHandler(audit_handler)
    audit.setLevel(logging.INFO)


def audit_log(event: str, user_id: int | str | None, **kwargs) -> None:
    """Security audit record."""
    data = {
        "event": event,
        "user_id": user_id,
        "request_id": current_request_id.get(),
        "ts": datetime.now(UTC).isoformat(),
    }
    data.update(kwargs)
    logging.getLogger("audit").info(json.dumps(data, ensure_ascii=False, default=str))
