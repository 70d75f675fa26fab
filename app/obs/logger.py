"""Structured JSON logging to stdout.

Only metadata is logged, never message bodies. Phone numbers are redacted
to their last four digits.
"""

from typing import Any, Dict
from datetime import datetime, timezone
import json

from app.obs.context import request_id_var, message_sid_var, sender_var

_PHONE_FIELDS = ("from", "from_number", "sender", "recipient", "phone_number")


def redact_phone(value: Any) -> Any:
    s = str(value) if value is not None else ""
    if not s:
        return s
    digits = [c for c in s if c.isdigit()]
    if len(digits) < 4:
        return "***"
    tail = "".join(digits[-4:])
    return f"***{tail}"


def log_event(event: str, **fields: Any) -> None:
    now = datetime.now(timezone.utc).isoformat()
    payload: Dict[str, Any] = {
        "ts": now,
        "level": fields.pop("level", "INFO"),
        "event": event,
        "request_id": request_id_var.get(),
        "message_sid": message_sid_var.get(),
    }
    if "sender" not in fields:
        payload["sender"] = redact_phone(sender_var.get())

    for k, v in fields.items():
        if k in _PHONE_FIELDS:
            payload[k] = redact_phone(v)
        elif k == "recipients" and isinstance(v, (list, tuple, set)):
            payload[k] = [redact_phone(r) for r in v]
        else:
            payload[k] = v

    try:
        print(json.dumps(payload, separators=(",", ":"), default=str))
    except Exception:
        # As a last resort, avoid crashing the app due to logging
        pass


def log_error(service: str, error: Any, **fields: Any) -> None:
    log_event("error", level="ERROR", service=service, error=str(error), **fields)
