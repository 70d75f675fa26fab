"""Request context helpers using ContextVars.

Carries identifiers that every log line of an inbound SMS should share:
the request id, Twilio's MessageSid and the (normalised) sender number.
"""

from contextvars import ContextVar
from typing import Optional


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
message_sid_var: ContextVar[Optional[str]] = ContextVar("message_sid", default=None)
sender_var: ContextVar[Optional[str]] = ContextVar("sender", default=None)


def bind_sender(sender: Optional[str], message_sid: Optional[str] = None) -> None:
    sender_var.set(sender)
    if message_sid is not None:
        message_sid_var.set(message_sid)


def clear_context() -> None:
    """Reset context variables to defaults."""
    request_id_var.set(None)
    message_sid_var.set(None)
    sender_var.set(None)
