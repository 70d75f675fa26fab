"""
Inbound SMS pipeline.

Rate gate -> parse -> reply (cached or generated, bounded by a timeout) ->
group broadcast -> rate window update. Every outcome is a (status, body)
pair for the webhook; user-facing fallbacks are sent from here.
"""

from typing import Callable, Optional, Tuple

from app.config import ERROR_MESSAGES, StoreConfig, settings
from app.group.broadcast import BroadcastEngine, Transport
from app.llm.replies import ReplyGenerator
from app.obs.context import bind_sender
from app.obs.logger import log_event, log_error
from app.obs.metrics import inc_counter
from app.parse.commands import parse_command
from app.state.rate_limit import RateLimiter
from app.state.response_cache import ResponseCache
from app.state.store import StateStore
from app.utils.twilio import SmsTransport, format_phone_number


class SmsHandler:
    def __init__(
        self,
        store: StateStore,
        rate_limiter: RateLimiter,
        cache: ResponseCache,
        generator: ReplyGenerator,
        engine: BroadcastEngine,
        transport: Transport,
    ):
        self.store = store
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.generator = generator
        self.engine = engine
        self.transport = transport

    async def handle(self, from_number: str, body: str, message_sid: Optional[str] = None) -> Tuple[int, str]:
        sender = format_phone_number(from_number)
        if not sender:
            log_error("SmsHandler", "Invalid phone number format", from_number=from_number)
            return 400, "Invalid phone number"
        bind_sender(sender, message_sid)

        if not self.rate_limiter.admit(sender):
            await self.notify(sender, ERROR_MESSAGES["RATE_LIMIT"])
            return 200, "Rate limited"

        parsed = parse_command(body)
        log_event("sms_received", command=parsed.type or "unknown", target=parsed.target)
        inc_counter("sms_received_total", {"command": parsed.type or "unknown"})

        if not body.strip():
            await self.notify(sender, ERROR_MESSAGES["EMPTY_MESSAGE"])
            return 200, "Empty message handled"

        if not parsed.matched:
            await self.notify(sender, ERROR_MESSAGES["UNKNOWN_COMMAND"])
            return 200, "Unknown command handled"

        reply = await self.generator.generate_with_timeout(parsed.type, parsed.target, sender)

        result = await self.engine.record_event_and_broadcast(sender, parsed.type, parsed.target, reply)
        if not result.success:
            log_error(
                "SmsHandler",
                result.error or "no recipient received the broadcast",
                recipients=result.recipients,
            )
            await self.notify(sender, ERROR_MESSAGES["API_FAILURE"])
            return 500, "Internal server error"

        self.rate_limiter.mark_completed(sender)
        log_event(
            "sms_handled",
            command=parsed.type,
            broadcast_count=result.broadcast_count,
            is_group_chat=result.group_context.is_group_chat if result.group_context else False,
        )
        return 200, "OK"

    async def notify(self, recipient: str, text: str) -> bool:
        try:
            return await self.transport.deliver(recipient, text)
        except Exception as e:
            log_error("Twilio", e, recipient=recipient)
            return False


def build_handler(
    config: Optional[StoreConfig] = None,
    transport: Optional[Transport] = None,
    llm=None,
    clock: Optional[Callable[[], float]] = None,
) -> SmsHandler:
    """Wire one isolated set of store, policies and engine."""
    config = config or StoreConfig.from_settings(settings)
    store = StateStore(config, clock=clock) if clock else StateStore(config)
    transport = transport or SmsTransport()
    cache = ResponseCache(store)
    return SmsHandler(
        store=store,
        rate_limiter=RateLimiter(store),
        cache=cache,
        generator=ReplyGenerator(store, cache, llm=llm),
        engine=BroadcastEngine(store, transport),
        transport=transport,
    )
