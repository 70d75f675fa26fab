"""Simulated group chat over point-to-point SMS.

Every active sender is treated as a member of one shared group. A reply
triggered by one member is fanned out to all members, the sender included.
"""

import asyncio
from typing import List, Optional, Protocol

from app.obs.logger import log_event, log_error
from app.obs.metrics import inc_counter, record_timing
from app.state.store import StateStore
from app.types import BroadcastResult, GroupContext


class Transport(Protocol):
    async def deliver(self, recipient: str, text: str) -> bool: ...


class BroadcastEngine:
    def __init__(self, store: StateStore, transport: Transport):
        self.store = store
        self.transport = transport

    async def record_event_and_broadcast(
        self,
        sender: str,
        command_type: str,
        target: Optional[str],
        reply_text: str,
    ) -> BroadcastResult:
        """Register the sender, resolve the audience and deliver ``reply_text``.

        Individual delivery failures are tallied; only a failure while
        registering or resolving the audience fails the whole cycle. Never
        raises.
        """
        try:
            self.store.record_activity(sender, command_type)
            self.store.append_history(sender, command_type, target)
            audience = self.resolve_audience(sender)
        except Exception as e:
            log_error("GroupBroadcast", e)
            inc_counter("broadcasts_total", {"outcome": "error"})
            return BroadcastResult(success=False, error=str(e))

        result = await self.broadcast(sender, reply_text, audience)
        result.group_context = self.group_context(sender, audience)
        return result

    def resolve_audience(self, sender: str) -> List[str]:
        others = sorted(self.store.list_active() - {sender})
        if not others:
            return [sender]
        return others + [sender]

    async def broadcast(self, sender: str, text: str, audience: List[str]) -> BroadcastResult:
        loop = asyncio.get_running_loop()
        start = loop.time()
        results = await asyncio.gather(
            *[self.transport.deliver(recipient, text) for recipient in audience],
            return_exceptions=True,
        )
        record_timing("broadcast_latency_ms", (loop.time() - start) * 1000.0)

        failed: List[str] = []
        for recipient, outcome in zip(audience, results):
            if isinstance(outcome, BaseException):
                failed.append(recipient)
                log_event(
                    "delivery_failed",
                    level="WARNING",
                    service="twilio",
                    recipient=recipient,
                    error=str(outcome) or type(outcome).__name__,
                )
            elif not outcome:
                failed.append(recipient)
                log_event("delivery_failed", level="WARNING", service="twilio", recipient=recipient)

        success_count = len(audience) - len(failed)
        success = success_count > 0
        inc_counter("broadcasts_total", {"outcome": "success" if success else "failed"})
        inc_counter("deliveries_total", {"outcome": "success"}, amount=success_count)
        if failed:
            inc_counter("deliveries_total", {"outcome": "failed"}, amount=len(failed))
        log_event(
            "group_broadcast",
            sender=sender,
            audience=len(audience),
            delivered=success_count,
            failed=len(failed),
        )
        return BroadcastResult(
            success=success,
            broadcast_count=success_count,
            recipients=list(audience),
            failed=failed,
        )

    def group_context(self, sender: str, audience: List[str]) -> GroupContext:
        return GroupContext(
            sender=sender,
            active_members=len(self.store.list_active()),
            recent_senders=len(self.store.recent_senders()),
            is_group_chat=len(audience) > 1,
            group_size=len(audience),
        )

    # Membership helpers

    def is_member(self, sender: str) -> bool:
        return self.store.is_active(sender)

    def active_members(self) -> List[str]:
        return sorted(self.store.list_active())

    def remove_member(self, sender: str) -> None:
        self.store.remove(sender)

    def cleanup_inactive_members(self) -> int:
        removed = self.store.evict_inactive()
        if removed:
            log_event("cleanup", type="group-members", count=removed)
        return removed

    def recent_activity(self) -> List[dict]:
        """Members with a recorded command, most recently active first."""
        records = [rec for rec in self.store.active_records() if rec.last_command]
        records.sort(key=lambda rec: rec.last_active_at, reverse=True)
        return [
            {
                "sender": rec.id,
                "last_command": rec.last_command,
                "last_active_at": rec.last_active_at,
                "message_count": rec.message_count,
            }
            for rec in records
        ]

    def group_stats(self) -> dict:
        stats = self.store.stats()
        return {
            "active_members": len(self.store.list_active()),
            "total_active_users": stats["active_users"],
            "conversation_history": stats["conversation_history"],
            "recent_activity": self.recent_activity(),
        }
