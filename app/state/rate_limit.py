"""Per-sender fixed window admission over the store's rate-window collection."""

from typing import Optional

from app.obs.logger import log_event
from app.obs.metrics import inc_counter
from app.state.store import RateWindow, StateStore


class RateLimiter:
    """Admit at most ``rate_cap`` commands per sender inside ``rate_window``.

    A window is restarted when the sender's last command is older than the
    window length. Admission is decided and recorded under the sender's lock,
    so two near-simultaneous events cannot both slip through.
    """

    def __init__(self, store: StateStore):
        self.store = store

    @property
    def window_seconds(self) -> float:
        return self.store.config.rate_window

    @property
    def max_commands(self) -> int:
        return self.store.config.rate_cap

    def check_and_consume(self, sender_id: str) -> bool:
        now = self.store.clock()
        window_seconds = self.window_seconds
        cap = self.max_commands

        def _consume(window: Optional[RateWindow]):
            if window is None or window.last_command_at < now - window_seconds:
                return RateWindow(id=sender_id, window_start=now, last_command_at=now, count=1), True
            if window.count >= cap:
                return window, False
            window.count += 1
            window.last_command_at = now
            return window, True

        admitted = self.store.rate_windows.update(sender_id, _consume)
        if not admitted:
            inc_counter("rate_limited_total")
            log_event("rate_limited", sender=sender_id)
        return admitted

    # Name used by the request layer
    admit = check_and_consume

    def mark_completed(self, sender_id: str) -> None:
        """Slide the sender's window forward after a successful cycle."""
        now = self.store.clock()

        def _touch(window: Optional[RateWindow]):
            if window is not None:
                window.last_command_at = now
            return window, None

        self.store.rate_windows.update(sender_id, _touch)
