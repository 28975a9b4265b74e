from __future__ import annotations

import logging
from typing import Callable, Optional

from payment_client.app.session import OtpSession

logger = logging.getLogger(__name__)

OTP_TIMER = "otp_ttl"
COOLDOWN_TIMER = "resend_cooldown"


class CountdownEngine:
    """
    Two independent one-second tickers bound to one OtpSession:
    OTP validity (``ttl_seconds``) and resend cooldown (``resend_cooldown_seconds``).

    Handles live on the session, so ``session.close()`` stops both.
    """

    def __init__(self, scheduler, session: OtpSession, *,
                 interval: float = 1.0,
                 on_ttl_change: Optional[Callable[[int], None]] = None) -> None:
        self._scheduler = scheduler
        self.session = session
        self._interval = interval
        self._on_ttl_change = on_ttl_change

    @property
    def ttl_seconds(self) -> int:
        return self.session.ttl_seconds

    @property
    def resend_cooldown_seconds(self) -> int:
        return self.session.resend_cooldown_seconds

    @property
    def input_enabled(self) -> bool:
        return self.session.ttl_seconds > 0

    def restart_otp(self, ttl_seconds: int) -> None:
        """(Re)issue an OTP: reset TTL and start ticking if there is time left."""
        self.session.ttl_seconds = max(0, int(ttl_seconds))
        handle = None
        if self.session.ttl_seconds > 0:
            handle = self._scheduler.call_every(self._interval, self._tick_ttl, name=OTP_TIMER)
        self.session.replace_timer(OTP_TIMER, handle)
        self._notify(self._on_ttl_change, self.session.ttl_seconds)

    def start_cooldown(self, seconds: int) -> None:
        self.session.resend_cooldown_seconds = max(0, int(seconds))
        handle = None
        if self.session.resend_cooldown_seconds > 0:
            handle = self._scheduler.call_every(self._interval, self._tick_cooldown, name=COOLDOWN_TIMER)
        self.session.replace_timer(COOLDOWN_TIMER, handle)

    def _tick_ttl(self) -> None:
        if self.session.closed:
            return
        self.session.ttl_seconds = max(0, self.session.ttl_seconds - 1)
        if self.session.ttl_seconds == 0:
            self.session.replace_timer(OTP_TIMER, None)
            logger.info("countdown otp expired transaction_id=%s", self.session.transaction_id)
        self._notify(self._on_ttl_change, self.session.ttl_seconds)

    def _tick_cooldown(self) -> None:
        if self.session.closed:
            return
        self.session.resend_cooldown_seconds = max(0, self.session.resend_cooldown_seconds - 1)
        if self.session.resend_cooldown_seconds == 0:
            self.session.replace_timer(COOLDOWN_TIMER, None)

    @staticmethod
    def _notify(callback: Optional[Callable[[int], None]], value: int) -> None:
        if callback is not None:
            callback(value)
