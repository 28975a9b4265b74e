from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from payment_client.app.scheduler import TimerHandle

logger = logging.getLogger(__name__)


class PopupState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    MINIMIZED = "MINIMIZED"


def format_time(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


@dataclass(frozen=True)
class PopupView:
    state: PopupState
    transaction_id: Optional[int] = None
    ttl_seconds: int = 0
    time_label: str = "00:00"
    expired: bool = False
    input_enabled: bool = False
    digits: tuple = ()
    focus_index: int = 0
    can_resend: bool = False
    resend_in_flight: bool = False
    resend_cooldown_seconds: int = 0
    resend_hint: str = ""
    auto_close_seconds: int = 0


class PopupPresenter:
    """
    CLOSED / OPEN / MINIMIZED, plus the auto-close countdown that only runs
    while MINIMIZED with an expired OTP.
    """

    def __init__(self, scheduler, *, auto_close_seconds: int = 10, interval: float = 1.0,
                 on_auto_close: Optional[Callable[[], None]] = None) -> None:
        self._scheduler = scheduler
        self._auto_close_total = auto_close_seconds
        self._interval = interval
        self._on_auto_close = on_auto_close
        self.state = PopupState.CLOSED
        self.auto_close_remaining = 0
        self._ttl_expired = False
        self._auto_close: Optional[TimerHandle] = None

    @property
    def is_open(self) -> bool:
        return self.state is not PopupState.CLOSED

    def open(self) -> None:
        self.state = PopupState.OPEN
        self._cancel_auto_close()

    def minimize(self) -> None:
        if self.state is not PopupState.OPEN:
            return
        self.state = PopupState.MINIMIZED
        self._maybe_start_auto_close()

    def maximize(self) -> None:
        if self.state is not PopupState.MINIMIZED:
            return
        self.state = PopupState.OPEN
        self._cancel_auto_close()

    def close(self) -> None:
        self.state = PopupState.CLOSED
        self._ttl_expired = False
        self._cancel_auto_close()

    def ttl_changed(self, ttl_seconds: int) -> None:
        self._ttl_expired = ttl_seconds <= 0
        if self._ttl_expired:
            self._maybe_start_auto_close()
        else:
            self._cancel_auto_close()

    def _maybe_start_auto_close(self) -> None:
        if self.state is not PopupState.MINIMIZED or not self._ttl_expired:
            return
        if self._auto_close is not None:
            return
        self.auto_close_remaining = self._auto_close_total
        self._auto_close = self._scheduler.call_every(self._interval, self._tick, name="popup_auto_close")
        logger.info("popup auto-close armed seconds=%s", self._auto_close_total)

    def _cancel_auto_close(self) -> None:
        if self._auto_close is not None:
            self._auto_close.cancel()
            self._auto_close = None
        self.auto_close_remaining = 0

    def _tick(self) -> None:
        self.auto_close_remaining = max(0, self.auto_close_remaining - 1)
        if self.auto_close_remaining > 0:
            return
        self._cancel_auto_close()
        logger.info("popup auto-closing expired minimized otp")
        if self._on_auto_close is not None:
            self._on_auto_close()
        else:
            self.close()

    def view(self, session=None, *, focus_index: int = 0,
             resend_max: int = 3, resend_spacing: int = 30) -> PopupView:
        if not self.is_open or session is None:
            return PopupView(state=PopupState.CLOSED)
        ttl = session.ttl_seconds
        hint = (f"You can resend OTP up to {resend_max} times. "
                f"Please wait at least {resend_spacing} seconds between resends.")
        if session.resend_remaining is not None:
            hint = f"{session.resend_remaining} resend(s) remaining."
        if session.resend_cooldown_seconds > 0:
            hint += f" Please wait {session.resend_cooldown_seconds}s before resending."
        digits: List[str] = list(session.entered_digits)
        return PopupView(
            state=self.state,
            transaction_id=session.transaction_id,
            ttl_seconds=ttl,
            time_label="OTP Expired" if ttl <= 0 and self.state is PopupState.MINIMIZED else format_time(ttl),
            expired=session.expired,
            input_enabled=ttl > 0,
            digits=tuple(digits),
            focus_index=focus_index,
            can_resend=session.resend_cooldown_seconds == 0 and not session.resend_in_flight,
            resend_in_flight=session.resend_in_flight,
            resend_cooldown_seconds=session.resend_cooldown_seconds,
            resend_hint=hint,
            auto_close_seconds=self.auto_close_remaining,
        )
