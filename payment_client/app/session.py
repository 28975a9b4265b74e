from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from payment_client.app.scheduler import TimerHandle
from payment_client.app.schemas import Transaction

logger = logging.getLogger(__name__)


class TransactionSession:
    """
    Local mirror of the single in-flight payment transaction.

    Only ``OtpWidget.end_transaction`` calls ``clear()``; it closes the
    OtpSession and the popup in the same synchronous step.
    """

    def __init__(self) -> None:
        self._current: Optional[Transaction] = None
        # Scheduler clock reading at which the last issued OTP stops being valid
        self.otp_expires_at: Optional[float] = None

    def current(self) -> Optional[Transaction]:
        return self._current

    def set_active(self, tx: Transaction) -> None:
        if self._current is not None and self._current.id != tx.id:
            logger.info("transaction_session replaced old_id=%s new_id=%s", self._current.id, tx.id)
            self.otp_expires_at = None
        self._current = tx

    def clear(self) -> None:
        if self._current is not None:
            logger.info("transaction_session cleared transaction_id=%s", self._current.id)
        self._current = None
        self.otp_expires_at = None

    def holds(self, transaction_id: int) -> bool:
        return self._current is not None and self._current.id == transaction_id


def _empty_slots(length: int) -> List[str]:
    return [""] * length


@dataclass
class OtpSession:
    """Client-side state of one open OTP challenge."""

    transaction_id: int
    ttl_seconds: int
    otp_length: int = 6
    resend_cooldown_seconds: int = 0
    entered_digits: List[str] = field(default_factory=list)
    resend_count: int = 0
    resend_remaining: Optional[int] = None
    resend_in_flight: bool = False
    submit_in_flight: bool = False
    # Code completed while a confirm was outstanding
    queued_code: Optional[str] = None
    closed: bool = False
    timers: Dict[str, TimerHandle] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.ttl_seconds = max(0, int(self.ttl_seconds))
        if not self.entered_digits:
            self.entered_digits = _empty_slots(self.otp_length)

    @property
    def expired(self) -> bool:
        return self.ttl_seconds <= 0

    def clear_digits(self) -> None:
        self.entered_digits = _empty_slots(self.otp_length)

    def replace_timer(self, name: str, handle: Optional[TimerHandle]) -> None:
        old = self.timers.pop(name, None)
        if old is not None:
            old.cancel()
        if handle is not None:
            if self.closed:
                handle.cancel()
                return
            self.timers[name] = handle

    def close(self) -> None:
        """Cancel every timer owned by this session; late responses check ``closed``."""
        self.closed = True
        for handle in self.timers.values():
            handle.cancel()
        self.timers.clear()
