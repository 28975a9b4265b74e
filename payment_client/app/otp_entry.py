from __future__ import annotations

import logging
from typing import Callable, List

from payment_client.app.session import OtpSession

logger = logging.getLogger(__name__)


def digits_only(text: str) -> str:
    return "".join(ch for ch in (text or "") if "0" <= ch <= "9")


class OtpEntryController:
    """
    Slot buffer for the OTP code.

    ``on_complete`` fires once when the last empty slot gets filled, by typing
    or by paste. It fires again only after the buffer has been incomplete in
    between (a slot emptied, or ``clear()``).
    """

    def __init__(self, session: OtpSession, *,
                 on_complete: Callable[[str], None],
                 is_enabled: Callable[[], bool]) -> None:
        self.session = session
        self._on_complete = on_complete
        self._is_enabled = is_enabled
        self.focus_index = 0
        self._armed = True

    @property
    def length(self) -> int:
        return len(self.session.entered_digits)

    @property
    def digits(self) -> List[str]:
        return list(self.session.entered_digits)

    @property
    def value(self) -> str:
        return "".join(self.session.entered_digits)

    @property
    def enabled(self) -> bool:
        return not self.session.closed and self._is_enabled()

    def type_digit(self, index: int, text: str) -> None:
        if not self.enabled or not 0 <= index < self.length:
            return
        typed = digits_only(text)
        if not typed:
            logger.debug("otp_entry ignored non-digit input slot=%s", index)
            return
        # maxLength=1: the newest keystroke wins
        self.session.entered_digits[index] = typed[-1]
        if index < self.length - 1:
            self.focus_index = index + 1
        self._check_complete()

    def backspace(self, index: int) -> None:
        if not self.enabled or not 0 <= index < self.length:
            return
        if self.session.entered_digits[index]:
            self.session.entered_digits[index] = ""
            self.focus_index = index
        elif index > 0:
            self.focus_index = index - 1
        self._check_complete()

    def paste(self, text: str) -> bool:
        """Fill slots from the clipboard. Returns True: the default paste is suppressed."""
        if not self.enabled:
            return True
        pasted = digits_only(text)[: self.length]
        slots = [""] * self.length
        for i, ch in enumerate(pasted):
            slots[i] = ch
        self.session.entered_digits = slots
        self.focus_index = min(len(pasted), self.length - 1)
        self._check_complete()
        return True

    def clear(self) -> None:
        self.session.clear_digits()
        self.focus_index = 0
        self._armed = True

    def rearm(self) -> None:
        """Let the current buffer submit again on the next edit, even if it stays full."""
        self._armed = True

    def _check_complete(self) -> None:
        code = self.value
        if len(code) < self.length:
            self._armed = True
            return
        if not self._armed:
            return
        self._armed = False
        logger.info("otp_entry complete transaction_id=%s", self.session.transaction_id)
        self._on_complete(code)
