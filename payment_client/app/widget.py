from __future__ import annotations

import datetime as dt
import logging
from typing import Awaitable, Callable, Optional

from libs.http import HttpError
from payment_client.app.clients.payment_api import PaymentApiClient, extract_active_transaction_id
from payment_client.app.countdown import CountdownEngine
from payment_client.app.notifier import Notifier
from payment_client.app.otp_entry import OtpEntryController
from payment_client.app.popup import PopupPresenter, PopupState, PopupView
from payment_client.app.reconciler import ReconciliationPoller, decide, find_transaction
from payment_client.app.schemas import ResendResponse, Transaction, TransactionStatus, seconds_since
from payment_client.app.session import OtpSession, TransactionSession
from payment_client.app.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

ENDED_NOTICE = "The pending transaction has expired or failed. You can now create a new transaction."


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _error_text(exc: Exception, default: str) -> str:
    """Server message for an HttpError; malformed replies get ``default``."""
    if isinstance(exc, HttpError) and exc.detail:
        return exc.detail
    return default


class OtpWidget:
    """
    Owns the Transaction Session, the live OtpSession and the components that
    act on them. All methods run on the scheduler's loop; async methods apply
    their results only if the OtpSession they started from is still live.
    """

    def __init__(self, api: PaymentApiClient, scheduler, *,
                 notifier: Optional[Notifier] = None,
                 config: Optional[Settings] = None,
                 wall_clock: Callable[[], dt.datetime] = _utcnow,
                 on_payment_completed: Optional[Callable[[int], Awaitable[None]]] = None) -> None:
        self.api = api
        self.scheduler = scheduler
        self.notifier = notifier or Notifier()
        self.config = config or default_settings
        self._wall_clock = wall_clock
        self._on_payment_completed = on_payment_completed

        self.transactions = TransactionSession()
        self.popup = PopupPresenter(
            scheduler,
            auto_close_seconds=self.config.AUTO_CLOSE_SEC,
            interval=self.config.TICK_INTERVAL_SEC,
            on_auto_close=self.close,
        )
        self.poller = ReconciliationPoller(
            scheduler, api, self.transactions,
            on_finding=self.apply_server_status,
            interval=self.config.POLL_INTERVAL_SEC,
        )
        self.otp_session: Optional[OtpSession] = None
        self.countdown: Optional[CountdownEngine] = None
        self.entry: Optional[OtpEntryController] = None
        self._torn_down = False

    # ---- projections ----
    @property
    def state(self) -> PopupState:
        return self.popup.state

    def view(self) -> PopupView:
        return self.popup.view(
            self.otp_session,
            focus_index=self.entry.focus_index if self.entry else 0,
            resend_max=self.config.RESEND_MAX,
            resend_spacing=self.config.RESEND_COOLDOWN_SEC,
        )

    def _is_live(self, session: Optional[OtpSession]) -> bool:
        return session is not None and session is self.otp_session and not session.closed

    # ---- session lifecycle ----
    def _open_session(self, transaction_id: int, ttl_seconds: int) -> OtpSession:
        self._close_session()
        session = OtpSession(transaction_id=transaction_id, ttl_seconds=ttl_seconds,
                             otp_length=self.config.OTP_LENGTH)
        self.otp_session = session
        self.countdown = CountdownEngine(
            self.scheduler, session,
            interval=self.config.TICK_INTERVAL_SEC,
            on_ttl_change=self.popup.ttl_changed,
        )
        self.entry = OtpEntryController(
            session,
            on_complete=self._on_code_complete,
            is_enabled=lambda: session.ttl_seconds > 0,
        )
        self.popup.open()
        self._issue_otp(session, ttl_seconds)
        self.poller.start()
        logger.info("otp_widget opened transaction_id=%s ttl=%s", transaction_id, session.ttl_seconds)
        return session

    def _issue_otp(self, session: OtpSession, ttl_seconds: int) -> None:
        self.transactions.otp_expires_at = self.scheduler.time() + max(0, int(ttl_seconds))
        if self.entry is not None:
            self.entry.clear()
        self.countdown.restart_otp(ttl_seconds)

    def _close_session(self) -> None:
        if self.otp_session is not None:
            self.otp_session.close()
            logger.info("otp_widget closed transaction_id=%s", self.otp_session.transaction_id)
        self.otp_session = None
        self.countdown = None
        self.entry = None
        self.popup.close()
        self.poller.stop()

    def _remaining_ttl(self) -> int:
        if self.transactions.otp_expires_at is None:
            return self.config.OTP_DEFAULT_TTL_SEC
        return max(0, int(round(self.transactions.otp_expires_at - self.scheduler.time())))

    def close(self) -> None:
        """Close the popup. The transaction itself stays held until the server ends it."""
        self._close_session()

    def minimize(self) -> None:
        self.popup.minimize()

    def maximize(self) -> None:
        self.popup.maximize()

    def end_transaction(self, notice: Optional[str] = None) -> None:
        """Clear transaction, OtpSession and popup together."""
        self.transactions.clear()
        self._close_session()
        if notice:
            self.notifier.error(notice)

    def apply_server_status(self, transaction_id: int, status: Optional[str]) -> None:
        """Reconciliation entry point for both the poller and pushed events."""
        if not self.transactions.holds(transaction_id):
            return
        decision = decide(status)
        if decision.clear:
            self.end_transaction(ENDED_NOTICE if decision.notify else None)

    async def teardown(self) -> None:
        self._torn_down = True
        self._close_session()

    # ---- initiate / resume ----
    async def initiate(self, student_id: str) -> None:
        held = self.transactions.current()
        if held is not None:
            # Never a second initiation while one is active: re-send for the held one
            await self._reopen_with_resend(held.id)
            return

        try:
            resp = await self.api.initiate(student_id)
        except (HttpError, ValueError) as exc:
            existing_id = extract_active_transaction_id(exc)
            if existing_id is None:
                self.notifier.error(_error_text(exc, "Failed to initiate transaction"))
                return
            if self._torn_down:
                return
            await self._restore_existing(existing_id)
            return

        if self._torn_down:
            logger.info("otp_widget discarded late initiate transaction_id=%s", resp.transaction_id)
            return
        self.transactions.set_active(Transaction(
            id=resp.transaction_id, status=TransactionStatus.PENDING_OTP.value, student_id=student_id,
        ))
        self._open_session(resp.transaction_id, resp.ttl_seconds)
        self.notifier.success(f"OTP sent to your email. Expires in {resp.ttl_seconds}s")

    async def _restore_existing(self, transaction_id: int) -> None:
        self.transactions.set_active(Transaction(id=transaction_id, status=TransactionStatus.PENDING_OTP.value))
        session = self._open_session(transaction_id, self.config.OTP_DEFAULT_TTL_SEC)
        self.notifier.error("You have a pending OTP transaction. Please complete the current transaction first.")
        try:
            resp = await self.api.resend_otp(transaction_id)
        except (HttpError, ValueError) as exc:
            # Popup stays open; the user can resend by hand
            logger.info("otp_widget auto-resend failed transaction_id=%s err=%s", transaction_id, exc)
            return
        if not self._is_live(session):
            return
        self._apply_resend(session, resp)
        self.notifier.success(f"OTP has been resent to your email. Expires in {resp.ttl_seconds}s")

    async def _reopen_with_resend(self, transaction_id: int) -> None:
        try:
            resp = await self.api.resend_otp(transaction_id)
        except (HttpError, ValueError) as exc:
            self.notifier.error(_error_text(exc, "Failed to resend OTP"))
            if self.transactions.holds(transaction_id) and not self._torn_down:
                self._reopen(transaction_id, self._remaining_ttl())
            return
        if not self.transactions.holds(transaction_id) or self._torn_down:
            return
        session = self._reopen(transaction_id, resp.ttl_seconds)
        self._apply_resend(session, resp)
        self.notifier.success(f"New OTP sent to your email. Expires in {resp.ttl_seconds}s")

    def _reopen(self, transaction_id: int, ttl_seconds: int) -> OtpSession:
        if self._is_live(self.otp_session) and self.otp_session.transaction_id == transaction_id:
            self.popup.open()
            return self.otp_session
        return self._open_session(transaction_id, ttl_seconds)

    async def resume(self, pending_transaction_id: int) -> None:
        """Login reported a pending transaction: reopen it with the time it has left."""
        ttl = self.config.OTP_DEFAULT_TTL_SEC
        tx = Transaction(id=pending_transaction_id, status=TransactionStatus.PENDING_OTP.value)
        try:
            record = find_transaction(await self.api.history(), pending_transaction_id)
        except (HttpError, ValueError) as exc:
            logger.info("otp_widget resume could not load transaction transaction_id=%s err=%s",
                        pending_transaction_id, exc)
            record = None
        if record is not None:
            tx = record
            if record.created_at is not None:
                elapsed = seconds_since(record.created_at, self._wall_clock())
                ttl = max(0, self.config.OTP_DEFAULT_TTL_SEC - elapsed)
        if self._torn_down:
            return
        self.transactions.set_active(tx)
        self._open_session(pending_transaction_id, ttl)
        self.notifier.success("Login successful. You have a pending OTP transaction.")

    # ---- resend ----
    async def resend(self) -> bool:
        """User pressed resend. Returns True when a new OTP was issued."""
        session = self.otp_session
        if not self._is_live(session):
            return False
        if session.resend_cooldown_seconds > 0 or session.resend_in_flight:
            logger.debug("otp_widget resend rejected cooldown=%s in_flight=%s",
                         session.resend_cooldown_seconds, session.resend_in_flight)
            return False

        session.resend_in_flight = True
        try:
            resp = await self.api.resend_otp(session.transaction_id)
        except (HttpError, ValueError) as exc:
            if self._is_live(session):
                self.notifier.error(_error_text(exc, "Failed to resend OTP"))
            return False
        finally:
            session.resend_in_flight = False

        if not self._is_live(session):
            logger.info("otp_widget discarded late resend transaction_id=%s", session.transaction_id)
            return False
        self._apply_resend(session, resp)
        self.notifier.success(f"New OTP sent to your email. Expires in {resp.ttl_seconds}s")
        return True

    def _apply_resend(self, session: OtpSession, resp: ResendResponse) -> None:
        self._issue_otp(session, resp.ttl_seconds)
        self.countdown.start_cooldown(self.config.RESEND_COOLDOWN_SEC)
        if resp.resend_count is not None:
            session.resend_count = resp.resend_count
        else:
            session.resend_count += 1
        session.resend_remaining = resp.resend_remaining
        logger.info("otp_widget resend ok transaction_id=%s ttl=%s resend_count=%s",
                    session.transaction_id, resp.ttl_seconds, session.resend_count)

    # ---- confirm ----
    def _on_code_complete(self, code: str) -> None:
        self.scheduler.spawn(self.confirm(code), name="otp_confirm")

    async def confirm(self, otp: str) -> bool:
        session = self.otp_session
        if not self._is_live(session):
            return False
        if session.submit_in_flight:
            # Submitted once the outstanding confirm settles, if that one fails
            session.queued_code = otp
            logger.debug("otp_widget submit queued, one already in flight transaction_id=%s",
                         session.transaction_id)
            return False

        session.submit_in_flight = True
        try:
            resp = await self.api.confirm(session.transaction_id, otp)
        except (HttpError, ValueError) as exc:
            resp = None
            if self._is_live(session):
                self.notifier.error(_error_text(exc, "Invalid OTP"))
        finally:
            session.submit_in_flight = False

        if resp is None:
            if self._is_live(session):
                self._after_failed_submit(session, otp)
            return False
        if not self._is_live(session):
            logger.info("otp_widget discarded late confirm transaction_id=%s", session.transaction_id)
            return False
        transaction_id = session.transaction_id
        self.notifier.success(resp.message or "Payment successful")
        self.end_transaction()
        if self._on_payment_completed is not None:
            await self._on_payment_completed(transaction_id)
        return True

    def _after_failed_submit(self, session: OtpSession, failed_code: str) -> None:
        queued, session.queued_code = session.queued_code, None
        if queued and queued != failed_code:
            self.scheduler.spawn(self.confirm(queued), name="otp_confirm")
        elif self.entry is not None:
            self.entry.rearm()
