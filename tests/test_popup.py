"""
Tests for the popup state machine and its auto-close countdown.
"""

import pytest

from payment_client.app.popup import PopupPresenter, PopupState, format_time
from payment_client.app.session import OtpSession


@pytest.fixture
def closed_calls():
    return []


@pytest.fixture
def popup(scheduler, closed_calls):
    presenter = PopupPresenter(scheduler, auto_close_seconds=10)

    def _on_auto_close():
        closed_calls.append(True)
        presenter.close()

    presenter._on_auto_close = _on_auto_close
    return presenter


def _minimized_expired(popup):
    popup.open()
    popup.ttl_changed(0)
    popup.minimize()


class TestTransitions:
    """Tests for CLOSED / OPEN / MINIMIZED."""

    def test_open_minimize_maximize_close(self, popup):
        assert popup.state is PopupState.CLOSED
        popup.open()
        assert popup.state is PopupState.OPEN
        popup.minimize()
        assert popup.state is PopupState.MINIMIZED
        popup.maximize()
        assert popup.state is PopupState.OPEN
        popup.close()
        assert popup.state is PopupState.CLOSED

    def test_minimize_when_closed_is_noop(self, popup):
        popup.minimize()
        assert popup.state is PopupState.CLOSED

    def test_maximize_when_open_is_noop(self, popup):
        popup.open()
        popup.maximize()
        assert popup.state is PopupState.OPEN


class TestAutoClose:
    """The auto-close countdown only runs while minimized with an expired OTP."""

    def test_closes_after_exactly_ten_seconds(self, scheduler, popup, closed_calls):
        _minimized_expired(popup)
        assert popup.auto_close_remaining == 10

        scheduler.advance(9)
        assert popup.state is PopupState.MINIMIZED
        assert popup.auto_close_remaining == 1

        scheduler.advance(1)
        assert popup.state is PopupState.CLOSED
        assert closed_calls == [True]
        assert scheduler.active() == []

    def test_not_armed_while_open(self, scheduler, popup, closed_calls):
        """An expired OTP in the open popup stays on screen."""
        popup.open()
        popup.ttl_changed(0)
        scheduler.advance(30)

        assert popup.state is PopupState.OPEN
        assert closed_calls == []

    def test_armed_when_expiring_while_minimized(self, scheduler, popup):
        popup.open()
        popup.ttl_changed(5)
        popup.minimize()
        assert popup.auto_close_remaining == 0

        popup.ttl_changed(0)
        assert popup.auto_close_remaining == 10

    def test_maximize_cancels(self, scheduler, popup, closed_calls):
        _minimized_expired(popup)
        scheduler.advance(5)
        popup.maximize()
        scheduler.advance(20)

        assert popup.state is PopupState.OPEN
        assert closed_calls == []
        assert scheduler.active() == []

    def test_new_otp_cancels(self, scheduler, popup, closed_calls):
        """A fresh TTL (after a resend) stops the countdown."""
        _minimized_expired(popup)
        scheduler.advance(3)
        popup.ttl_changed(120)
        scheduler.advance(20)

        assert popup.state is PopupState.MINIMIZED
        assert popup.auto_close_remaining == 0
        assert closed_calls == []

    def test_minimize_again_restarts_from_full(self, scheduler, popup):
        _minimized_expired(popup)
        scheduler.advance(4)
        popup.maximize()
        popup.minimize()

        assert popup.auto_close_remaining == 10


class TestView:
    """Tests for the rendered projection."""

    def test_format_time(self):
        assert format_time(120) == "02:00"
        assert format_time(5) == "00:05"
        assert format_time(-3) == "00:00"

    def test_closed_view(self, popup):
        assert popup.view(OtpSession(transaction_id=42, ttl_seconds=120)).state is PopupState.CLOSED

    def test_open_view(self, popup):
        popup.open()
        v = popup.view(OtpSession(transaction_id=42, ttl_seconds=120), focus_index=2)

        assert v.transaction_id == 42
        assert v.time_label == "02:00"
        assert v.input_enabled
        assert v.can_resend
        assert v.focus_index == 2
        assert v.digits == ("",) * 6

    def test_minimized_expired_label(self, popup):
        session = OtpSession(transaction_id=42, ttl_seconds=0)
        _minimized_expired(popup)
        v = popup.view(session)

        assert v.time_label == "OTP Expired"
        assert v.expired
        assert not v.input_enabled
        assert v.auto_close_seconds == 10

    def test_resend_hint(self, popup):
        session = OtpSession(transaction_id=42, ttl_seconds=100, resend_cooldown_seconds=12)
        session.resend_remaining = 2
        popup.open()
        v = popup.view(session)

        assert not v.can_resend
        assert v.resend_hint == "2 resend(s) remaining. Please wait 12s before resending."
