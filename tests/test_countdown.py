"""
Tests for the OTP validity and resend cooldown tickers.
"""

import pytest

from payment_client.app.countdown import COOLDOWN_TIMER, OTP_TIMER, CountdownEngine
from payment_client.app.session import OtpSession


@pytest.fixture
def session():
    return OtpSession(transaction_id=42, ttl_seconds=0)


@pytest.fixture
def seen():
    return []


@pytest.fixture
def engine(scheduler, session, seen):
    return CountdownEngine(scheduler, session, on_ttl_change=seen.append)


class TestOtpTtl:
    """Tests for the OTP validity countdown."""

    def test_ticks_once_per_second(self, scheduler, engine):
        """TTL drops by one every second."""
        engine.restart_otp(120)
        scheduler.advance(1)
        assert engine.ttl_seconds == 119
        scheduler.advance(9)
        assert engine.ttl_seconds == 110

    def test_stops_at_zero(self, scheduler, engine, seen):
        """The ticker removes itself at zero and never goes negative."""
        engine.restart_otp(3)
        scheduler.advance(10)

        assert engine.ttl_seconds == 0
        assert not engine.input_enabled
        assert OTP_TIMER not in scheduler.active()
        assert seen == [3, 2, 1, 0]

    def test_restart_replaces_running_timer(self, scheduler, engine):
        """Re-issuing an OTP keeps a single ticker."""
        engine.restart_otp(120)
        scheduler.advance(50)
        engine.restart_otp(120)

        assert scheduler.active().count(OTP_TIMER) == 1
        scheduler.advance(1)
        assert engine.ttl_seconds == 119

    def test_zero_ttl_schedules_nothing(self, scheduler, engine, seen):
        """An already expired OTP notifies but does not tick."""
        engine.restart_otp(0)

        assert scheduler.active() == []
        assert seen == [0]
        assert not engine.input_enabled


class TestCooldown:
    """Tests for the resend cooldown countdown."""

    def test_independent_of_ttl(self, scheduler, engine):
        """Both counters tick on their own."""
        engine.restart_otp(120)
        engine.start_cooldown(30)
        scheduler.advance(30)

        assert engine.resend_cooldown_seconds == 0
        assert engine.ttl_seconds == 90
        assert scheduler.active() == [OTP_TIMER]

    def test_cooldown_restart(self, scheduler, engine):
        """Starting a cooldown again resets it."""
        engine.start_cooldown(30)
        scheduler.advance(20)
        engine.start_cooldown(30)

        assert engine.resend_cooldown_seconds == 30
        assert scheduler.active() == [COOLDOWN_TIMER]


class TestSessionClose:
    """Closing the session stops every ticker it owns."""

    def test_close_cancels_both(self, scheduler, session, engine):
        engine.restart_otp(120)
        engine.start_cooldown(30)
        scheduler.advance(5)
        session.close()
        scheduler.advance(10)

        assert session.ttl_seconds == 115
        assert session.resend_cooldown_seconds == 25
        assert scheduler.active() == []

    def test_restart_after_close_is_inert(self, scheduler, session, engine):
        """A late restart on a closed session schedules nothing."""
        session.close()
        engine.restart_otp(120)

        assert scheduler.active() == []
