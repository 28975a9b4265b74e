from __future__ import annotations

import logging
from typing import Callable, Iterable, NamedTuple, Optional

from libs.http import HttpError
from payment_client.app.scheduler import TimerHandle
from payment_client.app.schemas import ENDED_STATUSES, Transaction, is_active_status
from payment_client.app.session import TransactionSession

logger = logging.getLogger(__name__)


class Decision(NamedTuple):
    clear: bool
    notify: bool


KEEP = Decision(clear=False, notify=False)


def decide(status: Optional[str]) -> Decision:
    """
    Reconciliation decision table. ``status`` is the server's status for the
    held transaction, or None when the server no longer lists it.
    """
    if is_active_status(status):
        return KEEP
    return Decision(clear=True, notify=status in ENDED_STATUSES)


def find_transaction(records: Iterable[Transaction], transaction_id: int) -> Optional[Transaction]:
    for record in records:
        if record.id == transaction_id:
            return record
    return None


class ReconciliationPoller:
    """
    Every ``interval`` seconds, re-read the transaction list and hand the held
    transaction's server status to ``on_finding``. Poll failures are logged and
    retried on the next tick; they never reach the user.
    """

    def __init__(self, scheduler, api, transactions: TransactionSession, *,
                 on_finding: Callable[[int, Optional[str]], None],
                 interval: float = 5.0) -> None:
        self._scheduler = scheduler
        self._api = api
        self._transactions = transactions
        self._on_finding = on_finding
        self._interval = interval
        self._handle: Optional[TimerHandle] = None
        self._in_flight = False

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self._handle is not None:
            return
        self._handle = self._scheduler.call_every(self._interval, self._tick, name="reconcile_poll")
        logger.info("reconcile poller started interval=%s", self._interval)

    def stop(self) -> None:
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        logger.info("reconcile poller stopped")

    def _tick(self) -> None:
        # Skip a tick while the previous poll is still outstanding
        if self._in_flight or self._transactions.current() is None:
            return
        self._scheduler.spawn(self.poll_once(), name="reconcile_poll_once")

    async def poll_once(self) -> Optional[Decision]:
        tx = self._transactions.current()
        if tx is None:
            return None
        handle = self._handle
        self._in_flight = True
        try:
            records = await self._api.history()
        except (HttpError, ValueError) as exc:
            logger.debug("reconcile poll failed transaction_id=%s err=%s", tx.id, exc)
            return None
        finally:
            self._in_flight = False

        # Late response: the session closed or the held transaction changed meanwhile
        if handle is not self._handle and handle is not None:
            logger.debug("reconcile poll discarded (poller restarted) transaction_id=%s", tx.id)
            return None
        if handle is not None and handle.cancelled:
            logger.debug("reconcile poll discarded (poller stopped) transaction_id=%s", tx.id)
            return None
        if not self._transactions.holds(tx.id):
            logger.debug("reconcile poll discarded (transaction changed) transaction_id=%s", tx.id)
            return None

        record = find_transaction(records, tx.id)
        status = record.status if record is not None else None
        decision = decide(status)
        if decision.clear:
            logger.info("reconcile transaction ended transaction_id=%s status=%s", tx.id, status)
            self._on_finding(tx.id, status)
        return decision
