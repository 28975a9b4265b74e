from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from libs.event_contracts.payment_v1 import parse_event
from libs.rmq import bus as rmq_bus
from libs.rmq.consumer import Subscription, run, subscribe
from payment_client.app.settings import Settings

logger = logging.getLogger(__name__)


def make_handler(widget, loop: asyncio.AbstractEventLoop):
    """
    Consumer-thread callback that forwards transaction status events to the
    widget's loop. Widget state is only touched from that loop.
    """

    def _on_message(payload: Dict[str, Any], headers: Dict[str, Any], message_id: str) -> None:
        event = parse_event(payload, headers)
        if event is None:
            # Unknown event: ignore idempotently
            logger.debug("payment_client ignored event message_id=%s", message_id)
            return
        logger.info("payment_client received %s transaction_id=%s", event.event_type, event.transaction_id)
        loop.call_soon_threadsafe(widget.apply_server_status, event.transaction_id, event.status)

    return _on_message


def start_consumers(widget, loop: asyncio.AbstractEventLoop, config: Settings) -> None:
    rmq_bus._Rmq.configure(url=config.RABBIT_URL, exchange=config.EVENT_EXCHANGE, dlx=config.EVENT_DLX)
    sub: Subscription = subscribe(
        config.PAYMENT_CLIENT_QUEUE,
        [config.RK_PAYMENT_COMPLETED, config.RK_PAYMENT_FAILED, config.RK_PAYMENT_EXPIRED],
        make_handler(widget, loop),
        dead_letter=True,
        prefetch=config.CONSUMER_PREFETCH,
    )
    run([sub], join=False)
