# libs/rmq/consumer.py
import logging
import threading
from typing import List, Sequence

from .bus import MessageHandler, declare_queue, start_consume

logger = logging.getLogger(__name__)


class Subscription:
    def __init__(self, queue: str, routing_keys: Sequence[str], handler: MessageHandler):
        self.queue = queue
        self.routing_keys = list(routing_keys)
        self.handler = handler


def subscribe(queue: str,
              routing_keys: Sequence[str],
              handler: MessageHandler,
              *,
              dead_letter: bool = True,
              prefetch: int = 32) -> Subscription:
    declare_queue(queue, routing_keys, dead_letter=dead_letter, prefetch=prefetch)
    return Subscription(queue, routing_keys, handler)


_threads: List[threading.Thread] = []


def run(subscriptions: List[Subscription], *, join: bool = False) -> List[threading.Thread]:
    """
    Start one daemon consumer thread per subscription.
    - join=True: block (standalone worker).
    - join=False: return immediately (keeps an asyncio loop free).
    """
    started = []
    for sub in subscriptions:
        t = threading.Thread(
            target=start_consume,
            args=(sub.queue, sub.handler),
            name=f"rmq-consumer:{sub.queue}",
            daemon=True,
        )
        t.start()
        logger.info("rmq consumer started queue=%s keys=%s", sub.queue, ",".join(sub.routing_keys))
        started.append(t)
    _threads.extend(started)

    if join:
        for t in started:
            t.join()
    return started
