"""RabbitMQ helpers: bus and consumer threads."""

from .bus import declare_queue, decode_body, start_consume
from .consumer import subscribe, run, Subscription

__all__ = [
    "declare_queue",
    "decode_body",
    "start_consume",
    "subscribe",
    "run",
    "Subscription",
]
