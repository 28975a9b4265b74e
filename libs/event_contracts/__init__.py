"""Event contracts (Pydantic models) for inter-service messaging."""

__all__ = [
    "payment_v1",
]
