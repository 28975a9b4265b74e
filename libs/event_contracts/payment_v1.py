from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, Field, ValidationError
import uuid, datetime as dt


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


class _PaymentEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    occurred_at: str = Field(default_factory=_now_iso)
    transaction_id: int
    user_id: str | None = None
    student_id: str | None = None
    semester: str | None = None
    amount: float | None = None
    # Status the event moves the transaction to
    status: str


#payment_completed
class PaymentCompleted(_PaymentEvent):
    event_type: str = "payment_completed"
    status: str = "COMPLETED"


#payment_failed
class PaymentFailed(_PaymentEvent):
    event_type: str = "payment_failed"
    status: str = "FAILED"
    reason_code: str | None = None
    reason_message: str | None = None


#payment_expired
class PaymentExpired(_PaymentEvent):
    event_type: str = "payment_expired"
    status: str = "EXPIRED"
    reason_code: str | None = None
    reason_message: str | None = None


EVENT_TYPES: Dict[str, Type[_PaymentEvent]] = {
    "payment_completed": PaymentCompleted,
    "payment_failed": PaymentFailed,
    "payment_expired": PaymentExpired,
}


def parse_event(payload: Dict[str, Any], headers: Dict[str, Any] | None = None) -> Optional[_PaymentEvent]:
    """
    Build the contract for a raw message. The ``event-type`` header wins over the
    payload's own ``event_type``. Unknown types and malformed payloads give None.
    """
    event_type = (headers or {}).get("event-type") or payload.get("event_type") or ""
    model = EVENT_TYPES.get(event_type)
    if model is None:
        return None
    try:
        return model.model_validate({**payload, "event_type": event_type})
    except ValidationError:
        return None
