from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class TransactionStatus(str, Enum):
    PENDING_OTP = "PENDING_OTP"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


ACTIVE_STATUSES = frozenset({TransactionStatus.PENDING_OTP.value, TransactionStatus.PROCESSING.value})
# Terminal outcomes that deserve a "start a new one" notice
ENDED_STATUSES = frozenset({TransactionStatus.FAILED.value, TransactionStatus.EXPIRED.value})


def is_active_status(status: str | None) -> bool:
    return status in ACTIVE_STATUSES


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Transaction(_ApiModel):
    id: int
    # Kept as plain text: unknown values from the server are treated as terminal
    status: str = TransactionStatus.PENDING_OTP.value
    student_id: str | None = Field(default=None, alias="studentId")
    semester: str | None = None
    amount: float | None = None
    created_at: dt.datetime | None = Field(default=None, alias="createdAt")
    completed_at: dt.datetime | None = Field(default=None, alias="completedAt")


class InitiateResponse(_ApiModel):
    transaction_id: int = Field(alias="transactionId")
    ttl_seconds: int = Field(alias="ttlSeconds")


class ResendResponse(_ApiModel):
    ttl_seconds: int = Field(alias="ttlSeconds")
    message: str | None = None
    resend_count: int | None = Field(default=None, alias="resendCount")
    resend_remaining: int | None = Field(default=None, alias="resendRemaining")


class ConfirmResponse(_ApiModel):
    message: str | None = None


class LoginResponse(_ApiModel):
    token: str
    full_name: str | None = Field(default=None, alias="fullName")
    phone: str | None = None
    email: str | None = None
    balance: float | None = None
    pending_transaction_id: int | None = Field(default=None, alias="pendingTransactionId")

    def profile(self) -> Dict[str, Any]:
        return {
            "fullName": self.full_name,
            "phone": self.phone,
            "email": self.email,
            "balance": self.balance,
        }


class AuthBlob(_ApiModel):
    token: str
    profile: Dict[str, Any] = Field(default_factory=dict)


def seconds_since(moment: dt.datetime, now: dt.datetime) -> int:
    """Whole seconds elapsed between ``moment`` and ``now``; naive datetimes are read as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt.timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=dt.timezone.utc)
    return int((now - moment).total_seconds())
