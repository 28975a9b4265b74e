from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from libs.http import HttpClient, HttpError
from payment_client.app.schemas import (
    ConfirmResponse,
    InitiateResponse,
    LoginResponse,
    ResendResponse,
    Transaction,
)

_ACTIVE_ID_RE = re.compile(r"ID:\s*(\d+)")


def extract_active_transaction_id(err: Exception) -> Optional[int]:
    """
    A 409 on initiate names the transaction that is already active ("... ID: 42").
    Returns that id, or None for any other failure.
    """
    if not isinstance(err, HttpError) or err.status != 409:
        return None
    match = _ACTIVE_ID_RE.search(err.detail or "")
    return int(match.group(1)) if match else None


class PaymentApiClient:
    def __init__(self, http: HttpClient, token: Optional[str] = None) -> None:
        self._http = http
        self.token = token

    def _auth(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def initiate(self, student_id: str) -> InitiateResponse:
        data = await self._http.post("/api/payment/initiate", json_body={"studentId": student_id}, headers=self._auth())
        return InitiateResponse.model_validate(data)

    async def resend_otp(self, transaction_id: int) -> ResendResponse:
        data = await self._http.post("/api/payment/resend-otp", json_body={"transactionId": transaction_id}, headers=self._auth())
        return ResendResponse.model_validate(data)

    async def confirm(self, transaction_id: int, otp: str) -> ConfirmResponse:
        data = await self._http.post(
            "/api/payment/confirm",
            json_body={"transactionId": transaction_id, "otp": otp},
            headers=self._auth(),
        )
        return ConfirmResponse.model_validate(data or {})

    async def history(self) -> List[Transaction]:
        """
        Transaction records of the current user, newest first.
        Used both for display and for reconciliation polling.
        """
        data = await self._http.get("/api/payment/history", headers=self._auth())
        return [Transaction.model_validate(item) for item in (data or [])]

    async def login(self, username: str, password: str) -> LoginResponse:
        data = await self._http.post("/api/auth/login", json_body={"username": username, "password": password})
        return LoginResponse.model_validate(data)

    async def me(self) -> Dict[str, Any]:
        data = await self._http.get("/api/auth/me", headers=self._auth())
        return data if isinstance(data, dict) else {}

    async def aclose(self) -> None:
        await self._http.aclose()
