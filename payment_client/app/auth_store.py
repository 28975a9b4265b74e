from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from libs.http import HttpError
from payment_client.app.clients.payment_api import PaymentApiClient
from payment_client.app.schemas import AuthBlob, LoginResponse

logger = logging.getLogger(__name__)


class AuthStore:
    """
    Persisted auth blob ``{token, profile}``.

    The server is authoritative for the profile (balance in particular), so
    ``restore`` and ``refresh_profile`` always resync through ``/api/auth/me``.
    """

    def __init__(self, path: str, api: PaymentApiClient) -> None:
        self.path = Path(os.path.expanduser(path))
        self.api = api
        self.blob: Optional[AuthBlob] = None

    @property
    def token(self) -> Optional[str]:
        return self.blob.token if self.blob else None

    @property
    def profile(self) -> Dict[str, Any]:
        return dict(self.blob.profile) if self.blob else {}

    def load(self) -> Optional[AuthBlob]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("auth_store read failed path=%s err=%s", self.path, exc)
            return None
        try:
            return AuthBlob.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            logger.warning("auth_store ignoring unreadable blob path=%s", self.path)
            return None

    def save(self, blob: AuthBlob) -> None:
        self.blob = blob
        self.api.token = blob.token
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(blob.model_dump()), encoding="utf-8")
        except OSError as exc:
            logger.warning("auth_store write failed path=%s err=%s", self.path, exc)

    def clear(self) -> None:
        self.blob = None
        self.api.token = None
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    async def restore(self) -> Optional[AuthBlob]:
        stored = self.load()
        if stored is None:
            return None
        self.blob = stored
        self.api.token = stored.token
        await self.refresh_profile()
        return self.blob

    async def refresh_profile(self) -> None:
        if self.blob is None:
            return
        try:
            fresh = await self.api.me()
        except (HttpError, ValueError) as exc:
            # Keep the stored profile; the next successful sync fixes it
            logger.info("auth_store profile sync failed err=%s", exc)
            return
        self.save(AuthBlob(token=self.blob.token, profile={**self.blob.profile, **fresh}))

    async def login(self, username: str, password: str) -> LoginResponse:
        resp = await self.api.login(username, password)
        self.save(AuthBlob(token=resp.token, profile=resp.profile()))
        logger.info("auth_store logged in pending_transaction_id=%s", resp.pending_transaction_id)
        return resp
