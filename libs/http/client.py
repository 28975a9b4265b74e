# libs/http/client.py
from __future__ import annotations
import json, uuid
from typing import Any, Dict, Optional
import httpx

# Header constants
CID_HEADER = "X-Correlation-Id"
IDEMP_HEADER = "Idempotency-Key"


def _gen_cid() -> str:
    """Random correlation-id when the caller did not pass one."""
    return str(uuid.uuid4())


class HttpError(Exception):
    """Raised for HTTP failures (status >= 400, or 502 when the upstream is unreachable)."""
    def __init__(self, status: int, url: str, body: Any, correlation_id: Optional[str] = None):
        super().__init__(f"HTTP {status} {url} (cid={correlation_id})")
        self.status = status
        self.url = url
        self.body = body
        self.correlation_id = correlation_id

    @property
    def detail(self) -> Optional[str]:
        """Server supplied message, if the body carries one."""
        if isinstance(self.body, dict):
            msg = self.body.get("message") or self.body.get("detail")
            return str(msg) if msg else None
        if isinstance(self.body, str) and self.body.strip():
            return self.body.strip()
        return None


class HttpClient:
    """
    Small async JSON client for the payment API.
    - GET/POST
    - Auto JSON encode/decode
    - Timeout
    - Propagate X-Correlation-Id
    - Optional Idempotency-Key
    """

    def __init__(self, base_url: str, *, timeout_sec: float = 5.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self.s = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_sec),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    # ---- generic request helper ----
    async def _request(self,
                       method: str,
                       path: str,
                       *,
                       params: Dict[str, Any] | None = None,
                       json_body: Dict[str, Any] | None = None,
                       headers: Dict[str, str] | None = None,
                       correlation_id: str | None = None,
                       idempotency_key: str | None = None) -> Any:

        url = f"{self.base_url}/{path.lstrip('/')}"
        hdrs = {**(headers or {})}

        cid = correlation_id or hdrs.get(CID_HEADER) or _gen_cid()
        hdrs[CID_HEADER] = cid

        if idempotency_key:
            hdrs[IDEMP_HEADER] = idempotency_key

        data = None
        if json_body is not None:
            hdrs.setdefault("Content-Type", "application/json")
            data = json.dumps(json_body)

        try:
            resp = await self.s.request(method, url, params=params, content=data, headers=hdrs)
        except httpx.RequestError as exc:
            raise HttpError(502, url, {"message": "Upstream unavailable"}, correlation_id=cid) from exc

        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            raise HttpError(resp.status_code, url, body, correlation_id=cid)

        if "application/json" in resp.headers.get("Content-Type", ""):
            return resp.json()
        return resp.text or None

    # ---- public shortcut methods ----
    async def get(self, path: str, **kwargs): return await self._request("GET", path, **kwargs)
    async def post(self, path: str, **kwargs): return await self._request("POST", path, **kwargs)

    async def aclose(self) -> None:
        await self.s.aclose()


def make_payment_api_http(base_url: str, *, timeout_sec: float = 5.0,
                          transport: httpx.AsyncBaseTransport | None = None) -> HttpClient:
    return HttpClient(base_url, timeout_sec=timeout_sec, transport=transport)
