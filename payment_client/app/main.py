from __future__ import annotations

import asyncio
import getpass
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Tuple

import httpx

from libs.http import make_payment_api_http
from payment_client.app.auth_store import AuthStore
from payment_client.app.clients.payment_api import PaymentApiClient
from payment_client.app.notifier import Notifier
from payment_client.app.popup import PopupState
from payment_client.app.scheduler import AsyncioScheduler
from payment_client.app.settings import Settings, settings
from payment_client.app.widget import OtpWidget

logger = logging.getLogger("payment_client")

_executor = ThreadPoolExecutor(max_workers=1)


def create_widget(config: Settings = settings, *,
                  transport: httpx.AsyncBaseTransport | None = None,
                  scheduler=None) -> Tuple[OtpWidget, AuthStore]:
    http = make_payment_api_http(config.API_BASE_URL, timeout_sec=config.HTTP_TIMEOUT, transport=transport)
    api = PaymentApiClient(http)
    auth = AuthStore(config.AUTH_STORE_PATH, api)

    async def _resync_balance(_transaction_id: int) -> None:
        await auth.refresh_profile()

    widget = OtpWidget(
        api,
        scheduler or AsyncioScheduler(),
        notifier=Notifier(),
        config=config,
        on_payment_completed=_resync_balance,
    )
    return widget, auth


async def _ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_executor, input, prompt)


def _render(widget: OtpWidget) -> str:
    v = widget.view()
    if v.state is PopupState.CLOSED:
        return "[closed]"
    slots = " ".join(d or "_" for d in v.digits)
    if v.state is PopupState.MINIMIZED:
        extra = f" auto-close {v.auto_close_seconds}s" if v.auto_close_seconds else ""
        return f"[minimized] {v.time_label}{extra}"
    status = "expired, press r to resend" if v.expired else v.time_label
    return f"[tx {v.transaction_id}] {slots}  {status}  {v.resend_hint}"


async def _login(auth: AuthStore) -> Optional[int]:
    """Returns a pending transaction id reported by the server, if any."""
    if await auth.restore() is not None:
        return None
    username = (await _ainput("username: ")).strip()
    password = await asyncio.get_running_loop().run_in_executor(_executor, getpass.getpass, "password: ")
    resp = await auth.login(username, password)
    return resp.pending_transaction_id


async def run(student_id: str, config: Settings = settings) -> None:
    widget, auth = create_widget(config)
    widget.notifier.subscribe(lambda n: print(f"({n.level}) {n.message}"))
    logger.info("payment_client starting student_id=%s api=%s", student_id, config.API_BASE_URL)
    try:
        pending_id = await _login(auth)
        if config.EVENT_PUSH_ENABLED:
            from payment_client.app.messaging.consumer import start_consumers
            start_consumers(widget, asyncio.get_running_loop(), config)

        if pending_id is not None:
            await widget.resume(pending_id)
        else:
            await widget.initiate(student_id)

        while widget.state is not PopupState.CLOSED:
            print(_render(widget))
            cmd = (await _ainput("otp> ")).strip()
            if widget.entry is None:
                break
            if cmd == "q":
                widget.close()
            elif cmd == "r":
                await widget.resend()
            elif cmd == "m":
                widget.minimize()
            elif cmd == "M":
                widget.maximize()
            elif cmd:
                widget.entry.paste(cmd)
                # Let the spawned confirm finish before redrawing
                await asyncio.sleep(0.2)
    finally:
        await widget.teardown()
        await widget.scheduler.shutdown()
        await widget.api.aclose()
        _executor.shutdown(wait=False)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    if len(sys.argv) != 2:
        print("usage: python -m payment_client.app.main STUDENT_ID")
        sys.exit(2)
    try:
        asyncio.run(run(sys.argv[1].strip().upper()))
    except KeyboardInterrupt:
        pass
