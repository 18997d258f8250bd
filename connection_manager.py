from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, Iterable
from urllib.parse import urlencode

import aiohttp

from config import Config
from owner_notifier import OwnerNotifier
from request_quota import RequestQuota
from stream_state import StreamStateMachine


LOG = logging.getLogger("live_notifier")
HEARTBEAT_SEC = 30.0


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RETRY_PENDING = "retry_pending"
    PERMANENTLY_OFFLINE = "permanently_offline"
    QUOTA_SKIPPED = "quota_skipped"


ACTIVE_STATES = {ConnectionState.CONNECTING, ConnectionState.CONNECTED}


def build_socket_url(base_url: str, account: str, api_key: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'uniqueId': account, 'apiKey': api_key})}"


class ConnectionManager:
    """Owns one telemetry websocket per tracked account.

    Each socket close bumps the account's reconnect counter and schedules a
    single retry after a fixed delay. Once the counter reaches the configured
    ceiling while the account is believed live, the stream is forced offline.
    """

    def __init__(
        self,
        config: Config,
        quota: RequestQuota,
        state_machine: StreamStateMachine,
        owner_notifier: OwnerNotifier | None = None,
        session_factory: Callable[[], Any] | None = None,
        schedule: Callable[[float, Callable[[], Any]], Any] | None = None,
    ):
        self.config = config
        self.quota = quota
        self.state_machine = state_machine
        self.owner_notifier = owner_notifier
        self._session_factory = session_factory or aiohttp.ClientSession
        self._schedule = schedule
        self._session: Any = None
        self._tasks: dict[str, asyncio.Task] = {}
        self._spawned: set[asyncio.Task] = set()
        self.states: dict[str, ConnectionState] = {}
        self.reconnect_counts: dict[str, int] = {}

    def state_of(self, account: str) -> ConnectionState:
        return self.states.get(account, ConnectionState.DISCONNECTED)

    async def start(self, accounts: Iterable[str]) -> None:
        for account in accounts:
            await self.connect(account)

    async def connect(self, account: str) -> bool:
        if self.state_of(account) in ACTIVE_STATES:
            LOG.debug("[%s] Connection already active, not opening another.", account)
            return False

        if not self.quota.can_make_request():
            LOG.warning(
                "Daily API request limit (%d) reached. Skipping %s.", self.quota.limit, account
            )
            self.states[account] = ConnectionState.QUOTA_SKIPPED
            return False

        self.states[account] = ConnectionState.CONNECTING
        try:
            await self.quota.record_request()
        except Exception:
            self.states[account] = ConnectionState.DISCONNECTED
            raise
        self._tasks[account] = asyncio.create_task(
            self._run_socket(account), name=f"telemetry-{account}"
        )
        return True

    def _get_session(self) -> Any:
        if self._session is None:
            self._session = self._session_factory()
        return self._session

    async def _run_socket(self, account: str) -> None:
        url = build_socket_url(self.config.euler_ws_url, account, self.config.euler_api_key)
        close_code = None
        try:
            async with self._get_session().ws_connect(url, heartbeat=HEARTBEAT_SEC) as ws:
                self.states[account] = ConnectionState.CONNECTED
                LOG.info("Connected to EulerStream for %s", account)
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        await self.handle_text(account, msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        LOG.error("[%s] WebSocket error: %s", account, ws.exception())
                        break
                close_code = ws.close_code
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            LOG.error("[%s] WebSocket error: %s", account, exc)
        await self.handle_close(account, close_code)

    async def handle_text(self, account: str, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError):
            return
        try:
            result = await self.state_machine.handle_frame(account, frame)
        except Exception:
            LOG.exception("[%s] Unhandled exception while processing telemetry", account)
            return
        if result.live_seen:
            self.reconnect_counts[account] = 0

    async def handle_close(self, account: str, close_code: int | None = None) -> None:
        attempt = self.reconnect_counts.get(account, 0) + 1
        self.reconnect_counts[account] = attempt
        max_attempts = self.config.max_reconnect_attempts
        LOG.warning(
            "[%s] WS closed (code %s) attempt %d/%d",
            account,
            close_code,
            attempt,
            max_attempts,
        )

        if attempt >= max_attempts:
            self.states[account] = ConnectionState.PERMANENTLY_OFFLINE
            if self.state_machine.is_live(account):
                try:
                    await self._force_offline(account)
                except Exception:
                    LOG.exception("[%s] Failed to force stream offline", account)
        else:
            self.states[account] = ConnectionState.RETRY_PENDING

        self._schedule_reconnect(account)

    async def _force_offline(self, account: str) -> None:
        max_attempts = self.config.max_reconnect_attempts
        transition = await self.state_machine.force_offline(account)
        self.reconnect_counts[account] = 0
        if transition is None:
            return
        LOG.warning("[%s] Offline embed sent after %d failed reconnects.", account, max_attempts)
        if self.owner_notifier is not None:
            await self.owner_notifier.notify(
                f"⚠️ {account}'s stream marked offline after {max_attempts} failed reconnects.",
                "warn",
            )

    def _schedule_reconnect(self, account: str) -> None:
        delay = self.config.reconnect_delay_sec
        if self._schedule is not None:
            self._schedule(delay, lambda: self._spawn_reconnect(account))
            return
        asyncio.get_running_loop().call_later(delay, self._spawn_reconnect, account)

    def _spawn_reconnect(self, account: str) -> None:
        task = asyncio.create_task(self._reconnect(account), name=f"reconnect-{account}")
        self._spawned.add(task)
        task.add_done_callback(self._spawned.discard)

    async def _reconnect(self, account: str) -> None:
        try:
            await self.connect(account)
        except Exception:
            LOG.exception("[%s] Reconnect failed, retrying later", account)
            self._schedule_reconnect(account)

    async def close(self) -> None:
        tasks = [task for task in list(self._tasks.values()) + list(self._spawned) if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._session is not None:
            await self._session.close()
            self._session = None
