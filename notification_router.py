from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable

import discord

from embeds import (
    StreamSession,
    build_action_view,
    build_live_embed,
    build_offline_embed,
    ended_content,
    live_content,
)
from owner_notifier import DELIVERY_ERRORS
from state_store import SessionStore


LOG = logging.getLogger("live_notifier")


def now_ms() -> int:
    return int(time.time() * 1000)


class NotificationRouter:
    """Keeps one announcement message per stream session in the alert channel.

    Delivery errors are logged and swallowed; callers commit their state
    regardless of the outcome.
    """

    def __init__(
        self,
        session_store: SessionStore,
        channel_provider: Callable[[], Awaitable[Any]],
        clock: Callable[[], int] | None = None,
    ):
        self.session_store = session_store
        self._channel_provider = channel_provider
        self._clock = clock or now_ms

    def _record(self, account: str, message_id: int) -> None:
        self.session_store.sent_messages[account] = str(message_id)
        self.session_store.save()

    async def announce_live(self, stream: StreamSession) -> int | None:
        account = stream.account
        try:
            channel = await self._channel_provider()
            message = await channel.send(
                content=live_content(account),
                embeds=[build_live_embed(stream, self._clock())],
                view=build_action_view(account, is_live=True),
            )
        except DELIVERY_ERRORS as exc:
            LOG.error("Error sending live alert for %s: %s", account, exc)
            if self.session_store.sent_messages.pop(account, None) is not None:
                self.session_store.save()
            return None

        self._record(account, message.id)
        LOG.info("[%s] Stream started: %r", account, stream.title)
        return message.id

    async def _fetch_previous(self, channel: Any, account: str) -> Any:
        message_id = self.session_store.sent_messages.get(account)
        if not message_id:
            return None
        try:
            return await channel.fetch_message(int(message_id))
        except (ValueError, discord.HTTPException) as exc:
            LOG.debug("[%s] Previous alert %s unavailable: %s", account, message_id, exc)
            return None

    async def announce_ended(self, stream: StreamSession, ended_ms: int) -> int | None:
        account = stream.account
        payload = {
            "content": ended_content(account),
            "embeds": [build_offline_embed(stream, ended_ms, self._clock())],
            "view": build_action_view(account, is_live=False),
        }
        try:
            channel = await self._channel_provider()
            previous = await self._fetch_previous(channel, account)
            if previous is not None:
                await previous.edit(**payload)
                LOG.info("[%s] Offline embed edited into the live alert.", account)
                return previous.id
            message = await channel.send(**payload)
        except DELIVERY_ERRORS as exc:
            LOG.error("Error sending offline embed for %s: %s", account, exc)
            return None

        self._record(account, message.id)
        LOG.info("[%s] Offline embed sent as a new message.", account)
        return message.id
