from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import aiohttp
import discord


LOG = logging.getLogger("live_notifier")
NOTICE_TITLE = "Live notifier notice"
NOTICE_COLORS = {
    "info": 0x5865F2,
    "success": 0x57F287,
    "warn": 0xFEE75C,
    "error": 0xED4245,
    "live": 0xFF0000,
    "offline": 0x57F287,
}
DELIVERY_ERRORS = (
    discord.HTTPException,
    discord.ClientException,
    aiohttp.ClientError,
    asyncio.TimeoutError,
)


def build_notice_embed(message: str, kind: str = "info", now: datetime | None = None) -> discord.Embed:
    sent_at = now or datetime.now(timezone.utc)
    embed = discord.Embed(
        title=NOTICE_TITLE,
        description=message,
        color=NOTICE_COLORS.get(kind, NOTICE_COLORS["info"]),
    )
    embed.set_footer(text=f"Sent {sent_at.strftime('%d/%m/%Y, %H:%M:%S')} UTC")
    return embed


class OwnerNotifier:
    def __init__(
        self,
        owner_id: int | None,
        fetch_user: Callable[[int], Awaitable[Any]],
    ):
        self.owner_id = owner_id
        self._fetch_user = fetch_user
        self._owner: Any = None

    @property
    def enabled(self) -> bool:
        return self.owner_id is not None

    async def notify(self, message: str, kind: str = "info") -> bool:
        if self.owner_id is None:
            return False
        try:
            if self._owner is None:
                self._owner = await self._fetch_user(self.owner_id)
            await self._owner.send(embed=build_notice_embed(message, kind))
            return True
        except DELIVERY_ERRORS as exc:
            LOG.error("Failed to DM owner: %s", exc)
            return False
