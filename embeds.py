from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import discord


LIVE_COLOR = 0xFF0000
OFFLINE_COLOR = 0x57F287
DEFAULT_AVATAR_URL = "https://i.imgur.com/AfFp7pu.png"
FOOTER_TEXT = "Live stream alerts"
PROFILE_URL_TEMPLATE = "https://www.tiktok.com/@{account}"


@dataclass(frozen=True)
class StreamUser:
    unique_id: str
    avatar_url: str | None = None

    @classmethod
    def from_payload(cls, payload: dict | None, fallback_id: str) -> "StreamUser":
        payload = payload or {}
        return cls(
            unique_id=str(payload.get("uniqueId") or fallback_id),
            avatar_url=payload.get("avatarUrl") or None,
        )

    def to_payload(self) -> dict[str, str | None]:
        return {"uniqueId": self.unique_id, "avatarUrl": self.avatar_url}


@dataclass(frozen=True)
class StreamSession:
    account: str
    started_ms: int
    user: StreamUser
    title: str | None = None
    cover_url: str | None = None


def profile_url(account: str) -> str:
    return PROFILE_URL_TEMPLATE.format(account=account)


def format_duration(ms: int) -> str:
    seconds_int = max(0, int(ms) // 1000)
    minutes, secs = divmod(seconds_int, 60)
    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def _title_line(title: str | None) -> str:
    if title and title.strip():
        return f"🎬 **{title.strip()}**"
    return "🎬 **No title**"


def _set_author(embed: discord.Embed, stream: StreamSession) -> None:
    embed.set_author(
        name=stream.user.unique_id or stream.account,
        icon_url=stream.user.avatar_url or DEFAULT_AVATAR_URL,
        url=profile_url(stream.account),
    )


def build_live_embed(stream: StreamSession, now_ms: int) -> discord.Embed:
    start_unix = stream.started_ms // 1000
    started = datetime.fromtimestamp(start_unix, tz=timezone.utc)
    display_name = stream.user.unique_id or stream.account

    embed = discord.Embed(
        title=f"{display_name}'s stream is LIVE!",
        color=LIVE_COLOR,
        timestamp=datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc),
    )
    _set_author(embed, stream)
    embed.add_field(name="Status", value="🔴 Live Now!", inline=True)
    embed.add_field(
        name="Streamer",
        value=f"[{stream.account}]({profile_url(stream.account)})",
        inline=True,
    )
    embed.add_field(name="Title", value=_title_line(stream.title), inline=False)
    embed.add_field(
        name="Stream Info",
        value=(
            f"🕒 **Started:** {started.strftime('%A %d %B %Y, %H:%M')} UTC\n"
            f"🔴 **Live Since:** <t:{start_unix}:R>\n"
            f"🕓 **Last Updated:** <t:{now_ms // 1000}:R>"
        ),
        inline=False,
    )
    image = stream.cover_url or stream.user.avatar_url
    if image:
        embed.set_image(url=image)
    embed.set_footer(text=FOOTER_TEXT)
    return embed


def build_offline_embed(stream: StreamSession, ended_ms: int, now_ms: int) -> discord.Embed:
    display_name = stream.user.unique_id or stream.account
    embed = discord.Embed(
        title=f"{display_name}'s stream has ended.",
        color=OFFLINE_COLOR,
        timestamp=datetime.fromtimestamp(ended_ms / 1000, tz=timezone.utc),
    )
    _set_author(embed, stream)
    embed.add_field(name="Status", value="🟢 Stream Ended", inline=True)
    embed.add_field(name="Title", value=_title_line(stream.title), inline=False)
    embed.add_field(
        name="Stream Info",
        value=(
            f"🕒 **Started:** <t:{stream.started_ms // 1000}:f>\n"
            f"✅ **Ended:** <t:{ended_ms // 1000}:f>\n"
            f"⏱️ **Duration:** {format_duration(ended_ms - stream.started_ms)}\n"
            f"🕓 **Updated Since:** <t:{now_ms // 1000}:R>"
        ),
        inline=False,
    )
    embed.set_image(url=stream.user.avatar_url or stream.cover_url or DEFAULT_AVATAR_URL)
    embed.set_footer(text=FOOTER_TEXT)
    return embed


def build_action_view(account: str, is_live: bool) -> discord.ui.View:
    # Views need a running event loop.
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(
            label="🔴 Watch Live" if is_live else "⚪ Offline",
            style=discord.ButtonStyle.link,
            url=profile_url(account),
        )
    )
    return view


def live_content(account: str) -> str:
    return f"@everyone **{account} is now LIVE!**"


def ended_content(account: str) -> str:
    return f"**{account}'s stream has ended.**"
