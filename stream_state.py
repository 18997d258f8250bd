from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from embeds import StreamSession, StreamUser
from notification_router import NotificationRouter, now_ms
from state_store import SessionStore


LOG = logging.getLogger("live_notifier")
ROOM_INFO_TYPE = "roomInfo"
FAST_DETECTION_MS = 30 * 1000
TRANSITION_LIVE = "live"
TRANSITION_OFFLINE = "offline"


@dataclass(frozen=True)
class Transition:
    account: str
    kind: str
    started_ms: int
    ended_ms: int | None = None

    @property
    def duration_ms(self) -> int | None:
        if self.ended_ms is None:
            return None
        return self.ended_ms - self.started_ms


@dataclass
class FrameResult:
    live_seen: bool = False
    transitions: list[Transition] = field(default_factory=list)


def _clean_title(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _start_ms(room: dict, received_ms: int) -> int:
    raw = room.get("startTime")
    if raw is None or isinstance(raw, bool):
        return received_ms
    try:
        return int(float(raw) * 1000)
    except (TypeError, ValueError, OverflowError):
        return received_ms


def iter_room_updates(frame: Any):
    if not isinstance(frame, dict):
        return
    messages = frame.get("messages")
    if not isinstance(messages, list):
        return
    for message in messages:
        if not isinstance(message, dict) or message.get("type") != ROOM_INFO_TYPE:
            continue
        data = message.get("data")
        if not isinstance(data, dict):
            continue
        room = data.get("roomInfo")
        user = data.get("user")
        if not isinstance(room, dict) or not isinstance(user, dict):
            continue
        yield room, user


class StreamStateMachine:
    """Turns room-info telemetry into live/offline transitions.

    Every transition flips ``live_status`` before its first ``await``, so a
    duplicate event or a concurrent forced offline sees the new status and
    becomes a no-op.
    """

    def __init__(
        self,
        session_store: SessionStore,
        router: NotificationRouter,
        notify_owner: Callable[[str, str], Awaitable[Any]] | None = None,
        clock: Callable[[], int] | None = None,
    ):
        self.session_store = session_store
        self.router = router
        self._notify_owner = notify_owner
        self._clock = clock or now_ms

    def is_live(self, account: str) -> bool:
        return self.session_store.is_live(account)

    async def handle_frame(self, account: str, frame: Any) -> FrameResult:
        result = FrameResult()
        for room, user in iter_room_updates(frame):
            is_live = bool(room.get("isLive"))
            if is_live:
                result.live_seen = True
            transition = await self.apply_room_info(account, room, user)
            if transition is not None:
                result.transitions.append(transition)
        return result

    async def apply_room_info(self, account: str, room: dict, user: dict) -> Transition | None:
        key = str(user.get("uniqueId") or account)
        was_live = self.session_store.is_live(key)
        is_live = bool(room.get("isLive"))

        if is_live and not was_live:
            return await self._go_live(key, room, user)
        if not is_live and was_live:
            cached_user = self.session_store.user_cache.get(key)
            if user.get("avatarUrl") or not cached_user:
                snapshot = StreamUser.from_payload(user, key)
            else:
                snapshot = StreamUser.from_payload(cached_user, key)
            title = _clean_title(room.get("title")) or self.session_store.title_cache.get(key)
            return await self._go_offline(key, snapshot, title, room.get("coverUrl") or None)
        return None

    async def force_offline(self, account: str) -> Transition | None:
        if not self.session_store.is_live(account):
            return None
        snapshot = StreamUser.from_payload(self.session_store.user_cache.get(account), account)
        title = self.session_store.title_cache.get(account)
        return await self._go_offline(account, snapshot, title, None)

    async def _go_live(self, key: str, room: dict, user: dict) -> Transition:
        received_ms = self._clock()
        started_ms = _start_ms(room, received_ms)
        detected_ms = received_ms - started_ms
        if detected_ms <= FAST_DETECTION_MS:
            LOG.info("[%s] Detected live within 30 seconds.", key)
        else:
            LOG.info("[%s] Detected live after %d seconds.", key, round(detected_ms / 1000))

        stream_user = StreamUser.from_payload(user, key)
        title = _clean_title(room.get("title"))
        store = self.session_store
        store.live_status[key] = True
        store.stream_start_times[key] = started_ms
        store.user_cache[key] = stream_user.to_payload()
        if title:
            store.title_cache[key] = title
        store.save()

        await self.router.announce_live(
            StreamSession(
                account=key,
                started_ms=started_ms,
                user=stream_user,
                title=title,
                cover_url=room.get("coverUrl") or None,
            )
        )
        await self._owner_notice(f"🔴 {key} is now LIVE!", "live")
        return Transition(account=key, kind=TRANSITION_LIVE, started_ms=started_ms)

    async def _go_offline(
        self,
        key: str,
        user: StreamUser,
        title: str | None,
        cover_url: str | None,
    ) -> Transition:
        ended_ms = self._clock()
        store = self.session_store
        started_ms = store.stream_start_times.get(key, ended_ms)
        store.live_status[key] = False
        store.title_cache.pop(key, None)
        store.save()

        await self.router.announce_ended(
            StreamSession(
                account=key,
                started_ms=started_ms,
                user=user,
                title=title,
                cover_url=cover_url,
            ),
            ended_ms,
        )
        return Transition(
            account=key,
            kind=TRANSITION_OFFLINE,
            started_ms=started_ms,
            ended_ms=ended_ms,
        )

    async def _owner_notice(self, message: str, kind: str) -> None:
        if self._notify_owner is not None:
            await self._notify_owner(message, kind)
