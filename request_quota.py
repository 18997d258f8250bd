from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable

from state_store import JsonStateFile


LOG = logging.getLogger("live_notifier")
USAGE_LOG_EVERY = 100


def utc_today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class RequestQuota:
    """Daily cap on outbound telemetry connection attempts.

    The counter rolls over on the first access after the UTC date changes.
    Owner notices fire only when the count lands exactly on the warning
    threshold or on the limit.
    """

    def __init__(
        self,
        path: Path,
        limit: int,
        warning_threshold: int,
        notify: Callable[[str, str], Awaitable[Any]] | None = None,
        today: Callable[[], str] | None = None,
    ):
        if warning_threshold > limit:
            raise ValueError("warning_threshold must be <= limit")
        self.limit = limit
        self.warning_threshold = warning_threshold
        self._notify = notify
        self._today = today or utc_today
        self.file = JsonStateFile(path, {"date": self._today(), "count": 0})
        self.date = self._today()
        self.count = 0

    def load(self) -> None:
        data = self.file.load()
        date = data.get("date")
        count = data.get("count")
        if not isinstance(date, str) or not isinstance(count, int) or isinstance(count, bool):
            LOG.warning("Failed to read %s, resetting counter.", self.file.path.name)
            date, count = self._today(), 0
        self.date = date
        self.count = max(0, count)

    def save(self) -> None:
        self.file.save({"date": self.date, "count": self.count})

    def reset_if_new_day(self) -> bool:
        today = self._today()
        if self.date == today:
            return False
        self.date = today
        self.count = 0
        self.save()
        LOG.info("Request counter reset for new day (%s)", today)
        return True

    def can_make_request(self) -> bool:
        self.reset_if_new_day()
        return self.count < self.limit

    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    async def record_request(self) -> int:
        self.count += 1
        self.save()
        count = self.count

        if count % USAGE_LOG_EVERY == 0:
            LOG.info("%d/%d requests used today.", count, self.limit)

        if count == self.warning_threshold:
            await self._send_notice(
                f"You've reached **{self.warning_threshold}/{self.limit}** API requests for today.",
                "warn",
            )
        if count == self.limit:
            await self._send_notice(
                f"**Daily API request limit ({self.limit}) reached!** "
                "No new connections will be made until reset.",
                "error",
            )
        return count

    async def _send_notice(self, message: str, kind: str) -> None:
        LOG.warning(message.replace("**", ""))
        if self._notify is not None:
            await self._notify(message, kind)
