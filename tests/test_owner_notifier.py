import asyncio
from types import SimpleNamespace

import discord

from owner_notifier import NOTICE_COLORS, OwnerNotifier


class FakeUser:
    def __init__(self, error: Exception | None = None):
        self.sent = []
        self.error = error

    async def send(self, embed=None):
        if self.error is not None:
            raise self.error
        self.sent.append(embed)


class FakeUserDirectory:
    def __init__(self, user: FakeUser):
        self.user = user
        self.fetches = []

    async def fetch_user(self, user_id):
        self.fetches.append(user_id)
        return self.user


def test_notify_without_owner_is_a_no_op():
    directory = FakeUserDirectory(FakeUser())
    notifier = OwnerNotifier(None, directory.fetch_user)

    assert asyncio.run(notifier.notify("hello")) is False
    assert directory.fetches == []


def test_notify_sends_colored_embed_and_caches_user():
    user = FakeUser()
    directory = FakeUserDirectory(user)
    notifier = OwnerNotifier(42, directory.fetch_user)

    async def _run():
        await notifier.notify("quota warning", "warn")
        await notifier.notify("unknown kind", "mystery")

    asyncio.run(_run())

    assert directory.fetches == [42]
    assert user.sent[0].description == "quota warning"
    assert user.sent[0].color.value == NOTICE_COLORS["warn"]
    assert user.sent[1].color.value == NOTICE_COLORS["info"]


def test_notify_failure_is_logged(caplog):
    error = discord.Forbidden(SimpleNamespace(status=403, reason="Forbidden"), "Cannot DM")
    notifier = OwnerNotifier(42, FakeUserDirectory(FakeUser(error)).fetch_user)

    with caplog.at_level("ERROR", logger="live_notifier"):
        assert asyncio.run(notifier.notify("hello")) is False

    assert "Failed to DM owner" in caplog.text
