from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any

import discord

from config import Config, ConfigError, load_config
from connection_manager import ConnectionManager
from notification_router import NotificationRouter
from owner_notifier import OwnerNotifier
from request_quota import RequestQuota
from state_store import SessionStore
from stream_state import StreamStateMachine

LOG = logging.getLogger("live_notifier")
LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def setup_logging(config: Config | None = None) -> None:
    level = logging.DEBUG if config is not None and config.debug_logs else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config is not None and config.log_dir is not None:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).date().isoformat()
        handlers.append(
            logging.FileHandler(config.log_dir / f"notifier_log_{today}.txt", encoding="utf-8")
        )
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    logging.getLogger("discord").setLevel(logging.WARNING)
    logging.getLogger("discord.http").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def build_intents() -> discord.Intents:
    intents = discord.Intents.none()
    intents.guilds = True
    intents.guild_messages = True
    intents.dm_messages = True
    return intents


class NotifierBot(discord.Client):
    def __init__(self, config: Config):
        super().__init__(intents=build_intents())
        self.config = config
        self._started = False

        self.session_store = SessionStore(config.state_file)
        self.session_store.load()
        LOG.info("Loaded stream state from %s", config.state_file)

        self.owner_notifier = OwnerNotifier(config.owner_id, self.fetch_user)
        self.quota = RequestQuota(
            config.request_counter_file,
            limit=config.daily_request_limit,
            warning_threshold=config.request_warning_threshold,
            notify=self.owner_notifier.notify,
        )
        self.quota.load()
        self.router = NotificationRouter(self.session_store, self.fetch_alert_channel)
        self.state_machine = StreamStateMachine(
            self.session_store,
            self.router,
            notify_owner=self.owner_notifier.notify,
        )
        self.connections = ConnectionManager(
            config,
            self.quota,
            self.state_machine,
            owner_notifier=self.owner_notifier,
        )

    async def fetch_alert_channel(self) -> Any:
        channel = self.get_channel(self.config.alert_channel_id)
        if channel is None:
            channel = await self.fetch_channel(self.config.alert_channel_id)
        return channel

    async def on_ready(self) -> None:
        # on_ready fires again after gateway resumes.
        if self._started:
            return
        self._started = True

        LOG.info("Logged in as %s", self.user)
        await self.owner_notifier.notify(
            f"Bot restarted and logged in as **{self.user}** 🚀", "success"
        )
        self.session_store.reset_live_status(self.config.tracked_accounts)
        await self.connections.start(self.config.tracked_accounts)

    async def close(self) -> None:
        await self.connections.close()
        await super().close()


async def run_bot(config: Config) -> None:
    async with NotifierBot(config) as bot:
        try:
            await bot.start(config.discord_token)
        except (KeyboardInterrupt, asyncio.CancelledError):
            if not bot.is_closed():
                await bot.close()


def show_local_status(config: Config) -> None:
    session_store = SessionStore(config.state_file)
    session_store.load()
    quota = RequestQuota(
        config.request_counter_file,
        limit=config.daily_request_limit,
        warning_threshold=config.request_warning_threshold,
    )
    quota.load()
    payload = {
        "session": session_store.snapshot(),
        "quota": {
            "date": quota.date,
            "count": quota.count,
            "limit": quota.limit,
            "remaining": quota.remaining(),
        },
        "tracked_accounts": list(config.tracked_accounts),
    }
    print(json.dumps(payload, indent=2, sort_keys=True))


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="EulerStream live alerts for Discord")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("run", help="Log in to Discord and watch every tracked account")
    subparsers.add_parser("status-local", help="Print persisted stream state and quota JSON")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    try:
        config = load_config(".env")
    except ConfigError as exc:
        raise SystemExit(f"Config error: {exc}")
    setup_logging(config)

    if args.command == "run":
        try:
            asyncio.run(run_bot(config))
        except KeyboardInterrupt:
            LOG.info("Stopped by user")
        return
    if args.command == "status-local":
        show_local_status(config)
        return


if __name__ == "__main__":
    main()
