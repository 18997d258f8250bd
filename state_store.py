from __future__ import annotations

import json
import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any


LOG = logging.getLogger("live_notifier")

SESSION_SECTIONS = (
    "sentMessages",
    "streamStartTimes",
    "liveStatus",
    "userCache",
    "titleCache",
)
DEFAULT_SESSION_STATE: dict[str, Any] = {section: {} for section in SESSION_SECTIONS}


class JsonStateFile:
    """Whole-file JSON persistence.

    Missing files and unreadable or non-object JSON both load as a copy of
    ``defaults``; the latter is logged as a warning. Writes go to a sibling
    temp file which then replaces the target.
    """

    def __init__(self, path: Path, defaults: dict[str, Any]):
        self.path = path
        self.defaults = defaults

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return deepcopy(self.defaults)
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOG.warning("Failed to read %s, starting fresh: %s", self.path.name, exc)
            return deepcopy(self.defaults)
        if not isinstance(data, dict):
            LOG.warning("Ignoring %s: expected a JSON object", self.path.name)
            return deepcopy(self.defaults)
        merged = deepcopy(self.defaults)
        merged.update(data)
        return merged

    def save(self, state: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with temp_path.open("w", encoding="utf-8") as fh:
            json.dump(state, fh, indent=2, sort_keys=True)
            fh.write("\n")
        os.replace(temp_path, self.path)


class SessionStore:
    """Persisted per-account stream bookkeeping.

    The dict attributes are mutated in place by the state machine and the
    notification router; callers flush with ``save()`` after each change.
    """

    def __init__(self, path: Path):
        self.file = JsonStateFile(path, DEFAULT_SESSION_STATE)
        self.sent_messages: dict[str, str] = {}
        self.stream_start_times: dict[str, int] = {}
        self.live_status: dict[str, bool] = {}
        self.user_cache: dict[str, dict[str, Any]] = {}
        self.title_cache: dict[str, str] = {}

    @property
    def path(self) -> Path:
        return self.file.path

    def load(self) -> None:
        data = self.file.load()
        sections = {}
        for section in SESSION_SECTIONS:
            value = data.get(section)
            if not isinstance(value, dict):
                LOG.warning("Resetting malformed %r section in %s", section, self.path.name)
                value = {}
            sections[section] = value

        self.sent_messages = {key: str(value) for key, value in sections["sentMessages"].items()}
        self.stream_start_times = {}
        for key, value in sections["streamStartTimes"].items():
            try:
                self.stream_start_times[key] = int(value)
            except (TypeError, ValueError):
                continue
        self.live_status = {key: bool(value) for key, value in sections["liveStatus"].items()}
        self.user_cache = {
            key: value for key, value in sections["userCache"].items() if isinstance(value, dict)
        }
        self.title_cache = {
            key: value for key, value in sections["titleCache"].items() if isinstance(value, str)
        }

    def snapshot(self) -> dict[str, Any]:
        return {
            "sentMessages": dict(self.sent_messages),
            "streamStartTimes": dict(self.stream_start_times),
            "liveStatus": dict(self.live_status),
            "userCache": deepcopy(self.user_cache),
            "titleCache": dict(self.title_cache),
        }

    def save(self) -> None:
        self.file.save(self.snapshot())

    def is_live(self, account: str) -> bool:
        return bool(self.live_status.get(account))

    def reset_live_status(self, accounts) -> None:
        for account in accounts:
            self.live_status[account] = False
        self.save()
