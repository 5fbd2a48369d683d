from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import toml

from signals.engine import CLOSE_ON_KEYS, DEFAULT_CLOSE_ON, ClosingPolicy

_DAILY_TIME = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True)
class RelayConfig:

    """
    Relay bot configuration, normally read from config.toml.

    Key design:
      - `close_on` lists the status kinds that take a signal out of the live
        store ("hit", "sl", "tp1".."tp5", "tp_final"). Cancel always closes.
      - Journal days are cut in `timezone`; the daily summary is sent at
        `daily_time` (HH:MM) in that same zone.
    """

    bot_token: str = ""
    channel: str = ""

    # Seed list used only while the persisted owner set is empty
    owner_ids: Tuple[int, ...] = ()

    data_file: str = "data.json"

    # ------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------
    timezone: str = "Asia/Jakarta"
    daily_time: str = "23:30"

    # ------------------------------------------------------------------
    # Signal lifecycle
    # ------------------------------------------------------------------
    close_on: Tuple[str, ...] = field(default_factory=lambda: DEFAULT_CLOSE_ON)

    log_file: str = "logs/relay_log.txt"

    def __post_init__(self) -> None:
        errors = []

        # --- Telegram ---
        if not self.bot_token:
            errors.append("bot_token must not be empty")
        if not self.channel:
            errors.append("channel must not be empty")
        for oid in self.owner_ids:
            if not isinstance(oid, int) or isinstance(oid, bool):
                errors.append(f"owner_ids must be integers, got {oid!r}")

        # --- Storage ---
        if not self.data_file:
            errors.append("data_file must not be empty")

        # --- Journal schedule ---
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"timezone must be a known IANA zone, got '{self.timezone}'")
        if not _DAILY_TIME.match(self.daily_time or ""):
            errors.append(f"daily_time must be HH:MM, got '{self.daily_time}'")

        # --- Closing policy ---
        unknown = sorted(set(self.close_on) - CLOSE_ON_KEYS)
        if unknown:
            errors.append(
                f"close_on keys must be among {sorted(CLOSE_ON_KEYS)}, got {unknown}"
            )

        if errors:
            raise ValueError(
                "Invalid RelayConfig:\n" + "\n".join(f"  • {e}" for e in errors)
            )

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def daily_hour_minute(self) -> Tuple[int, int]:
        hour, minute = self.daily_time.split(":")
        return int(hour), int(minute)

    @property
    def closing_policy(self) -> ClosingPolicy:
        return ClosingPolicy.from_keys(self.close_on)

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "RelayConfig":
        tg = cfg.get("telegram", {})
        storage = cfg.get("storage", {})
        journal = cfg.get("journal", {})
        signals = cfg.get("signals", {})
        logs = cfg.get("logging", {})

        kwargs: Dict[str, Any] = {
            "bot_token": str(tg.get("bot_token", "")),
            "channel": str(tg.get("channel", "")),
            "owner_ids": tuple(tg.get("owner_ids", ())),
        }
        if "data_file" in storage:
            kwargs["data_file"] = storage["data_file"]
        if "timezone" in journal:
            kwargs["timezone"] = journal["timezone"]
        if "daily_time" in journal:
            kwargs["daily_time"] = journal["daily_time"]
        if "close_on" in signals:
            kwargs["close_on"] = tuple(str(k).strip().lower() for k in signals["close_on"])
        if "log_file" in logs:
            kwargs["log_file"] = logs["log_file"]
        return cls(**kwargs)


def load_config(path: Optional[Union[str, Path]] = None) -> RelayConfig:
    """
    Load config.toml; without an explicit path, look next to the caller's
    package first and then one directory up.
    """
    if path is None:
        path = Path(__file__).with_name("config.toml")
        if not path.exists():
            path = Path(__file__).parent.parent / "config.toml"
    return RelayConfig.from_dict(toml.load(path))
