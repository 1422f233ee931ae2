from __future__ import annotations

import json
from typing import Any, Dict, List

from core.models import AppConfig, IrcConfig, SlackConfig


class ConfigError(Exception):
    """Raised when the bridge configuration cannot be used to start."""


def _required(section: Dict[str, Any], section_name: str, key: str) -> str:
    value = str(section.get(key, "") or "").strip()
    if not value:
        raise ConfigError(f"Missing required setting '{section_name}.{key}'")
    return value


def load_config(path: str) -> AppConfig:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Could not parse config file {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    irc_raw = raw.get("irc", {})
    slack_raw = raw.get("slack", {})

    irc = IrcConfig(
        server=_required(irc_raw, "irc", "server"),
        channel=_required(irc_raw, "irc", "channel"),
        nick=_required(irc_raw, "irc", "nick"),
        port=int(irc_raw.get("port", 6667)),
        tls=bool(irc_raw.get("tls", False)),
        tls_verify=bool(irc_raw.get("tls_verify", True)),
        suffix=str(irc_raw.get("suffix", "_")),
    )

    slack = SlackConfig(
        bot_token=_required(slack_raw, "slack", "bot_token"),
        app_token=_required(slack_raw, "slack", "app_token"),
        # Channel names are configured the way people type them
        channel=_required(slack_raw, "slack", "channel").lstrip("#"),
        icon=str(slack_raw.get("icon", "")),
    )

    blacklist: List[str] = [str(name) for name in raw.get("blacklist_users", [])]

    return AppConfig(
        irc=irc,
        slack=slack,
        blacklist_users=blacklist,
        reconnect_delay=float(raw.get("reconnect_delay", 30)),
        presence_poll_interval=float(raw.get("presence_poll_interval", 60)),
    )
