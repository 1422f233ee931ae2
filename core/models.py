# Core data models for bridge
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

@dataclass(frozen=True)
class IrcConfig:
    server: str
    channel: str
    nick: str
    port: int = 6667
    tls: bool = False
    tls_verify: bool = True
    suffix: str = "_"

@dataclass(frozen=True)
class SlackConfig:
    bot_token: str
    app_token: str
    channel: str
    icon: str = ""

@dataclass(frozen=True)
class AppConfig:
    irc: IrcConfig
    slack: SlackConfig
    blacklist_users: List[str] = field(default_factory=list)
    reconnect_delay: float = 30.0
    presence_poll_interval: float = 60.0


@dataclass
class MirrorSession:
    """One Slack member puppeted on IRC.

    ``active`` only ever goes from True to False, when the registry removes
    the record. A rejoin creates a new record.
    """
    id: str
    display_name: str
    nickname: str
    connection: Any = None
    active: bool = True


class MessageSubtype(Enum):
    PLAIN = ""
    BOT_MESSAGE = "bot_message"
    ME_MESSAGE = "me_message"
    CHANNEL_JOIN = "channel_join"
    CHANNEL_LEAVE = "channel_leave"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MessageSubtype":
        value = value or ""
        for subtype in cls:
            if subtype is not cls.OTHER and subtype.value == value:
                return subtype
        return cls.OTHER

@dataclass(frozen=True)
class SlackMessageEvent:
    channel: str
    user: str
    text: str
    subtype: MessageSubtype = MessageSubtype.PLAIN
    username: str = ""

@dataclass(frozen=True)
class PresenceChangeEvent:
    user: str
    presence: str

@dataclass(frozen=True)
class SlackUser:
    id: str
    name: str
