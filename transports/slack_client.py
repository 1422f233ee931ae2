# Slack transport client
import asyncio
from typing import Any, Dict, List, Optional, Union

import aiohttp
from slack_sdk.socket_mode.aiohttp import SocketModeClient
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse
from slack_sdk.web.async_client import AsyncWebClient

from core.models import MessageSubtype, PresenceChangeEvent, SlackConfig, SlackMessageEvent, SlackUser

SlackEvent = Union[SlackMessageEvent, PresenceChangeEvent]


def parse_events(event: Dict[str, Any]) -> List[SlackEvent]:
    """Turn a raw Events API payload into bridge events."""
    event_type = event.get("type")
    if event_type == "presence_change":
        # Batched presence changes carry "users" instead of "user"
        users = event.get("users") or [event.get("user")]
        presence = str(event.get("presence", ""))
        return [PresenceChangeEvent(user=str(user), presence=presence) for user in users if user]
    if event_type == "message":
        return [SlackMessageEvent(
            channel=str(event.get("channel", "")),
            user=str(event.get("user", "")),
            text=str(event.get("text", "") or ""),
            subtype=MessageSubtype.parse(event.get("subtype")),
            username=str(event.get("username", "") or ""),
        )]
    return []


class SlackClient:
    def __init__(self, config: SlackConfig, logger):
        self.config = config
        self.logger = logger
        self.events: asyncio.Queue = asyncio.Queue()
        self.session: Optional[aiohttp.ClientSession] = None
        self.web: Optional[AsyncWebClient] = None
        self.socket: Optional[SocketModeClient] = None

    def _get_web(self) -> AsyncWebClient:
        if self.web is None:
            self.session = aiohttp.ClientSession()
            self.web = AsyncWebClient(token=self.config.bot_token, session=self.session)
        return self.web

    async def connect(self):
        self.logger.info("Connecting to Slack Socket Mode")
        self.socket = SocketModeClient(app_token=self.config.app_token, web_client=self._get_web())
        self.socket.socket_mode_request_listeners.append(self._process_request)
        await self.socket.connect()
        self.logger.info("Slack connected via Socket Mode")

    async def close(self):
        if self.socket is not None:
            await self.socket.close()
            self.socket = None
        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None
        self.web = None

    async def _process_request(self, client: SocketModeClient, req: SocketModeRequest):
        # Acknowledge first so Slack doesn't redeliver
        await client.send_socket_mode_response(SocketModeResponse(envelope_id=req.envelope_id))
        if req.type != "events_api":
            return
        raw = req.payload.get("event", {})
        events = parse_events(raw)
        if not events:
            self.logger.debug(f"Ignoring Slack event type {raw.get('type')}")
        for event in events:
            self.events.put_nowait(event)

    async def auth_user_id(self) -> str:
        response = await self._get_web().auth_test()
        return str(response["user_id"])

    async def resolve_channel_id(self, name: str) -> str:
        async for page in await self._get_web().conversations_list(
            types="public_channel,private_channel", exclude_archived=True, limit=200
        ):
            for channel in page.get("channels", []):
                if channel.get("name") == name:
                    return str(channel["id"])
        raise LookupError(f"Slack channel '{name}' not found")

    async def list_channel_members(self, channel_id: str) -> List[str]:
        members: List[str] = []
        async for page in await self._get_web().conversations_members(channel=channel_id, limit=200):
            members.extend(str(member) for member in page.get("members", []))
        return members

    async def list_users(self) -> List[SlackUser]:
        users: List[SlackUser] = []
        async for page in await self._get_web().users_list(limit=200):
            for user in page.get("members", []):
                users.append(SlackUser(id=str(user["id"]), name=str(user.get("name", ""))))
        return users

    async def get_user(self, user_id: str) -> SlackUser:
        response = await self._get_web().users_info(user=user_id)
        user = response["user"]
        return SlackUser(id=str(user["id"]), name=str(user.get("name", "")))

    async def get_presence(self, user_id: str) -> str:
        response = await self._get_web().users_getPresence(user=user_id)
        return str(response.get("presence", ""))

    async def post_message(self, channel_id: str, text: str, username: str, icon_url: Optional[str] = None):
        kwargs: Dict[str, Any] = {"channel": channel_id, "text": text, "username": username, "parse": "full"}
        if icon_url:
            kwargs["icon_url"] = icon_url
        await self._get_web().chat_postMessage(**kwargs)
