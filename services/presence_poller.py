import asyncio
from typing import Dict

from aiohttp import ClientError
from slack_sdk.errors import SlackApiError


class PresencePoller:
    """Polls Slack presence for every mirrored member.

    Socket Mode does not push presence_change events, so changes are
    detected here and handed to the PresenceSynchronizer.
    """

    def __init__(self, config, registry, slack_client, synchronizer, logger):
        self.config = config
        self.registry = registry
        self.slack_client = slack_client
        self.synchronizer = synchronizer
        self.logger = logger
        self._last_seen: Dict[str, str] = {}
        self._running = False

    def stop(self):
        self._running = False

    async def start(self):
        interval = self.config.presence_poll_interval
        if interval <= 0:
            self.logger.info("Presence polling disabled")
            return
        self._running = True
        while self._running:
            await asyncio.sleep(interval)
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                self.logger.info("Presence polling task cancelled")
                self._running = False
                raise
            except Exception as exc:
                self.logger.error(f"Unexpected error in presence polling loop: {exc}", exc_info=True)

    async def poll_once(self) -> int:
        """Check every mirrored member once; returns how many changes were applied."""
        snapshot = self.registry.snapshot()
        for user_id in list(self._last_seen):
            if user_id not in snapshot:
                del self._last_seen[user_id]

        changed = 0
        for user_id in snapshot:
            try:
                presence = await self.slack_client.get_presence(user_id)
            except (SlackApiError, ClientError) as exc:
                self.logger.warning(f"Could not poll presence for {user_id}: {exc}")
                continue
            previous = self._last_seen.get(user_id)
            self._last_seen[user_id] = presence
            # The first sighting was already applied when the mirror connected
            if previous is None or previous == presence:
                continue
            try:
                applied = await self.synchronizer.apply(user_id, presence)
            except Exception as exc:
                self.logger.error(f"Failed to apply presence {presence!r} for {user_id}: {exc}", exc_info=True)
                continue
            if applied:
                changed += 1
        return changed
