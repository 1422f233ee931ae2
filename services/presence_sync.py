from core.session_registry import SessionRegistry
from services.mirror_supervisor import AWAY_REASON


class PresenceSynchronizer:
    """Mirrors Slack away/active presence onto the member's IRC away status."""

    def __init__(self, registry: SessionRegistry, logger):
        self.registry = registry
        self.logger = logger

    async def apply(self, user_id: str, presence: str) -> bool:
        session = self.registry.get(user_id)
        if session is None:
            return False
        reason = AWAY_REASON if presence == "away" else ""
        await session.connection.set_away(reason)
        self.logger.debug(f"{session.nickname} is now {'away' if reason else 'active'}")
        return True
