"""Shared pytest fixtures and test doubles."""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.models import AppConfig, IrcConfig, SlackConfig, SlackUser
from core.session_registry import SessionRegistry
from services.mirror_supervisor import MirrorSupervisor
from tests.fakes import FakeConnection


@pytest.fixture
def config():
    return AppConfig(
        irc=IrcConfig(server="irc.test", channel="#bridge", nick="bridge"),
        slack=SlackConfig(
            bot_token="xoxb-test",
            app_token="xapp-test",
            channel="general",
            icon="https://icons.test/$username.png",
        ),
        blacklist_users=["slackbot"],
        reconnect_delay=0,
        presence_poll_interval=0,
    )


@pytest.fixture
def logger():
    return logging.getLogger("tests")


@pytest.fixture
def registry(logger):
    return SessionRegistry(logger)


@pytest.fixture
def slack_client():
    client = MagicMock()
    client.get_presence = AsyncMock(return_value="active")
    client.get_user = AsyncMock(side_effect=lambda user_id: SlackUser(id=user_id, name=f"user-{user_id}"))
    client.post_message = AsyncMock()
    return client


@pytest.fixture
def connections():
    """Every FakeConnection the supervisor creates, in creation order."""
    return []


@pytest.fixture
def connection_factory(connections):
    def factory(nickname, on_connected, on_disconnected):
        connection = FakeConnection(nickname, on_connected, on_disconnected)
        connections.append(connection)
        return connection

    return factory


@pytest.fixture
def supervisor(config, registry, slack_client, logger, connection_factory):
    return MirrorSupervisor(config, registry, slack_client, logger, connection_factory)
