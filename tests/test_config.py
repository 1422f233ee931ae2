"""Tests for loading the bridge configuration."""

import json

import pytest

from core.config import ConfigError, load_config


def _write(tmp_path, data):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def _minimal():
    return {
        "irc": {"server": "irc.example.net", "channel": "#team", "nick": "slackbridge"},
        "slack": {"bot_token": "xoxb-1", "app_token": "xapp-1", "channel": "team"},
    }


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        config = load_config(_write(tmp_path, _minimal()))

        assert config.irc.server == "irc.example.net"
        assert config.irc.port == 6667
        assert config.irc.tls is False
        assert config.irc.suffix == "_"
        assert config.slack.icon == ""
        assert config.blacklist_users == []
        assert config.reconnect_delay == 30
        assert config.presence_poll_interval == 60

    def test_full_config(self, tmp_path):
        data = _minimal()
        data["irc"].update({"port": 6697, "tls": True, "suffix": "|slack"})
        data["slack"]["icon"] = "https://robohash.org/$username.png"
        data["blacklist_users"] = ["slackbot", "github"]
        data["reconnect_delay"] = 5
        config = load_config(_write(tmp_path, data))

        assert config.irc.port == 6697
        assert config.irc.tls is True
        assert config.irc.suffix == "|slack"
        assert config.slack.icon == "https://robohash.org/$username.png"
        assert config.blacklist_users == ["slackbot", "github"]
        assert config.reconnect_delay == 5.0

    def test_slack_channel_hash_is_stripped(self, tmp_path):
        data = _minimal()
        data["slack"]["channel"] = "#team"
        assert load_config(_write(tmp_path, data)).slack.channel == "team"

    def test_config_is_frozen(self, tmp_path):
        config = load_config(_write(tmp_path, _minimal()))
        with pytest.raises(AttributeError):
            config.irc.nick = "other"

    @pytest.mark.parametrize(
        "section,key",
        [("irc", "server"), ("irc", "channel"), ("irc", "nick"), ("slack", "bot_token"), ("slack", "app_token"), ("slack", "channel")],
    )
    def test_missing_required_setting(self, tmp_path, section, key):
        data = _minimal()
        del data[section][key]
        with pytest.raises(ConfigError, match=f"{section}.{key}"):
            load_config(_write(tmp_path, data))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Could not read"):
            load_config(str(tmp_path / "absent.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="Could not parse"):
            load_config(str(path))

    def test_top_level_must_be_object(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, ["irc"]))
