"""Tests for configuration and the feed factory."""

import logging
import os
from unittest.mock import patch

from pushfeed.config import DEFAULT_MAX_MESSAGE_SIZE, FeedConfig
from pushfeed.factory import create_feed, create_transport
from pushfeed.feed import Feed
from pushfeed.simulator import SimulatorTransport
from pushfeed.websocket_client import WebSocketTransport


class TestFeedConfig:
    """Environment parsing and connect() overrides."""

    def test_from_env_defaults(self):
        config = FeedConfig.from_env({})
        assert config == FeedConfig()
        assert config.url == ""
        assert config.auth_token is None

    def test_from_env_values(self):
        config = FeedConfig.from_env(
            {
                "PUSHFEED_URL": " wss://feed.example.test ",
                "PUSHFEED_AUTH_TOKEN": "tok",
                "PUSHFEED_LOG_LEVEL": "info",
                "PUSHFEED_MAX_MESSAGE_SIZE": "1024",
                "PUSHFEED_SIM_INTERVAL": "0.25",
            }
        )
        assert config.url == "wss://feed.example.test"
        assert config.auth_token == "tok"
        assert config.log_level == "info"
        assert config.max_message_size == 1024
        assert config.sim_interval == 0.25

    def test_invalid_number_falls_back(self, caplog):
        config = FeedConfig.from_env({"PUSHFEED_MAX_MESSAGE_SIZE": "huge"})
        assert config.max_message_size == DEFAULT_MAX_MESSAGE_SIZE
        assert "PUSHFEED_MAX_MESSAGE_SIZE" in caplog.text

    def test_reads_os_environ(self):
        with patch.dict(os.environ, {"PUSHFEED_URL": "wss://env.example.test"}, clear=True):
            assert FeedConfig.from_env().url == "wss://env.example.test"

    def test_merged(self, caplog):
        base = FeedConfig(url="wss://a", auth_token="tok")
        assert base.merged(None) is base
        assert base.merged("wss://b") == FeedConfig(url="wss://b", auth_token="tok")
        other = FeedConfig(url="wss://c")
        assert base.merged(other) is other
        merged = base.merged({"auth_token": "new", "colour": "blue"})
        assert merged == FeedConfig(url="wss://a", auth_token="new")
        assert "colour" in caplog.text
        assert base.merged(42) is base


class TestFactory:
    """Transport selection."""

    def test_simulator_without_url(self):
        transport = create_transport(FeedConfig(sim_interval=0.1))
        assert isinstance(transport, SimulatorTransport)
        assert transport._interval == 0.1

    def test_websocket_with_url(self):
        config = FeedConfig(url="wss://feed.example.test")
        transport = create_transport(config)
        assert isinstance(transport, WebSocketTransport)
        assert transport.config is config

    def test_create_feed_from_environment(self):
        with patch.dict(os.environ, {}, clear=True):
            feed = create_feed()
        assert isinstance(feed, Feed)
        assert isinstance(feed.transport, SimulatorTransport)
        assert not feed.transport.connected

    def test_create_feed_applies_log_level(self):
        create_feed(FeedConfig(log_level="warning"))
        assert logging.getLogger("pushfeed").level == logging.WARNING

    def test_invalid_log_level_ignored(self, feed, caplog):
        feed.set_log_level("chatty")
        assert logging.getLogger("pushfeed").level == logging.DEBUG
        assert "Ignoring invalid log level" in caplog.text
