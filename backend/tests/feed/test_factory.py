"""Tests for FeedConfig and the feed service factory."""

import os
from unittest.mock import patch

import pytest

from assetsim.feed.config import FeedConfig
from assetsim.feed.errors import ConfigurationError
from assetsim.feed.factory import create_feed_service
from assetsim.feed.service import FeedService


class TestFeedConfig:
    """Validation and environment parsing."""

    def test_defaults(self):
        config = FeedConfig()
        assert config.hub_url == ""
        assert not config.live
        assert config.throttle_interval_s == 0.25
        assert config.emulation_period_s == 1.0
        assert config.symbols is None
        assert config.max_reconnect_attempts is None

    def test_hub_url_is_stripped(self):
        config = FeedConfig(hub_url="  wss://feed.test/hub  ")
        assert config.hub_url == "wss://feed.test/hub"
        assert config.live

    def test_symbols_become_tuple(self):
        assert FeedConfig(symbols=["AAPL"]).symbols == ("AAPL",)

    def test_base_price_floor(self):
        """Prices that round to at least one cent are accepted."""
        config = FeedConfig(base_prices={"PENNY": "0.006"})
        assert config.base_prices["PENNY"] == "0.006"

    @pytest.mark.parametrize(
        "kwargs,field",
        [
            ({"throttle_interval_s": 0}, "throttle_interval_s"),
            ({"emulation_period_s": -1}, "emulation_period_s"),
            ({"connect_timeout_s": 0}, "connect_timeout_s"),
            ({"max_reconnect_attempts": -1}, "max_reconnect_attempts"),
            ({"symbols": ()}, "symbols"),
            ({"max_step_percent": 0}, "max_step_percent"),
            ({"base_prices": {"AAPL": 0}}, "base_prices"),
            ({"base_prices": {"AAPL": "0.004"}}, "base_prices"),
            ({"base_prices": {"AAPL": "abc"}}, "base_prices"),
        ],
    )
    def test_invalid_values(self, kwargs, field):
        with pytest.raises(ConfigurationError) as exc_info:
            FeedConfig(**kwargs)
        assert exc_info.value.field == field

    def test_from_env(self):
        env = {
            "FEED_HUB_URL": "wss://feed.test/hub",
            "FEED_THROTTLE_MS": "100",
            "FEED_EMULATION_PERIOD_MS": "500",
            "FEED_CONNECT_TIMEOUT_S": "5",
            "FEED_MAX_RECONNECT_ATTEMPTS": "3",
        }
        config = FeedConfig.from_env(env)
        assert config.live
        assert config.throttle_interval_s == 0.1
        assert config.emulation_period_s == 0.5
        assert config.connect_timeout_s == 5.0
        assert config.max_reconnect_attempts == 3

    def test_from_env_blank_values_use_defaults(self):
        config = FeedConfig.from_env({"FEED_THROTTLE_MS": " ", "FEED_HUB_URL": ""})
        assert config.throttle_interval_s == 0.25
        assert not config.live

    def test_from_env_rejects_non_numbers(self):
        with pytest.raises(ConfigurationError) as exc_info:
            FeedConfig.from_env({"FEED_THROTTLE_MS": "fast"})
        assert exc_info.value.field == "FEED_THROTTLE_MS"


class TestFactory:
    """Tests for create_feed_service factory."""

    def test_emulates_when_no_hub_url(self):
        """Test that emulation is selected when FEED_HUB_URL is not set."""
        with patch.dict(os.environ, {}, clear=True):
            feed = create_feed_service()

        assert isinstance(feed, FeedService)
        assert not feed.config.live

    def test_emulates_when_hub_url_whitespace(self):
        """Test that emulation is selected when FEED_HUB_URL is whitespace."""
        with patch.dict(os.environ, {"FEED_HUB_URL": "   "}, clear=True):
            feed = create_feed_service()

        assert not feed.config.live

    def test_live_when_hub_url_set(self):
        """Test that the live transport is selected when FEED_HUB_URL is set."""
        with patch.dict(os.environ, {"FEED_HUB_URL": "wss://feed.test/hub"}, clear=True):
            feed = create_feed_service()

        assert feed.config.live
        assert feed.config.hub_url == "wss://feed.test/hub"

    def test_explicit_environ(self):
        feed = create_feed_service({"FEED_THROTTLE_MS": "50"})
        assert feed.config.throttle_interval_s == 0.05

    def test_service_starts_disconnected(self):
        with patch.dict(os.environ, {}, clear=True):
            feed = create_feed_service()

        assert feed.current_venue() is None
        assert not feed.is_connected()
