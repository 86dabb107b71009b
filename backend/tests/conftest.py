"""Pytest configuration and fixtures."""

import logging

import pytest


@pytest.fixture
def feed_logger(caplog):
    """A dedicated logger for injecting into feed components, captured at DEBUG."""
    logger = logging.getLogger("tests.feed")
    caplog.set_level(logging.DEBUG, logger="tests.feed")
    return logger
