"""Factory for creating the price feed."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from .config import FeedConfig
from .service import FeedService

logger = logging.getLogger(__name__)


def create_feed_service(
    environ: Mapping[str, str] | None = None,
    feed_logger: logging.Logger | None = None,
) -> FeedService:
    """Create a FeedService configured from environment variables.

    - FEED_HUB_URL set and non-empty → live WebSocket transport
    - Otherwise → local emulation

    Returns a disconnected service. Caller must await feed.connect(venue_id).
    """
    config = FeedConfig.from_env(os.environ if environ is None else environ)

    if config.live:
        logger.info("Price feed: live hub at %s", config.hub_url)
    else:
        logger.info("Price feed: local emulation")
    return FeedService(config, logger=feed_logger)
