"""Real-time price feed for AssetSim.

Public API:
    Tick                - Immutable price observation dataclass
    ConnectionState     - Feed connection state enum
    ChannelMembership   - Whether the venue channel subscription is in effect
    PriceCache          - Thread-safe latest-tick-per-symbol store
    Throttler           - Trailing-edge per-symbol rate limiter
    Transport           - Abstract live transport; WebSocketTransport implements it
    ConnectionManager   - Live session lifecycle with reconnect backoff
    EmulationEngine     - Synthetic feed for running without a live hub
    FeedService         - Façade selecting live or emulated mode
    FeedConfig          - Validated feed settings (FeedConfig.from_env)
    create_feed_service - Factory that reads the environment
    create_stream_router - FastAPI router factory for the SSE endpoint
"""

from .cache import PriceCache
from .config import FeedConfig
from .connection import RECONNECT_SCHEDULE_MS, ConnectionManager, reconnect_delay_ms
from .errors import (
    CapabilityGapWarning,
    ConfigurationError,
    ConnectionError,
    FeedError,
    MessageParseError,
    TeardownError,
    TransportError,
)
from .factory import create_feed_service
from .models import ChannelMembership, ConnectionState, FeedStatus, Tick
from .service import FeedService
from .simulator import EmulationEngine, RandomWalkSimulator
from .stream import create_stream_router
from .throttle import Throttler
from .transport import Transport, WebSocketTransport

__all__ = [
    "Tick",
    "ConnectionState",
    "ChannelMembership",
    "FeedStatus",
    "PriceCache",
    "Throttler",
    "Transport",
    "WebSocketTransport",
    "ConnectionManager",
    "RECONNECT_SCHEDULE_MS",
    "reconnect_delay_ms",
    "RandomWalkSimulator",
    "EmulationEngine",
    "FeedService",
    "FeedConfig",
    "create_feed_service",
    "create_stream_router",
    "FeedError",
    "ConnectionError",
    "TransportError",
    "TeardownError",
    "CapabilityGapWarning",
    "MessageParseError",
    "ConfigurationError",
]
