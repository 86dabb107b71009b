"""
Exceptions for the price feed.

Exception hierarchy:
- FeedError (base)
  - ConnectionError: invalid venue id or failed initial handshake
  - TransportError: connection dropped after a successful connect
  - TeardownError: failure while stopping the transport
  - CapabilityGapWarning: channel membership could not be restored
  - MessageParseError: malformed PriceUpdate payload
  - ConfigurationError: invalid feed configuration

Only ConnectionError crosses FeedService.connect(). Everything else is
logged and reflected through connection state.
"""

from __future__ import annotations

from typing import Any


class FeedError(Exception):
    """Base exception for all price feed errors."""

    def __init__(
        self,
        message: str,
        *,
        component: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class ConnectionError(FeedError):
    """Raised when connect() is rejected or the initial handshake fails."""

    def __init__(
        self,
        message: str,
        *,
        venue_id: str | None = None,
        url: str | None = None,
        component: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.venue_id = venue_id
        self.url = url
        details = details or {}
        if venue_id:
            details["venue_id"] = venue_id
        if url:
            details["url"] = url
        super().__init__(message, component=component, details=details)


class TransportError(FeedError):
    """A live session dropped. Recovered by the reconnect loop, never raised to callers."""

    def __init__(
        self,
        message: str,
        *,
        retry_count: int = 0,
        component: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.retry_count = retry_count
        details = details or {}
        details["retry_count"] = retry_count
        super().__init__(message, component=component, details=details)


class TeardownError(FeedError):
    """Stopping the transport failed. Logged; cache and state are cleared anyway."""


class CapabilityGapWarning(FeedError, UserWarning):
    """The channel subscription could not be performed or verified."""

    def __init__(
        self,
        message: str,
        *,
        channel: str,
        connection_id: str | None = None,
        reconnect: bool = False,
        component: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.channel = channel
        self.connection_id = connection_id
        self.reconnect = reconnect
        details = details or {}
        details["channel"] = channel
        details["reconnect"] = reconnect
        if connection_id:
            details["connection_id"] = connection_id
        super().__init__(message, component=component, details=details)


class MessageParseError(FeedError):
    """Raised when a PriceUpdate payload cannot be turned into a Tick."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        component: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.field = field
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, component=component, details=details)


class ConfigurationError(FeedError):
    """Raised when feed configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any | None = None,
        component: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)
