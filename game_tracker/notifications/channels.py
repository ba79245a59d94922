"""Delivery channels for Discord destinations.

A destination is reached either through its webhook URL or, when it only
has a channel id, through the bot REST API. A CircuitBreaker decorator
wraps any channel so an unreachable destination is skipped for a while
instead of being hammered every tick.

Pattern: Decorator (CircuitBreaker wraps any DeliveryChannel).
"""

import enum
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from game_tracker.entities.schemas import Destination

logger = logging.getLogger(__name__)


class DeliveryChannel(ABC):
    """Abstract base for one delivery route to one destination."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs (e.g. 'webhook:<guild>')."""

    @abstractmethod
    async def send(self, payload: dict[str, Any]) -> bool:
        """Deliver a Discord message payload.

        Returns:
            True if delivery succeeded, False otherwise.
        """


class WebhookChannel(DeliveryChannel):
    """Posts messages to a Discord webhook.

    Creates a new ``httpx.AsyncClient`` per call (short-lived, no pooling).
    """

    def __init__(self, guild_id: str, url: str, timeout: float = 10.0) -> None:
        self._guild_id = guild_id
        self._url = url
        self._timeout = timeout

    @property
    def name(self) -> str:
        return f"webhook:{self._guild_id}"

    async def send(self, payload: dict[str, Any]) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=payload)
                if resp.is_success:
                    return True
                logger.warning(
                    "Webhook for guild %s returned %d",
                    self._guild_id, resp.status_code,
                )
                return False
        except httpx.TimeoutException:
            logger.warning("Webhook for guild %s timed out", self._guild_id)
            return False
        except httpx.HTTPError as e:
            logger.warning("Webhook for guild %s failed: %s", self._guild_id, e)
            return False


class BotChannel(DeliveryChannel):
    """Posts messages to a channel through the Discord bot REST API."""

    def __init__(
        self,
        guild_id: str,
        channel_id: str,
        bot_token: str,
        api_url: str = "https://discord.com/api/v10",
        timeout: float = 10.0,
    ) -> None:
        self._guild_id = guild_id
        self._channel_id = channel_id
        self._bot_token = bot_token
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout

    @property
    def name(self) -> str:
        return f"channel:{self._guild_id}/{self._channel_id}"

    async def send(self, payload: dict[str, Any]) -> bool:
        url = f"{self._api_url}/channels/{self._channel_id}/messages"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    url,
                    json=payload,
                    headers={"Authorization": f"Bot {self._bot_token}"},
                )
                if resp.is_success:
                    return True
                logger.warning(
                    "Channel %s of guild %s returned %d",
                    self._channel_id, self._guild_id, resp.status_code,
                )
                return False
        except httpx.TimeoutException:
            logger.warning(
                "Channel %s of guild %s timed out", self._channel_id, self._guild_id
            )
            return False
        except httpx.HTTPError as e:
            logger.warning(
                "Channel %s of guild %s failed: %s", self._channel_id, self._guild_id, e
            )
            return False


def channel_for(
    destination: Destination,
    bot_token: str | None,
    api_url: str = "https://discord.com/api/v10",
    timeout: float = 10.0,
) -> DeliveryChannel | None:
    """Build the delivery channel for a destination, webhook first.

    Returns None when the destination only has a channel id and no bot
    token is configured.
    """
    if destination.webhook_url:
        return WebhookChannel(destination.guild_id, destination.webhook_url, timeout)
    if destination.channel_id and bot_token:
        return BotChannel(
            destination.guild_id, destination.channel_id, bot_token, api_url, timeout
        )
    return None


class CircuitState(enum.Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker(DeliveryChannel):
    """Wraps a DeliveryChannel with circuit breaker protection.

    State machine: CLOSED → OPEN → HALF_OPEN → CLOSED.

    - CLOSED: All requests pass through. Consecutive failures tracked.
    - OPEN: Requests rejected immediately. After recovery_timeout, moves
      to HALF_OPEN.
    - HALF_OPEN: Single trial request allowed. Success → CLOSED, failure → OPEN.
    """

    def __init__(
        self,
        channel: DeliveryChannel,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
    ) -> None:
        self._channel = channel
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_time: float = 0.0

    @property
    def name(self) -> str:
        return self._channel.name

    @property
    def state(self) -> CircuitState:
        return self._state

    async def send(self, payload: dict[str, Any]) -> bool:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time >= self._recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info(
                    "Circuit breaker %s: OPEN → HALF_OPEN (recovery trial)",
                    self.name,
                )
            else:
                logger.debug("Circuit breaker %s: OPEN, rejecting message", self.name)
                return False

        success = await self._channel.send(payload)

        if success:
            if self._state == CircuitState.HALF_OPEN:
                logger.info(
                    "Circuit breaker %s: HALF_OPEN → CLOSED (trial succeeded)",
                    self.name,
                )
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit breaker %s: HALF_OPEN → OPEN (trial failed)",
                    self.name,
                )
            elif self._consecutive_failures >= self._failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit breaker %s: CLOSED → OPEN after %d failures",
                    self.name, self._consecutive_failures,
                )

        return success
