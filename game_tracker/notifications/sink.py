"""Discord notification sink.

Resolves the destinations subscribed to a game, builds the Discord payload
and delivers it to each destination with retries. Each destination's
channel is wrapped in a CircuitBreaker kept across calls.

Delivery failures are isolated per destination. ``DeliveryError`` is raised
only when every destination failed.
"""

import asyncio
import logging
from datetime import date
from typing import Any

from game_tracker.entities.repository import EntityRegistry
from game_tracker.entities.schemas import Destination, Entity, NewsItem, SourceType
from game_tracker.notifications import messages
from game_tracker.notifications.base import DeliveryError, NotificationSink
from game_tracker.notifications.channels import (
    CircuitBreaker,
    CircuitState,
    DeliveryChannel,
    channel_for,
)
from game_tracker.notifications.config import NotificationConfig
from game_tracker.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class DiscordNotificationSink(NotificationSink):
    """Delivers notifications to every guild subscribed to a game."""

    def __init__(
        self,
        registry: EntityRegistry,
        bot_token: str | None = None,
        api_url: str = "https://discord.com/api/v10",
        config: NotificationConfig | None = None,
    ) -> None:
        self._registry = registry
        self._bot_token = bot_token
        self._api_url = api_url
        self._config = config or NotificationConfig()
        self._channels: dict[tuple[str, str | None, str | None], CircuitBreaker] = {}

    async def notify_update(
        self, entity: Entity, source_type: SourceType, item: NewsItem
    ) -> None:
        payload = messages.build_update_message(
            entity, source_type, item, self._config.embed_description_limit
        )
        await self._deliver(entity, f"update_{SourceType(source_type).value}", payload)

    async def notify_released_today(self, entity: Entity) -> None:
        await self._deliver(entity, "released_today", messages.build_released_message(entity))

    async def notify_releasing_soon(
        self, entity: Entity, release_date: date, days_before: int = 7
    ) -> None:
        payload = messages.build_releasing_soon_message(entity, release_date, days_before)
        await self._deliver(entity, "releasing_soon", payload)

    async def notify_release_date_changed(
        self, entity: Entity, old_date: date, new_date: date
    ) -> None:
        payload = messages.build_release_date_changed_message(entity, old_date, new_date)
        await self._deliver(entity, "release_date_changed", payload)

    def _channel(self, destination: Destination) -> CircuitBreaker | None:
        key = (destination.guild_id, destination.webhook_url, destination.channel_id)
        if key not in self._channels:
            channel = channel_for(
                destination,
                self._bot_token,
                self._api_url,
                self._config.request_timeout_seconds,
            )
            if channel is None:
                return None
            self._channels[key] = CircuitBreaker(
                channel=channel,
                failure_threshold=self._config.circuit_breaker_threshold,
                recovery_timeout=self._config.circuit_breaker_recovery_seconds,
            )
        return self._channels[key]

    async def _deliver(self, entity: Entity, kind: str, payload: dict[str, Any]) -> None:
        destinations = await self._registry.list_destinations(entity.id)
        if not destinations:
            logger.debug("No destinations subscribed to %s; %s skipped", entity.name, kind)
            return

        results: list[tuple[str, bool]] = []
        for destination in destinations:
            channel = self._channel(destination)
            if channel is None:
                logger.warning(
                    "Guild %s has no webhook and no bot token is configured",
                    destination.guild_id,
                )
                results.append((destination.guild_id, False))
                continue
            success = await self._send_with_retry(channel, payload)
            results.append((channel.name, success))

        self._record_delivery(entity, kind, results)

        failed = [name for name, ok in results if not ok]
        if len(failed) == len(results):
            raise DeliveryError(
                f"{kind} for {entity.name} failed on all {len(results)} destinations",
                failed=failed,
            )

    async def _send_with_retry(self, channel: DeliveryChannel, payload: dict[str, Any]) -> bool:
        """Attempt to send with configured retries.

        Returns:
            True if any attempt succeeded.
        """
        delays = self._config.retry_delays
        max_attempts = self._config.retry_max_attempts

        for attempt in range(max_attempts):
            try:
                if await channel.send(payload):
                    if attempt > 0:
                        logger.info(
                            "Delivered to %s on attempt %d", channel.name, attempt + 1
                        )
                    return True
            except Exception as e:
                logger.warning(
                    "Channel %s send error (attempt %d): %s",
                    channel.name, attempt + 1, e,
                )

            if isinstance(channel, CircuitBreaker) and channel.state == CircuitState.OPEN:
                break

            # Wait before retry (if not the last attempt)
            if attempt < max_attempts - 1 and delays:
                delay = delays[attempt] if attempt < len(delays) else delays[-1]
                await asyncio.sleep(delay)

        logger.warning("All attempts exhausted for channel %s", channel.name)
        return False

    def _record_delivery(
        self, entity: Entity, kind: str, results: list[tuple[str, bool]]
    ) -> None:
        metrics = get_metrics()
        successes = [name for name, ok in results if ok]
        failures = [name for name, ok in results if not ok]
        for _, ok in results:
            metrics.record_notification(kind, ok)

        if failures and not successes:
            logger.error("%s for %s failed ALL destinations: %s", kind, entity.name, failures)
        elif failures:
            logger.warning(
                "%s for %s partial delivery: ok=%s failed=%s",
                kind, entity.name, successes, failures,
            )
        else:
            logger.debug("%s for %s delivered to %s", kind, entity.name, successes)
