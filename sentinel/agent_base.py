"""
Sentinel Event Publisher

Fans detection and remediation events out over Redis pub/sub so external consumers
(alerting, dashboards) can follow the sentinel. Publishing is fire-and-forget: nothing is
stored in Redis and a failed publish never affects detection or remediation.
"""

import asyncio
import json
from datetime import UTC, datetime
from typing import Any

import redis
import redis.asyncio as aioredis

from sentinel.config import RedisSettings
from sentinel.exceptions import SentinelConnectionError
from sentinel.logger import SentinelLogger

DETECTION_CHANNEL = "sentinel:detection"
REMEDIATION_CHANNEL = "sentinel:remediation_complete"


class EventPublisher:
    """
    Publishes structured JSON events to Redis channels.

    Each event is wrapped as ``{event_type, timestamp, agent, data}``.
    """

    def __init__(
        self,
        settings: RedisSettings,
        agent_name: str = "sentinel",
        retry_max: int = 3,
        retry_delay: float = 1.0,
        client: aioredis.Redis | None = None,
    ):
        """
        Args:
            settings: Redis connection settings
            agent_name: Name stamped on every published event
            retry_max: Attempts for connecting and for each publish
            retry_delay: Initial backoff delay in seconds, doubled per attempt
            client: Pre-built client (used as-is, mainly for tests)
        """
        self.settings = settings
        self.agent_name = agent_name
        self.retry_max = retry_max
        self.retry_delay = retry_delay
        self.redis = client
        self.logger = SentinelLogger.get_logger("publisher")

    def _retry_delays(self) -> list[float]:
        return [self.retry_delay * (2**i) for i in range(self.retry_max)]

    def _build_client(self) -> aioredis.Redis:
        redis_kwargs: dict[str, Any] = {
            "host": self.settings.host,
            "port": self.settings.port,
            "db": self.settings.db,
            "decode_responses": True,
            "socket_connect_timeout": 5,
            "socket_keepalive": True,
        }
        if self.settings.password:
            redis_kwargs["password"] = self.settings.password
        return aioredis.Redis(**redis_kwargs)

    async def connect(self) -> None:
        """
        Connect to Redis with exponential backoff retry logic.

        Raises:
            SentinelConnectionError: If Redis cannot be reached after retry_max attempts
        """
        if self.redis is None:
            self.redis = self._build_client()

        retry_delays = self._retry_delays()
        for attempt in range(self.retry_max):
            try:
                await self.redis.ping()
                self.logger.info(
                    f"Connected to Redis at {self.settings.host}:{self.settings.port}"
                )
                return
            except (redis.ConnectionError, redis.TimeoutError) as e:
                if attempt < self.retry_max - 1:
                    wait_time = retry_delays[attempt]
                    self.logger.warning(
                        f"Redis connection failed (attempt {attempt + 1}/{self.retry_max}). "
                        f"Retrying in {wait_time}s... Error: {e!s}"
                    )
                    await asyncio.sleep(wait_time)
                else:
                    error_msg = (
                        f"Failed to connect to Redis after {self.retry_max} attempts. "
                        f"Last error: {e!s}"
                    )
                    self.logger.error(error_msg)
                    raise SentinelConnectionError(error_msg) from e

    async def publish_event(self, channel: str, event_type: str, data: dict[str, Any]) -> bool:
        """
        Publish a structured event to a Redis channel.

        Args:
            channel: Redis channel name (e.g. 'sentinel:detection')
            event_type: Type of event (e.g. 'process_detected')
            data: Event payload data

        Returns:
            True if publish succeeded, False otherwise
        """
        if self.redis is None:
            self.logger.error(f"Cannot publish '{event_type}': publisher is not connected")
            return False

        event_payload = {
            "event_type": event_type,
            "timestamp": datetime.now(UTC).isoformat(),
            "agent": self.agent_name,
            "data": data,
        }
        try:
            json_payload = json.dumps(event_payload)
        except (TypeError, ValueError) as e:
            self.logger.error(f"Failed to serialize event payload: {e!s}")
            return False

        retry_delays = self._retry_delays()
        for attempt in range(self.retry_max):
            try:
                num_subscribers = await self.redis.publish(channel, json_payload)
                self.logger.debug(
                    f"Published event '{event_type}' to channel '{channel}' "
                    f"({num_subscribers} subscribers)"
                )
                return True
            except redis.RedisError as e:
                if attempt < self.retry_max - 1:
                    wait_time = retry_delays[attempt]
                    self.logger.warning(
                        f"Failed to publish event (attempt {attempt + 1}/{self.retry_max}). "
                        f"Retrying in {wait_time}s... Error: {e!s}"
                    )
                    await asyncio.sleep(wait_time)
                else:
                    self.logger.error(
                        f"Failed to publish event after {self.retry_max} attempts. "
                        f"Last error: {e!s}"
                    )
        return False

    async def close(self) -> None:
        """Close the Redis connection."""
        if self.redis is None:
            return
        try:
            await self.redis.aclose()
            self.logger.debug("Closed Redis connection")
        except redis.RedisError as e:
            self.logger.error(f"Error closing Redis connection: {e!s}")
