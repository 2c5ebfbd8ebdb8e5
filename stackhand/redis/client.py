from dataclasses import dataclass
import json
from typing import Any

import redis.asyncio as redis
import structlog

from stackhand.contracts.base import BaseMessage

logger = structlog.get_logger(__name__)


@dataclass
class StreamMessage:
    """A message from a Redis Stream."""

    stream: str
    message_id: str
    data: dict[str, Any]


class RedisStreamClient:
    """Client for Redis Streams-based job queues."""

    def __init__(self, redis_url: str | None = None, client: redis.Redis | None = None):
        """Initialize Redis client.

        Args:
            redis_url: Redis connection URL, used by ``connect``.
            client: Already connected client (tests pass a fakeredis instance).
        """
        if redis_url is None and client is None:
            raise RuntimeError("Redis URL not provided. Pass redis_url or client.")
        self.redis_url = redis_url
        self._redis: redis.Redis | None = client

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
            logger.info("redis_connected", redis_url=self.redis_url)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("redis_connection_closed")

    @property
    def redis(self) -> redis.Redis:
        """Get Redis client, ensuring connection."""
        if self._redis is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._redis

    async def publish(self, stream: str, data: dict[str, Any]) -> str:
        """Publish a dict to a Redis Stream."""
        message = {"data": json.dumps(data)}
        message_id = await self.redis.xadd(stream, message)
        logger.debug("message_published", stream=stream, message_id=message_id)
        return _text(message_id)

    async def publish_message(self, stream: str, message: BaseMessage) -> str:
        """Publish a pydantic message to a Redis Stream."""
        return await self.publish(stream, message.model_dump(mode="json"))

    async def ensure_consumer_group(self, stream: str, group: str) -> None:
        """Ensure a consumer group exists for the stream."""
        try:
            await self.redis.xgroup_create(stream, group, id="0", mkstream=True)
            logger.info("consumer_group_created", stream=stream, group=group)
        except redis.ResponseError as e:
            if "BUSYGROUP" in str(e):
                logger.debug("consumer_group_exists", stream=stream, group=group)
            else:
                raise

    async def read_group(
        self,
        streams: list[str],
        group: str,
        consumer: str,
        block_ms: int = 5000,
        count: int = 1,
    ) -> list[StreamMessage]:
        """Read new messages for ``consumer``. Callers ack after processing."""
        response = await self.redis.xreadgroup(
            groupname=group,
            consumername=consumer,
            streams={stream: ">" for stream in streams},
            count=count,
            block=block_ms,
        )
        messages = []
        for stream_name, entries in response or []:
            for message_id, fields in entries:
                raw = fields.get("data") or fields.get(b"data") or "{}"
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as e:
                    logger.error(
                        "message_decode_failed",
                        stream=_text(stream_name),
                        message_id=_text(message_id),
                        error=str(e),
                    )
                    data = {}
                messages.append(StreamMessage(_text(stream_name), _text(message_id), data))
        return messages

    async def ack(self, stream: str, group: str, message_id: str) -> None:
        await self.redis.xack(stream, group, message_id)
        logger.debug("message_acked", stream=stream, message_id=message_id)


def _text(value: str | bytes) -> str:
    return value.decode() if isinstance(value, bytes) else value
