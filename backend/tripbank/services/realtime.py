"""Real-time trip events — Redis pub/sub fan-out of "trip changed" notifications."""

import json
import logging
from collections.abc import AsyncIterator

import redis.asyncio as redis

from tripbank.database import utcnow
from tripbank.config import settings

logger = logging.getLogger(__name__)


class TripEventBroker:
    """Publishes one small event per committed trip mutation; subscribers re-read the snapshot."""

    def __init__(self):
        self._redis: redis.Redis | None = None

    async def _get_redis(self) -> redis.Redis | None:
        if not settings.realtime_enabled:
            return None
        if self._redis is None:
            try:
                self._redis = redis.from_url(
                    settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                await self._redis.ping()
            except Exception as e:
                logger.warning(f"Redis unavailable, live trip updates disabled: {e}")
                self._redis = None
                return None
        return self._redis

    def channel(self, trip_id: str) -> str:
        return f"trip:{trip_id}"

    async def publish(self, trip_id: str, event: str) -> bool:
        """Announce a change to `trip_id`. Returns False when nobody could be told."""
        try:
            r = await self._get_redis()
            if r is None:
                return False
            payload = {"trip_id": trip_id, "event": event, "at": utcnow().isoformat()}
            await r.publish(self.channel(trip_id), json.dumps(payload))
            return True
        except Exception as e:
            logger.warning(f"Failed to publish {event} for trip {trip_id}: {e}")
            return False

    async def listen(self, trip_id: str) -> AsyncIterator[dict]:
        """Yield events for one trip until the caller stops iterating."""
        r = await self._get_redis()
        if r is None:
            return
        pubsub = r.pubsub()
        await pubsub.subscribe(self.channel(trip_id))
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning(f"Dropping malformed event on {self.channel(trip_id)}")
        finally:
            await pubsub.unsubscribe(self.channel(trip_id))
            await pubsub.aclose()

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None


trip_events = TripEventBroker()
