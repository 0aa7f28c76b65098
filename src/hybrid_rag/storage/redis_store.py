"""Redis persistence for the active ranking model."""

import json
from typing import Optional

from loguru import logger
from redis import asyncio as aioredis

from ..config import Config
from ..models import RankingModelState


class RedisModelStateStore:
    """
    Persists RankingModelState as JSON under a single Redis key.

    Features:
    - Lazy Redis client initialization
    - Fail-safe: connection errors are logged and reported as False/None,
      never raised into the feedback loop or the query path
    - Corrupt payloads are ignored on load
    """

    def __init__(
        self,
        redis_url: str | None = None,
        key: str | None = None,
        client: Optional[aioredis.Redis] = None,
    ):
        self.redis_url = redis_url or Config.REDIS_URL
        self.key = key or Config.REDIS_MODEL_KEY
        self._redis_client = client

    async def _get_redis(self) -> aioredis.Redis:
        if self._redis_client is None:
            self._redis_client = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=Config.REDIS_SOCKET_TIMEOUT,
            )
        return self._redis_client

    async def save(self, state: RankingModelState) -> bool:
        """
        Persist a model state.

        Returns:
            True if written, False on Redis failure
        """
        try:
            redis = await self._get_redis()
            await redis.set(self.key, json.dumps(state.to_dict()))
            logger.debug(f"Persisted ranking model v{state.version} to {self.key}")
            return True
        except (aioredis.ConnectionError, aioredis.TimeoutError) as e:
            logger.error(f"Redis connection failed saving ranking model v{state.version}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error saving ranking model v{state.version}: {e}")
            return False

    async def load(self) -> RankingModelState | None:
        """
        Load the persisted model state.

        Returns:
            The stored state, or None if absent, unreadable or Redis is down
        """
        try:
            redis = await self._get_redis()
            payload = await redis.get(self.key)
        except (aioredis.ConnectionError, aioredis.TimeoutError) as e:
            logger.error(f"Redis connection failed loading ranking model: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error loading ranking model: {e}")
            return None

        if payload is None:
            return None

        try:
            return RankingModelState.from_dict(json.loads(payload))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Corrupt ranking model payload in {self.key}: {e}")
            return None

    async def close(self) -> None:
        if self._redis_client is not None:
            await self._redis_client.aclose()
            self._redis_client = None
