import json
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import WatchError

from economist_ai.logger import GLOBAL_LOGGER as log

# Connection settings (overridden by REDIS_URL when set)
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD") or None


def build_redis_client(url: Optional[str] = None) -> redis.Redis:
    url = url or os.getenv("REDIS_URL")
    if url:
        return redis.from_url(
            url, decode_responses=True, socket_timeout=2.0, socket_connect_timeout=2.0
        )
    return redis.Redis(
        host=REDIS_HOST,
        port=REDIS_PORT,
        db=REDIS_DB,
        password=REDIS_PASSWORD,
        decode_responses=True,
        socket_timeout=2.0,
        socket_connect_timeout=2.0,
    )


def iso_timestamp(dt: Optional[datetime] = None) -> str:
    dt = dt or datetime.now(timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ShortTermContextCache:
    """
    Recent-message window per conversation, stored as one JSON array.

    key   : <prefix>:<conversation_id>:ctx
    value : [{"role", "content", "timestamp"}, ...] oldest first
    - capped at `max_messages`, oldest entries evicted first
    - every read or write re-arms the TTL on the whole key
    - pushes run in a WATCH/MULTI transaction so concurrent writers to the
      same conversation never drop each other's entries
    """

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int = 1800,
        max_messages: int = 50,
        key_prefix: str = "ws",
        max_push_retries: int = 5,
    ):
        self.client = client
        self.ttl = ttl_seconds
        self.max_messages = max_messages
        self.key_prefix = key_prefix
        self.max_push_retries = max_push_retries

    def _key(self, conversation_id: str) -> str:
        return f"{self.key_prefix}:{conversation_id}:ctx"

    @staticmethod
    def _decode(raw: Optional[str], key: str) -> List[Dict[str, str]]:
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            log.warning("Corrupt context cache entry, ignoring | key=%s | error=%s", key, str(e))
            return []
        if not isinstance(data, list):
            log.warning("Unexpected context cache payload, ignoring | key=%s", key)
            return []
        return data

    async def get(self, conversation_id: str) -> List[Dict[str, str]]:
        key = self._key(conversation_id)
        raw = await self.client.get(key)
        if raw is None:
            log.debug("Context cache MISS | key=%s", key)
            return []
        # sliding expiry: a read keeps the window alive
        await self.client.expire(key, self.ttl)
        messages = self._decode(raw, key)
        log.debug("Context cache HIT | key=%s | messages=%d", key, len(messages))
        return messages

    async def push(
        self,
        conversation_id: str,
        role: str,
        content: str,
        timestamp: Optional[str] = None,
    ) -> bool:
        key = self._key(conversation_id)
        entry = {"role": role, "content": content, "timestamp": timestamp or iso_timestamp()}

        async with self.client.pipeline(transaction=True) as pipe:
            for attempt in range(1, self.max_push_retries + 1):
                try:
                    # watch -> read -> modify -> MULTI/EXEC; a concurrent write aborts EXEC
                    await pipe.watch(key)
                    messages = self._decode(await pipe.get(key), key)
                    messages.append(entry)
                    # keep only the newest window
                    if len(messages) > self.max_messages:
                        messages = messages[-self.max_messages:]
                    pipe.multi()
                    pipe.setex(key, self.ttl, json.dumps(messages))
                    await pipe.execute()
                    log.debug(
                        "Context cache push | key=%s | role=%s | size=%d", key, role, len(messages)
                    )
                    return True
                except WatchError:
                    log.debug("Context cache contention, retrying | key=%s | attempt=%d", key, attempt)
                    continue

        log.warning(
            "Context cache push abandoned after retries | key=%s | retries=%d",
            key,
            self.max_push_retries,
        )
        return False

    async def reset(self, conversation_id: str) -> None:
        key = self._key(conversation_id)
        await self.client.delete(key)
        log.info("Context cache reset | key=%s", key)
