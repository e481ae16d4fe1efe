from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class ValuationCache:
    """JSON cache in Redis, falling back to an in-process TTL dict when Redis is unreachable."""

    def __init__(self, redis_url: str, namespace: str = "valuation") -> None:
        self.redis_url = redis_url
        self.namespace = namespace
        self._client: Any = None
        self._mem: dict[str, str] = {}
        self._expiry: dict[str, float] = {}

    def _build_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    @staticmethod
    def prediction_key(vin: str, miles: int, zip_code: str, dealer_type: str) -> str:
        return f"prediction:{vin.upper()}:{miles}:{zip_code}:{dealer_type}"

    async def connect(self) -> None:
        client = redis.from_url(self.redis_url, decode_responses=True)
        try:
            await asyncio.wait_for(client.ping(), timeout=0.75)
            self._client = client
        except (redis.RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("Redis unavailable, using in-memory cache: %s", exc)
            self._client = None

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await asyncio.wait_for(self._client.ping(), timeout=0.75))
        except (redis.RedisError, OSError, asyncio.TimeoutError):
            return False

    def _sweep_expired(self) -> None:
        now = time.monotonic()
        for key in [k for k, expires in self._expiry.items() if now > expires]:
            self._mem.pop(key, None)
            self._expiry.pop(key, None)

    async def get_json(self, key: str) -> dict[str, Any] | None:
        full_key = self._build_key(key)
        if self._client is not None:
            try:
                raw = await self._client.get(full_key)
                return None if raw is None else json.loads(raw)
            except redis.RedisError as exc:
                logger.warning("Redis get failed for %s: %s", full_key, exc)
                return None
        if full_key in self._expiry and time.monotonic() > self._expiry[full_key]:
            self._mem.pop(full_key, None)
            self._expiry.pop(full_key, None)
            return None
        raw = self._mem.get(full_key)
        return None if raw is None else json.loads(raw)

    async def set_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        full_key = self._build_key(key)
        payload = json.dumps(value, default=str)
        if self._client is not None:
            try:
                await self._client.set(full_key, payload, ex=ttl_seconds)
                return
            except redis.RedisError as exc:
                logger.warning("Redis set failed for %s: %s", full_key, exc)
        self._sweep_expired()
        self._mem[full_key] = payload
        self._expiry[full_key] = time.monotonic() + ttl_seconds
