from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

import redis

from ..core.transaction import AbstractMutablePropertySource
from ..core.types import PropertyEntry, TransactionContext

logger = logging.getLogger(__name__)


class RedisPropertySource(AbstractMutablePropertySource):
    """Redis string keys under a key prefix, written in one MULTI/EXEC pipeline.

    Args:
        uri: Redis connection URI, e.g. ``redis://localhost:6379/0``.
        key_prefix: Namespace of the keys in redis; removed from property keys.
        ordinal: Default priority.
        name: Source name, ``redis:<uri>`` by default.
        scannable: Set to False for large keyspaces to avoid ``KEYS`` scans;
            the source then only answers point lookups.
        client: Preconfigured redis client, used instead of ``uri``.
    """

    def __init__(
        self,
        uri: str,
        key_prefix: str = "",
        ordinal: int = 200,
        name: Optional[str] = None,
        scannable: bool = True,
        client: Optional[redis.Redis] = None,
        **kwargs,
    ):
        super().__init__(name or f"redis:{uri}", ordinal, scannable=scannable, **kwargs)
        self.uri = uri
        self.key_prefix = key_prefix
        self.client = client or redis.Redis.from_url(uri, decode_responses=True)

    def _prefixed(self, key: str) -> str:
        return f"{self.key_prefix}{key}" if self.key_prefix else key

    def _unprefixed_redis_key(self, key: str) -> str:
        if self.key_prefix and key.startswith(self.key_prefix):
            return key[len(self.key_prefix):]
        return key

    def properties(self) -> Mapping[str, str]:
        keys = self.client.keys(self._prefixed("*"))
        kv: Dict[str, str] = {}
        if keys:
            values = self.client.mget(keys)
            for k, v in zip(keys, values):
                if v is not None:
                    kv[self._unprefixed_redis_key(k)] = v
        return kv

    def get(self, key: str) -> Optional[PropertyEntry]:
        raw_key = self._unprefixed(key)
        if raw_key is None:
            return None
        value = self.client.get(self._prefixed(raw_key))
        if value is None:
            return None
        return PropertyEntry(key=key, value=value, source=self.name)

    def commit_internal(self, transaction: TransactionContext) -> None:
        pipe = self.client.pipeline(transaction=True)
        for key in transaction.removed_properties:
            pipe.delete(self._prefixed(key))
        for key, value in transaction.added_properties.items():
            pipe.set(self._prefixed(key), str(value))
        pipe.execute()
        logger.debug("Wrote transaction %s to %s", transaction.transaction_id, self.uri)
