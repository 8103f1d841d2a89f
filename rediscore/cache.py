"""Key-value, hash, list and sorted-set access over two redis databases.

Database 0 holds plain values, hashes and lists; database 1 holds the
sorted sets used for time-ordered indexes.
"""

from __future__ import annotations

import datetime
import logging
import time
from typing import Any, Iterable

import redis
from redis.backoff import ExponentialBackoff
from redis.retry import Retry

from rediscore.rejson import ReJSONClient, extend_client

_log = logging.getLogger(__name__)

_DEFAULT_PORT = 6379
_POOL_TIMEOUT = 30
_IO_TIMEOUT = 60
_MAX_RETRIES = 3

Expiry = "datetime.timedelta | float | int"


def _split_address(url: str) -> tuple[str, int]:
    host, sep, port = url.rpartition(":")
    if not sep:
        return url, _DEFAULT_PORT
    if not port.isdigit():
        raise ValueError(f"invalid redis address: {url!r}")
    return host or "localhost", int(port)


def _connect(url: str, db: int, max_clients: int, password: str | None) -> redis.Redis:
    host, port = _split_address(url)
    pool = redis.BlockingConnectionPool(
        host=host,
        port=port,
        db=db,
        password=password,
        max_connections=max_clients,
        timeout=_POOL_TIMEOUT,
        socket_timeout=_IO_TIMEOUT,
        socket_connect_timeout=_IO_TIMEOUT,
        retry=Retry(ExponentialBackoff(), _MAX_RETRIES),
        decode_responses=True,
    )
    return redis.Redis(connection_pool=pool)


def _millis(expire: Any) -> int:
    if isinstance(expire, datetime.timedelta):
        return int(expire.total_seconds() * 1000)
    return int(float(expire) * 1000)


def _status(reply: Any, ok: str = "OK") -> str:
    if reply is True:
        return ok
    if isinstance(reply, bytes):
        return reply.decode("utf-8")
    return str(reply)


class Cache:
    """Redis access used by the record store."""

    def __init__(
        self,
        url: str = "localhost:6379",
        max_clients: int = 10,
        password: str | None = None,
    ) -> None:
        self._attach(
            _connect(url, 0, max_clients, password),
            _connect(url, 1, max_clients, password),
        )
        _log.info("RedisDB Constructor Successfull")

    def _attach(self, db0: Any, db1: Any) -> None:
        self.db0 = db0
        self.db1 = db1
        self.json_client: ReJSONClient = extend_client(db0)

    @classmethod
    def from_clients(cls, db0, db1):
        """A cache over existing clients for database 0 and database 1."""
        cache = cls.__new__(cls)
        cache._attach(db0, db1)
        return cache

    def close(self) -> None:
        """Close both database clients."""
        self.db0.close()
        self.db1.close()

    # -- plain values -----------------------------------------------------

    def keys(self, key: str) -> list[str]:
        """Keys in database 0 starting with key; empty on connection errors."""
        try:
            return list(self.db0.keys(key + "*"))
        except redis.RedisError:
            return []

    def set(self, key: str, value: Any) -> str:
        return _status(self.db0.set(key, value))

    def set_expire(self, key: str, value: Any, expire: Any) -> str:
        """Set a value that expires after expire (timedelta or seconds); 0 keeps it."""
        ms = _millis(expire)
        return _status(self.db0.set(key, value, px=ms if ms > 0 else None))

    def set_nx(self, key: str, value: Any, expire: Any) -> bool:
        """Set only when the key is absent; True if it was set."""
        ms = _millis(expire)
        return bool(self.db0.set(key, value, nx=True, px=ms if ms > 0 else None))

    def get(self, key: str) -> str:
        """The value of key; KeyError when it is missing."""
        value = self.db0.get(key)
        if value is None:
            raise KeyError(key)
        return value

    def exists(self, key: str) -> bool:
        try:
            return self.db0.exists(key) != 0
        except redis.RedisError:
            return False

    def set_nx_expire(self, key: str, value: Any, expire_seconds: int) -> bool:
        """Set only when absent, expiring after a whole number of seconds."""
        seconds = int(expire_seconds)
        return bool(self.db0.set(key, value, nx=True, ex=seconds if seconds > 0 else None))

    def incr(self, key: str) -> int:
        return int(self.db0.incr(key))

    def ping(self) -> str:
        return _status(self.db0.ping(), "PONG")

    def save(self) -> str:
        return _status(self.db0.save())

    def rename(self, key: str, new_key: str) -> str:
        return _status(self.db0.rename(key, new_key))

    def expire(self, key: str, expire: Any) -> None:
        """Set a key's time to live."""
        self.db0.pexpire(key, _millis(expire))

    # -- hashes -----------------------------------------------------------

    def hset(self, key: str, field: str, value: Any) -> None:
        self.db0.hset(key, field, value)

    def hget(self, key: str, field: str) -> str:
        """A hash field; KeyError when the field is missing."""
        value = self.db0.hget(key, field)
        if value is None:
            raise KeyError(field)
        return value

    def hgetall(self, key: str) -> dict[str, str]:
        return dict(self.db0.hgetall(key))

    def hexists(self, key: str, field: str) -> bool:
        try:
            return bool(self.db0.hexists(key, field))
        except redis.RedisError:
            return False

    def hexists_db1(self, key: str, field: str) -> bool:
        try:
            return bool(self.db1.hexists(key, field))
        except redis.RedisError:
            return False

    def hlen(self, key: str) -> int:
        try:
            return int(self.db0.hlen(key))
        except redis.RedisError:
            return 0

    def hdel(self, key: str, *args: str) -> int:
        return int(self.db0.hdel(key, *args))

    def hkeys(self, key: str) -> list[str]:
        return list(self.db0.hkeys(key))

    def hmset(self, key: str, fields: dict[str, Any]) -> None:
        self.db0.hset(key, mapping=fields)

    def hmget(self, key: str, *args: str) -> list[str | None]:
        return list(self.db0.hmget(key, list(args)))

    def hscan(self, key: str, pattern_field: str) -> list[str]:
        """One scan page of fields starting with pattern_field, as field, value, ..."""
        _, found = self.db0.hscan(key, 0, match=pattern_field + "*")
        return [item for pair in found.items() for item in pair]

    def hset_expire(self, key: str, field: str, value: Any, expire: Any) -> None:
        """Set a hash field and renew the whole hash's time to live."""
        self.db0.hset(key, field, value)
        self.db0.pexpire(key, _millis(expire))

    # -- lists ------------------------------------------------------------

    def lpush(self, key: str, value: Any) -> int:
        return int(self.db0.lpush(key, value))

    def rpush(self, key: str, *args: Any) -> int:
        return int(self.db0.rpush(key, *args))

    def lpop(self, key: str) -> str:
        """Pop the head of a list; KeyError when the list is empty."""
        value = self.db0.lpop(key)
        if value is None:
            raise KeyError(key)
        return value

    def lremove(self, key: str, value: Any) -> int:
        """Remove the first occurrence of value."""
        return int(self.db0.lrem(key, 1, value))

    def lrange(self, key: str) -> list[str]:
        return list(self.db0.lrange(key, 0, -1))

    def lindex(self, key: str, index: int) -> str:
        """The list element at index; IndexError when there is none."""
        value = self.db0.lindex(key, index)
        if value is None:
            raise IndexError(f"no element at index {index} of {key!r}")
        return value

    def ldel(self, *args: str) -> int:
        return int(self.db0.delete(*args))

    def ldel_db1(self, *args: str) -> int:
        return int(self.db1.delete(*args))

    def lkeys(self, key: str) -> list[str]:
        return self.keys(key)

    # -- sorted sets (database 1) -----------------------------------------

    def zadd(self, db: int, key: str, scores: Iterable[float], members: Iterable[str]) -> int:
        """Add members with their scores; the number of new members."""
        scores, members = list(scores), list(members)
        if len(scores) < len(members):
            raise ValueError("every member needs a score")
        return int(self.db1.zadd(key, dict(zip(members, scores))))

    def zkeys(self, db: int, key: str) -> list[str]:
        try:
            return list(self.db1.keys(key + "*"))
        except redis.RedisError:
            return []

    def zrange(self, db: int, key: str, start: int, stop: int) -> list[str]:
        return list(self.db1.zrange(key, start, stop))

    def zrange_with_score(self, db: int, key: str, start: int, stop: int) -> list[tuple[str, float]]:
        """Members with their scores, lowest first; empty on errors."""
        try:
            return [(member, float(score)) for member, score in
                    self.db1.zrange(key, start, stop, withscores=True)]
        except redis.RedisError:
            return []

    def zrank(self, db: int, key: str, member: str) -> int:
        rank = self.db1.zrank(key, member)
        if rank is None:
            raise KeyError(member)
        return int(rank)

    def zcount(self, db: int, key: str, min: Any, max: Any) -> int:
        return int(self.db1.zcount(key, min, max))

    def zincr_by(self, db: int, key: str, member: str, incr: float) -> float:
        return float(self.db1.zincrby(key, incr, member))

    def zincr(self, db: int, key: str, member: str) -> float:
        """ZADD INCR with a zero increment: creates the member if needed and returns its score."""
        return float(self.db1.zadd(key, {member: 0}, incr=True))

    def zscore(self, db: int, key: str, member: str) -> float:
        score = self.db1.zscore(key, member)
        if score is None:
            raise KeyError(member)
        return float(score)

    def zrem(self, db: int, key: str, *args: str) -> int:
        return int(self.db1.zrem(key, *args))

    def zdel(self, key: str) -> None:
        self.db1.delete(key)

    def zcard(self, db: int, key: str) -> int:
        return int(self.db1.zcard(key))

    def zrem_range_by_rank(self, key: str, start: int, stop: int) -> int:
        return int(self.db1.zremrangebyrank(key, start, stop))

    def zrev_range(self, key: str, start: int, stop: int) -> list[str]:
        return list(self.db1.zrevrange(key, start, stop))

    # -- time index for pagination ----------------------------------------

    def get_keys_by_index(self, key: str, start: int, stop: int) -> list[str]:
        """Indexed members, newest first."""
        return self.zrev_range(key, start, stop)

    def set_index(self, key: str, member: str) -> None:
        """Index member under the current Unix time."""
        self.zadd(1, key, [float(int(time.time()))], [member])

    def remove_index(self, key: str, *args: str) -> None:
        self.zrem(1, key, *args)