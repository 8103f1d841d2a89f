"""RedisJSON record storage: documents, bulk reads and record pipelines."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Sequence

import redis

from rediscore.cache import Cache
from rediscore.jsonvalue import parse

_log = logging.getLogger(__name__)


def decode(json_string: str | bytes) -> Any:
    """Normalise a JSON document and return it as plain Python values.

    Raises ValueError when the text is not valid JSON.
    """
    try:
        normalised = parse(json_string).to_json_string()
        return json.loads(normalised)
    except ValueError as exc:
        _log.error("%s", exc)
        raise


def _shape(kind: str, key: str, item: Any, opts: Sequence[str], extended: bool) -> Any:
    """Wrap a decoded item with the ids held in its '$'-separated key.

    Returns None when the item is to be left out.
    """
    parts = key.split("$")
    if kind == "device":
        return {"device_id": parts[2], "data_item": item}
    if kind == "bucket":
        if opts[1] == "":
            return None
        return {"bucket_id": parts[3], "device_id": parts[2], "data_item": item}
    if kind == "bucket_all":
        return {"bucket_id": parts[3], "device_id": parts[2], "data_item": item}
    if kind == "record":
        if opts[1] == "" and opts[2] == "":
            return None
        return {
            "record_id": parts[3],
            "bucket_id": parts[2],
            "device_id": parts[1],
            "data_item": item,
        }
    if kind == "record_all":
        return {
            "record_id": parts[3],
            "bucket_id": parts[2],
            "device_id": parts[1],
            "data_item": item,
        }
    if kind == "minio_record_all" or (extended and kind == "user_all"):
        return {
            "record_id": parts[4],
            "bucket_id": parts[3],
            "device_id": parts[2],
            "data_item": item,
        }
    if kind == "minio_bucket_all":
        return {"bucket_id": parts[4], "device_id": parts[3], "data_item": item}
    if extended and kind == "minio_id_all":
        return parts[4]
    return {"data_item": item}


def _quietly(action: Callable[..., Any], *args: Any) -> None:
    try:
        action(*args)
    except redis.RedisError as exc:
        _log.error("%s", exc)


class JsonCache(Cache):
    """Cache with RedisJSON documents and record bookkeeping."""

    # -- single documents -------------------------------------------------

    def rejson_update(self, key: str, path: str, value: str) -> str:
        """Write a JSON value at path."""
        try:
            return self.json_client.json_set(key, path, value)
        except redis.RedisError as exc:
            _log.error("%s", exc)
            raise

    def rejson_set(self, key: str, path: str, value: str, *args: Any) -> str:
        """Write a JSON value at path with extra JSON.SET options."""
        try:
            return self.json_client.json_set(key, path, value, *args)
        except redis.RedisError as exc:
            _log.error("%s", exc)
            raise

    def _json_get(self, key: str, query: str) -> str:
        reply = self.json_client.json_get(key, "NOESCAPE", query or ".")
        if reply is None:
            raise KeyError(key)
        return reply

    def rejson_get_string(self, key: str, query: str) -> str:
        """The JSON text at query ('' means the root); KeyError when missing."""
        try:
            return self._json_get(key, query)
        except redis.RedisError as exc:
            _log.error("%s", exc)
            raise

    def rejson_get(self, key: str, query: str) -> Any:
        """The decoded value at query ('' means the root); KeyError when missing."""
        try:
            text = self._json_get(key, query)
        except redis.RedisError as exc:
            _log.error("%s", exc)
            raise
        try:
            return json.loads(text)
        except ValueError as exc:
            _log.error("%s", exc)
            raise

    def rejson_arr_len(self, key: str, query: str) -> Any:
        """Length of the JSON array at query."""
        return self.json_client.json_arr_len(key, query)

    # -- bulk reads -------------------------------------------------------

    def hash_get_all(self, redis_key: str, query: str, keys: Sequence[str], *args: str) -> list[Any]:
        """Decode the JSON held in the hash fields keys, shaped by args[0]."""
        keys = list(keys)
        try:
            replies = self.db0.hmget(redis_key, keys)
        except redis.RedisError as exc:
            _log.error("%s", exc)
            raise
        results = []
        for key, reply in zip(keys, replies):
            if reply is None:
                continue
            kind = args[0]
            try:
                item = json.loads(reply)
            except ValueError as exc:
                _log.error("%s", exc)
                continue
            entry = _shape(kind, key, item, args, extended=False)
            if entry is not None:
                results.append(entry)
        return results

    def rejson_get_all(self, bucket: str, query: str, keys: Sequence[str], *args: str) -> dict[str, list[Any]]:
        """Read every document in keys at query, shaped by args[0], as {"data": [...]}."""
        kind = args[0]
        results = []
        for key in keys:
            try:
                reply = self.json_client.json_get(key, "NOESCAPE", query)
            except redis.RedisError as exc:
                _log.error("%s", exc)
                continue
            if not reply:
                continue
            try:
                item = parse(reply).to_interface()
            except ValueError as exc:
                _log.error("%s", exc)
                continue
            entry = _shape(kind, key, item, args, extended=True)
            if entry is not None:
                results.append(entry)
        return {"data": results}

    def rejson_get_any_all(self, keys: Sequence[str], query: str, *args: str) -> list[Any]:
        """JSON.MGET over keys; missing documents are skipped, bad ones give None."""
        first = keys[0]
        try:
            replies = self.json_client.json_mget(first, *keys[1:], "NOESCAPE", query)
        except redis.RedisError as exc:
            _log.error("%s", exc)
            replies = []
        results = []
        for reply in replies:
            if reply == "":
                continue
            try:
                results.append(json.loads(reply))
            except ValueError as exc:
                _log.error("%s", exc)
                results.append(None)
        return results

    def rejson_get_by_query(self, key: str, query: str) -> list[Any]:
        """Decoded values at query for every document whose key starts with key."""
        results = []
        for found in self.keys(key):
            try:
                reply = self.json_client.json_get(found, "NOESCAPE", query)
            except redis.RedisError:
                continue
            if reply is None:
                continue
            try:
                results.append(decode(reply))
            except ValueError:
                results.append(None)
        _log.info("%d", len(results))
        return results

    # -- deletion and notification ----------------------------------------

    def delete(self, *args: str) -> None:
        """Delete keys from database 0."""
        self.db0.delete(*args)

    def delete_all(self, key: str) -> None:
        """Delete every key in database 0 that starts with key."""
        for found in self.keys(key):
            self.db0.delete(found)

    def realtime_notification(self, channel: str, msg: Any) -> None:
        """Publish msg on channel, then close the database 0 client."""
        try:
            self.db0.publish(channel, msg)
        finally:
            self.db0.close()

    # -- record pipelines -------------------------------------------------

    def save_record_pipeline(
        self,
        user_id: str,
        device_id: str,
        bucket_id: str,
        record_id: str,
        body: bytes | str,
    ) -> None:
        """Store a record document and index it; rolls back and raises on failure."""
        redis_key = "$".join((user_id, device_id, bucket_id, record_id))
        bucket_index = "BM$" + "$".join((user_id, device_id, bucket_id))
        user_index = "all$" + user_id
        list_key = "List$BM$" + "$".join((user_id, device_id, bucket_id))
        body_text = body.decode("utf-8") if isinstance(body, (bytes, bytearray)) else body
        score = float(int(time.time()))

        try:
            self.rejson_set(redis_key, ".", body_text, "")
        except redis.RedisError:
            pass

        client = self.json_client
        pipe1 = self.db1.pipeline(transaction=True)
        pipe1.zadd(bucket_index, {redis_key: score})
        pipe1.zadd(user_index, {redis_key: score})
        try:
            pipe1.execute()
        except redis.RedisError as exc:
            _log.error("%s", exc)
            _quietly(client.delete, redis_key)
            _quietly(client.zrem, bucket_index, redis_key)
            _quietly(client.zrem, user_index, redis_key)

        pipe0 = client.tx_pipeline()
        pipe0.hset(user_index, redis_key, body_text)
        pipe0.hset(list_key, record_id, "")
        try:
            pipe0.execute()
        except redis.RedisError as exc:
            _log.error("%s", exc)
            _quietly(client.zrem, bucket_index, redis_key)
            _quietly(client.zrem, user_index, redis_key)
            _quietly(client.delete, redis_key)
            _quietly(client.hdel, user_index, redis_key)
            _quietly(client.hdel, list_key, record_id)
            raise

    def delete_records_pipeline(self, user_id: str, device_id: str, bucket_id: str, *args: str) -> None:
        """Remove records and their index entries; failures are only logged."""
        prefix = "$".join((user_id, device_id, bucket_id))
        record_keys = [f"{prefix}${record_id}" for record_id in args]
        bucket_index = "BM$" + prefix
        user_index = "all$" + user_id

        pipe1 = self.db1.pipeline(transaction=True)
        pipe1.zrem(user_index, *record_keys)
        pipe1.zrem(bucket_index, *record_keys)
        try:
            pipe1.execute()
        except redis.RedisError as exc:
            _log.error("%s", exc)

        pipe0 = self.json_client.tx_pipeline()
        pipe0.delete(*record_keys)
        pipe0.hdel(user_index, *record_keys)
        pipe0.hdel("List$" + bucket_index, *record_keys)
        try:
            pipe0.execute()
        except redis.RedisError as exc:
            _log.error("%s", exc)