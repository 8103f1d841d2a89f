# rediscore

A library for using Redis as a record cache. It has four parts:

- `rediscore.cache.Cache` holds two Redis clients. Database 0 stores plain
  values, hashes and lists. Database 1 stores sorted sets. The class offers
  string, hash, list and sorted-set operations. It also indexes members by
  time for paging (`set_index`, `get_keys_by_index`, `remove_index`).
- `rediscore.json_store.JsonCache` extends `Cache` with RedisJSON documents:
  - single reads and writes (`rejson_set`, `rejson_update`, `rejson_get`,
    `rejson_get_string`, `rejson_arr_len`);
  - bulk reads (`hash_get_all`, `rejson_get_all`, `rejson_get_any_all`,
    `rejson_get_by_query`);
  - record bookkeeping keyed as `user$device$bucket$record`
    (`save_record_pipeline`, `delete_records_pipeline`).
- `rediscore.rejson` adds RedisJSON commands to a `redis.Redis` client
  (`extend_client`, which returns `ReJSONClient`) or to a pipeline
  (`extend_pipeline`, which returns `ReJSONPipeline`). The commands include
  `json_get`, `json_set`, `json_mget` and `json_arr_len`. Empty string
  arguments are dropped before a command is sent (`concat_with_cmd`).
- `rediscore.jsonvalue` provides `JSON`, a mutable and thread-safe tree of JSON
  values. It offers:
  - path lookup (`at`) and typed getters;
  - map and list editing;
  - iteration and filtering helpers;
  - numeric conversion in place (`mutate_to_int`, `mutate_to_float`, ...);
  - deep comparison (`equals_deep`).

  The value kinds and the conversion rules are in `rediscore.kinds`
  (`Kind`, `NumberConversion`, `convert_value`).

## Installation

```
pip install rediscore
```

## Using the cache

`Cache(url="localhost:6379", max_clients=10, password=None)` opens its own
connection pools. To use clients you already have, call `Cache.from_clients`.
Create those clients with `decode_responses=True` so that replies come back
as strings.

```python
import redis
from rediscore.cache import Cache

cache = Cache.from_clients(
    redis.Redis(host="localhost", db=0, decode_responses=True),
    redis.Redis(host="localhost", db=1, decode_responses=True),
)

cache.set("greeting", "hello")
cache.get("greeting")                 # "hello"; KeyError when the key is missing

cache.hset("user$1", "name", "Ann")
cache.hgetall("user$1")               # {"name": "Ann"}

cache.set_index("feed", "post-1")     # scored by the current Unix time
cache.get_keys_by_index("feed", 0, 9) # newest first
cache.close()
```

A missing key, field or member raises `KeyError`, for example from `get`,
`hget`, `lpop`, `zrank` and `zscore`. `lindex` raises `IndexError` when the
list has no element at that index.

## Records as JSON documents

`JsonCache` needs a Redis server with the RedisJSON module loaded.

```python
import redis
from rediscore.json_store import JsonCache

store = JsonCache.from_clients(
    redis.Redis(db=0, decode_responses=True),
    redis.Redis(db=1, decode_responses=True),
)

store.save_record_pipeline("u1", "d1", "b1", "r1", b'{"temp": 21}')
store.rejson_get("u1$d1$b1$r1", "")                 # {"temp": 21}
store.rejson_get_all("", ".", ["u1$d1$b1$r1"], "record_all")
# {"data": [{"record_id": "r1", "bucket_id": "b1", "device_id": "d1", "data_item": {"temp": 21}}]}
store.delete_records_pipeline("u1", "d1", "b1", "r1")
```

## RedisJSON commands

```python
import redis
from rediscore.rejson import extend_client

client = extend_client(redis.Redis(decode_responses=True))
client.json_set("doc", ".", '{"items": [1, 2, 3]}')
client.json_get("doc", "NOESCAPE", ".items")   # '[1,2,3]'
client.json_arr_len("doc", ".items")           # 3
```

Any other attribute of a `ReJSONClient` or `ReJSONPipeline` is passed on to
the wrapped client or pipeline. Calling `execute()` on a `ReJSONPipeline`
returns the replies in order, with the JSON replies converted.

## JSON values

```python
from rediscore.jsonvalue import parse, equals_deep

doc = parse(b'{"a": {"b": [10, 20]}}')
doc.at("a", "b", 1).get_int()        # 20; TypeError if the node is not an integer
doc.at("missing").is_nil()           # True

doc.at("a").map_set("c", "x")
doc.to_json_string()                 # '{"a":{"b":[10,20],"c":"x"}}'
equals_deep(doc, doc.clone())        # True
```

## What this package does not do

This is a library only. It has no command-line program and no server. All
storage is done by a Redis server that you provide, and the JSON features
need the RedisJSON module on that server.

## Running the tests

```
pip install -e ".[test]"
pytest
```