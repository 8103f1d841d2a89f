import json

import pytest
import redis

from rediscore.json_store import JsonCache, decode


class FakePipeline:
    def __init__(self, owner):
        self.owner = owner
        self.queue = []

    def __len__(self):
        return len(self.queue)

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.queue.append((name, args, kwargs))
            return self

        return queue

    def execute(self):
        if self.owner.fail_exec:
            self.queue.clear()
            raise redis.ResponseError("EXECABORT")
        results = [getattr(self.owner, n)(*a, **kw) for n, a, kw in self.queue]
        self.queue.clear()
        return results


class FakeRedis:
    def __init__(self):
        self.docs = {}
        self.hashes = {}
        self.zsets = {}
        self.commands = []
        self.published = []
        self.closed = False
        self.fail_exec = False

    def execute_command(self, *args):
        self.commands.append(list(args))
        name, rest = args[0], list(args[1:])
        if name == "JSON.SET":
            key, path, value = rest[:3]
            if path != ".":
                raise redis.ResponseError("only the root path is supported")
            self.docs[key] = json.loads(value)
            return "OK"
        if name == "JSON.GET":
            key = rest[0]
            if key not in self.docs:
                return None
            return json.dumps(self.docs[key])
        if name == "JSON.MGET":
            keys = rest[: rest.index("NOESCAPE")]
            return [json.dumps(self.docs[k]) if k in self.docs else None for k in keys]
        if name == "JSON.ARRLEN":
            return len(self.docs[rest[0]])
        raise redis.ResponseError(f"unknown command {name}")

    def keys(self, pattern):
        prefix = pattern.rstrip("*")
        names = set(self.docs) | set(self.hashes) | set(self.zsets)
        return sorted(n for n in names if n.startswith(prefix))

    def delete(self, *names):
        count = 0
        for n in names:
            for store in (self.docs, self.hashes, self.zsets):
                if n in store:
                    del store[n]
                    count += 1
        return count

    def hset(self, key, field, value):
        self.hashes.setdefault(key, {})[field] = value
        return 1

    def hdel(self, key, *fields):
        table = self.hashes.get(key, {})
        return sum(1 for f in fields if table.pop(f, None) is not None)

    def hmget(self, key, fields):
        table = self.hashes.get(key, {})
        return [table.get(f) for f in fields]

    def zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def zrem(self, key, *members):
        table = self.zsets.get(key, {})
        return sum(1 for m in members if table.pop(m, None) is not None)

    def publish(self, channel, msg):
        self.published.append((channel, msg))
        return 0

    def close(self):
        self.closed = True

    def pipeline(self, transaction=True):
        return FakePipeline(self)


@pytest.fixture
def stores():
    db0, db1 = FakeRedis(), FakeRedis()
    return JsonCache.from_clients(db0, db1), db0, db1


def test_decode_returns_python_values():
    assert decode('{"b": 1, "a": [1, 2.5, "x"]}') == {"a": [1, 2.5, "x"], "b": 1}


def test_decode_rejects_invalid_json():
    with pytest.raises(ValueError):
        decode("{not json")


def test_rejson_set_and_get_round_trip(stores):
    cache, db0, _ = stores
    cache.rejson_set("doc", ".", json.dumps({"name": "lamp", "on": True}), "")
    assert db0.commands[-1] == ["JSON.SET", "doc", ".", json.dumps({"name": "lamp", "on": True})]
    assert cache.rejson_get("doc", "") == {"name": "lamp", "on": True}
    assert db0.commands[-1] == ["JSON.GET", "doc", "NOESCAPE", "."]


def test_rejson_update_and_get_string(stores):
    cache, _, _ = stores
    cache.rejson_update("doc", ".", "[1, 2, 3]")
    assert json.loads(cache.rejson_get_string("doc", ".")) == [1, 2, 3]


def test_rejson_get_missing_key_raises(stores):
    cache, _, _ = stores
    with pytest.raises(KeyError):
        cache.rejson_get("absent", ".")
    with pytest.raises(KeyError):
        cache.rejson_get_string("absent", "")


def test_rejson_set_error_propagates(stores):
    cache, _, _ = stores
    with pytest.raises(redis.ResponseError):
        cache.rejson_set("doc", ".field", "1")


def test_rejson_arr_len(stores):
    cache, _, _ = stores
    cache.rejson_set("arr", ".", "[4, 5, 6, 7]")
    assert cache.rejson_arr_len("arr", ".") == 4


def test_hash_get_all_device_skips_missing(stores):
    cache, db0, _ = stores
    db0.hset("all$u", "u$d$dev1$r1", json.dumps({"t": 20}))
    result = cache.hash_get_all("all$u", ".", ["u$d$dev1$r1", "u$d$dev2$r2"], "device")
    assert result == [{"device_id": "dev1", "data_item": {"t": 20}}]


def test_hash_get_all_record_without_filters_is_empty(stores):
    cache, db0, _ = stores
    db0.hset("h", "u$d$b$r", json.dumps({"t": 1}))
    assert cache.hash_get_all("h", ".", ["u$d$b$r"], "record", "", "") == []
    assert cache.hash_get_all("h", ".", ["u$d$b$r"], "record", "x", "") == [
        {"record_id": "r", "bucket_id": "b", "device_id": "d", "data_item": {"t": 1}}
    ]


def test_rejson_get_all_shapes_records(stores):
    cache, _, _ = stores
    cache.rejson_set("u$d$b$r1", ".", json.dumps({"v": 1}))
    cache.rejson_set("u$d$b$r2", ".", json.dumps({"v": 2}))
    result = cache.rejson_get_all("b", ".", ["u$d$b$r1", "u$d$b$missing", "u$d$b$r2"], "record_all")
    assert result == {
        "data": [
            {"record_id": "r1", "bucket_id": "b", "device_id": "d", "data_item": {"v": 1}},
            {"record_id": "r2", "bucket_id": "b", "device_id": "d", "data_item": {"v": 2}},
        ]
    }


def test_rejson_get_all_minio_id_all(stores):
    cache, _, _ = stores
    cache.rejson_set("m$u$d$b$rec9", ".", "{}")
    assert cache.rejson_get_all("b", ".", ["m$u$d$b$rec9"], "minio_id_all") == {"data": ["rec9"]}


def test_rejson_get_all_requires_kind(stores):
    cache, _, _ = stores
    with pytest.raises(IndexError):
        cache.rejson_get_all("b", ".", ["k"])


def test_rejson_get_any_all_skips_missing(stores):
    cache, db0, _ = stores
    cache.rejson_set("a", ".", json.dumps({"x": 1}))
    cache.rejson_set("c", ".", json.dumps([2]))
    assert cache.rejson_get_any_all(["a", "b", "c"], ".") == [{"x": 1}, [2]]
    assert db0.commands[-1] == ["JSON.MGET", "a", "b", "c", "NOESCAPE", "."]


def test_rejson_get_by_query_reads_prefix(stores):
    cache, _, _ = stores
    cache.rejson_set("dev$1", ".", json.dumps({"n": 1}))
    cache.rejson_set("dev$2", ".", json.dumps({"n": 2}))
    cache.rejson_set("other", ".", json.dumps({"n": 3}))
    assert sorted(r["n"] for r in cache.rejson_get_by_query("dev$", ".")) == [1, 2]


def test_delete_and_delete_all(stores):
    cache, db0, _ = stores
    for key in ("p$1", "p$2", "q$1"):
        cache.rejson_set(key, ".", "1")
    cache.delete("q$1")
    assert sorted(db0.docs) == ["p$1", "p$2"]
    cache.delete_all("p$")
    assert db0.docs == {}


def test_realtime_notification_publishes_and_closes(stores):
    cache, db0, _ = stores
    cache.realtime_notification("events", "hello")
    assert db0.published == [("events", "hello")]
    assert db0.closed is True


def test_save_record_pipeline_stores_and_indexes(stores):
    cache, db0, db1 = stores
    cache.save_record_pipeline("u", "d", "b", "r1", b'{"v": 1}')
    assert cache.rejson_get("u$d$b$r1", ".") == {"v": 1}
    assert db0.hashes["all$u"] == {"u$d$b$r1": '{"v": 1}'}
    assert db0.hashes["List$BM$u$d$b"] == {"r1": ""}
    assert list(db1.zsets["BM$u$d$b"]) == ["u$d$b$r1"]
    assert list(db1.zsets["all$u"]) == ["u$d$b$r1"]


def test_save_record_pipeline_index_failure_drops_document(stores):
    cache, db0, db1 = stores
    db1.fail_exec = True
    cache.save_record_pipeline("u", "d", "b", "r1", '{"v": 1}')
    assert "u$d$b$r1" not in db0.docs
    assert db1.zsets == {}
    assert db0.hashes["all$u"] == {"u$d$b$r1": '{"v": 1}'}


def test_save_record_pipeline_hash_failure_rolls_back_and_raises(stores):
    cache, db0, _ = stores
    db0.fail_exec = True
    with pytest.raises(redis.ResponseError):
        cache.save_record_pipeline("u", "d", "b", "r1", '{"v": 1}')
    assert "u$d$b$r1" not in db0.docs
    assert db0.hashes.get("all$u", {}) == {}


def test_delete_records_pipeline_removes_records(stores):
    cache, db0, db1 = stores
    cache.save_record_pipeline("u", "d", "b", "r1", '{"v": 1}')
    cache.save_record_pipeline("u", "d", "b", "r2", '{"v": 2}')
    cache.delete_records_pipeline("u", "d", "b", "r1", "r2")
    assert db0.docs == {}
    assert db0.hashes["all$u"] == {}
    assert db1.zsets["all$u"] == {}
    assert db1.zsets["BM$u$d$b"] == {}