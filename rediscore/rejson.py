"""RedisJSON commands layered over redis clients and pipelines."""

from __future__ import annotations

from typing import Any, Callable, Iterable

Converter = Callable[[Any], Any]


def concat_with_cmd(cmd_name: str, args: Iterable[Any]) -> list[Any]:
    """Build a command line, dropping empty string arguments."""
    return [cmd_name, *(arg for arg in args if not (isinstance(arg, str) and arg == ""))]


def _text(reply: Any) -> Any:
    if isinstance(reply, (bytes, bytearray)):
        return bytes(reply).decode("utf-8")
    return reply


def _as_int(reply: Any) -> Any:
    if reply is None or isinstance(reply, list):
        return reply
    return int(reply)


def _as_text_list(reply: Any) -> list[str]:
    if reply is None:
        return []
    return ["" if item is None else _text(item) for item in reply]


def _identity(reply: Any) -> Any:
    return reply


class _Delegating:
    """Forwards unknown attributes to the wrapped object."""

    _target_attr = ""

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        try:
            target = self.__dict__[self._target_attr]
        except KeyError:
            raise AttributeError(name) from None
        return getattr(target, name)


class ReJSONClient(_Delegating):
    """A redis client extended with RedisJSON commands."""

    _target_attr = "client"

    def __init__(self, client: Any) -> None:
        self.client = client

    def _run(self, converter: Converter, cmd_name: str, *args: Any) -> Any:
        return converter(self.client.execute_command(*concat_with_cmd(cmd_name, args)))

    def pipeline(self) -> "ReJSONPipeline":
        """A non-transactional pipeline with RedisJSON commands."""
        return extend_pipeline(self.client.pipeline(transaction=False))

    def tx_pipeline(self) -> "ReJSONPipeline":
        """A MULTI/EXEC pipeline with RedisJSON commands."""
        return extend_pipeline(self.client.pipeline(transaction=True))

    def json_del(self, key, path):
        """JSON.DEL: number of paths deleted."""
        return self._run(_as_int, "JSON.DEL", key, path)

    def json_get(self, key, *args):
        """JSON.GET with optional INDENT/NEWLINE/SPACE/NOESCAPE and paths."""
        return self._run(_text, "JSON.GET", key, *args)

    def json_set(self, key, path, json, *args):
        """JSON.SET with optional NX/XX."""
        return self._run(_text, "JSON.SET", key, path, json, *args)

    def json_mget(self, key, *args):
        """JSON.MGET over several keys; missing values come back as ''."""
        return self._run(_as_text_list, "JSON.MGET", key, *args)

    def json_type(self, key, path):
        return self._run(_text, "JSON.TYPE", key, path)

    def json_num_incr_by(self, key, path, num):
        return self._run(_text, "JSON.NUMINCRBY", key, path, num)

    def json_num_mult_by(self, key, path, num):
        return self._run(_text, "JSON.NUMMULTBY", key, path, num)

    def json_str_append(self, key, path, append_string):
        return self._run(_as_int, "JSON.STRAPPEND", key, path, append_string)

    def json_str_len(self, key, path):
        return self._run(_as_int, "JSON.STRLEN", key, path)

    def json_arr_append(self, key, path, *args):
        return self._run(_as_int, "JSON.ARRAPPEND", key, path, *args)

    def json_arr_index(self, key, path, json_scalar, *args):
        return self._run(_as_int, "JSON.ARRINDEX", key, path, json_scalar, *args)

    def json_arr_insert(self, key, path, index, *args):
        return self._run(_as_int, "JSON.ARRINSERT", key, path, index, *args)

    def json_arr_len(self, key, path):
        return self._run(_as_int, "JSON.ARRLEN", key, path)

    def json_arr_pop(self, key, path, index):
        return self._run(_text, "JSON.ARRPOP", key, path, index)

    def json_arr_trim(self, key, path, start, stop):
        return self._run(_as_int, "JSON.ARRTRIM", key, path, start, stop)

    def json_obj_keys(self, key, path):
        return self._run(_as_text_list, "JSON.OBJKEYS", key, path)

    def json_obj_len(self, key, path):
        return self._run(_as_int, "JSON.OBJLEN", key, path)


class ReJSONPipeline(_Delegating):
    """A redis pipeline extended with RedisJSON commands.

    JSON commands are queued and return the pipeline; their replies are
    converted when execute() runs.
    """

    _target_attr = "pipe"

    def __init__(self, pipeline: Any) -> None:
        self.pipe = pipeline
        self._converters: dict[int, Converter] = {}

    def _run(self, converter: Converter, cmd_name: str, *args: Any) -> "ReJSONPipeline":
        position = len(self.pipe)
        self.pipe.execute_command(*concat_with_cmd(cmd_name, args))
        self._converters[position] = converter
        return self

    def pipeline(self) -> "ReJSONPipeline":
        """Another view of the same pipeline."""
        view = ReJSONPipeline(self.pipe)
        view._converters = self._converters
        return view

    def execute(self) -> list[Any]:
        """Run every queued command and return their replies in order."""
        converters = dict(self._converters)
        self._converters.clear()
        replies = self.pipe.execute()
        return [
            reply
            if isinstance(reply, Exception)
            else converters.get(position, _identity)(reply)
            for position, reply in enumerate(replies)
        ]

    json_del = ReJSONClient.json_del
    json_get = ReJSONClient.json_get
    json_set = ReJSONClient.json_set
    json_mget = ReJSONClient.json_mget
    json_type = ReJSONClient.json_type
    json_num_incr_by = ReJSONClient.json_num_incr_by
    json_num_mult_by = ReJSONClient.json_num_mult_by
    json_str_append = ReJSONClient.json_str_append
    json_str_len = ReJSONClient.json_str_len
    json_arr_append = ReJSONClient.json_arr_append
    json_arr_index = ReJSONClient.json_arr_index
    json_arr_insert = ReJSONClient.json_arr_insert
    json_arr_len = ReJSONClient.json_arr_len
    json_arr_pop = ReJSONClient.json_arr_pop
    json_arr_trim = ReJSONClient.json_arr_trim
    json_obj_keys = ReJSONClient.json_obj_keys
    json_obj_len = ReJSONClient.json_obj_len


def extend_client(client: Any) -> ReJSONClient:
    """Wrap a redis client so it accepts RedisJSON commands."""
    return ReJSONClient(client)


def extend_pipeline(pipeline: Any) -> ReJSONPipeline:
    """Wrap a redis pipeline so it accepts RedisJSON commands."""
    return ReJSONPipeline(pipeline)