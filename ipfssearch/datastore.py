"""Key-value datastore with hierarchical keys and a put-hooking proxy."""

from __future__ import annotations

import posixpath
from typing import Callable, Dict, List, Optional, Tuple

AfterPut = Callable[["Key", bytes, Optional[BaseException]], Optional[BaseException]]


class Key:
    """A cleaned, slash-separated hierarchical key."""

    __slots__ = ("_path",)

    def __init__(self, path: str) -> None:
        self._path = "/" + posixpath.normpath("/" + path.lstrip("/")).lstrip("/")

    def namespaces(self) -> List[str]:
        if self._path == "/":
            return []
        return self._path.split("/")[1:]

    def is_ancestor_of(self, other: "Key") -> bool:
        if self._path == "/":
            return other._path != "/"
        return other._path.startswith(self._path + "/")

    def __str__(self) -> str:
        return self._path

    def __repr__(self) -> str:
        return f"Key({self._path!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Key) and other._path == self._path

    def __hash__(self) -> int:
        return hash(self._path)


class MapDatastore:
    """An in-memory datastore."""

    def __init__(self) -> None:
        self._values: Dict[Key, bytes] = {}

    def put(self, key: Key, value: bytes) -> None:
        self._values[key] = value

    def get(self, key: Key) -> bytes:
        try:
            return self._values[key]
        except KeyError:
            raise KeyError(key) from None

    def has(self, key: Key) -> bool:
        return key in self._values

    def delete(self, key: Key) -> None:
        self._values.pop(key, None)

    def batch(self) -> "Batch":
        return Batch(self)


class Batch:
    """Operations buffered until commit."""

    def __init__(self, datastore) -> None:
        self._datastore = datastore
        self._ops: List[Tuple[str, Key, Optional[bytes]]] = []

    def put(self, key: Key, value: bytes) -> None:
        self._ops.append(("put", key, value))

    def delete(self, key: Key) -> None:
        self._ops.append(("delete", key, None))

    def commit(self) -> None:
        ops, self._ops = self._ops, []
        for op, key, value in ops:
            if op == "put":
                self._datastore.put(key, value)
            else:
                self._datastore.delete(key)


def _hooked_put(put, after_put: AfterPut, key: Key, value: bytes) -> None:
    error: Optional[BaseException] = None
    try:
        put(key, value)
    except Exception as err:
        error = err
    result = after_put(key, value, error)
    if result is not None:
        raise result


class HookedDatastore:
    """Datastore proxy calling ``after_put`` after every put.

    The hook receives the key, the value and the error raised by the put (or
    None); whatever error it returns is raised.
    """

    def __init__(self, datastore, after_put: AfterPut) -> None:
        self._datastore = datastore
        self._after_put = after_put

    def put(self, key: Key, value: bytes) -> None:
        _hooked_put(self._datastore.put, self._after_put, key, value)

    def get(self, key: Key) -> bytes:
        return self._datastore.get(key)

    def has(self, key: Key) -> bool:
        return self._datastore.has(key)

    def delete(self, key: Key) -> None:
        self._datastore.delete(key)

    def batch(self) -> "HookedBatch":
        return HookedBatch(self._datastore.batch(), self._after_put)


class HookedBatch:
    """Batch proxy calling ``after_put`` after every put."""

    def __init__(self, batch, after_put: AfterPut) -> None:
        self._batch = batch
        self._after_put = after_put

    def put(self, key: Key, value: bytes) -> None:
        _hooked_put(self._batch.put, self._after_put, key, value)

    def delete(self, key: Key) -> None:
        self._batch.delete(key)

    def commit(self) -> None:
        self._batch.commit()