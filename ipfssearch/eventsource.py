"""Events for provider records written to a hooked datastore.

Every successful put of a provider record key (``/providers/<cid>/<peer>``)
on the datastore returned by :meth:`EventSource.batching` is announced on an
:class:`EventBus` as a :class:`ProviderPutEvent`.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, List, Optional, Union

from .datastore import HookedDatastore, Key
from .multiformats import Cid, base32_decode, base58_encode, cid_from_bytes

log = logging.getLogger(__name__)

BUFFER_SIZE = 512
HANDLE_TIMEOUT = 1.0

_PROVIDERS_ROOT = Key("/providers/")

Handler = Callable[["ProviderPutEvent"], Union[None, Awaitable[None]]]


class InvalidKeyNamespacesError(ValueError):
    """A provider record key has too few namespaces."""

    def __init__(self, message: str = "not enough namespaces in provider record key") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class ProviderPutEvent:
    """A peer was recorded as providing a CID."""

    cid: Cid
    peer_id: str


def is_provider_key(key: Key) -> bool:
    """Tell whether ``key`` is a provider record for a particular CID."""
    return _PROVIDERS_ROOT.is_ancestor_of(key) and len(key.namespaces()) >= 2


def key_to_cid(key: Key) -> Cid:
    """Extract the CID from a provider record key."""
    namespaces = key.namespaces()
    if len(namespaces) < 2:
        raise InvalidKeyNamespacesError()
    return cid_from_bytes(base32_decode(namespaces[1]))


def key_to_peer_id(key: Key) -> str:
    """Extract the provider's peer ID (base58) from a provider record key."""
    text = str(key)
    return base58_encode(base32_decode(text[text.rfind("/") + 1 :]))


class Subscription:
    """A bounded stream of events from an :class:`EventBus`."""

    def __init__(self, bus: "EventBus", buffer_size: int) -> None:
        self._bus = bus
        self._capacity = max(1, buffer_size)
        self._items: Deque[Any] = deque()
        self._cond = threading.Condition()
        self._closed = False

    def _push(self, event: Any) -> None:
        with self._cond:
            while len(self._items) >= self._capacity and not self._closed:
                self._cond.wait()
            if self._closed:
                return
            self._items.append(event)
            self._cond.notify_all()

    def get(self) -> Any:
        """Block until an event arrives; raise EOFError once closed."""
        with self._cond:
            while not self._items and not self._closed:
                self._cond.wait()
            if self._closed:
                raise EOFError("reading from event bus")
            event = self._items.popleft()
            self._cond.notify_all()
            return event

    def close(self) -> None:
        """Stop receiving events and wake any waiting reader."""
        self._bus._unsubscribe(self)
        with self._cond:
            self._closed = True
            self._items.clear()
            self._cond.notify_all()


class EventBus:
    """Delivers emitted events to every open subscription."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []

    def subscribe(self, buffer_size: int = BUFFER_SIZE) -> Subscription:
        sub = Subscription(self, buffer_size)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def emit(self, event: Any) -> None:
        """Deliver ``event``, waiting while a subscriber's buffer is full."""
        with self._lock:
            subscriptions = list(self._subscriptions)
        for sub in subscriptions:
            sub._push(event)


class EventSource:
    """Turns puts of provider records into events on a bus."""

    def __init__(self, bus: EventBus, datastore: Any) -> None:
        self._bus = bus
        self._datastore = HookedDatastore(datastore, self._after_put)

    def _after_put(
        self, key: Key, value: bytes, error: Optional[BaseException]
    ) -> Optional[BaseException]:
        if error is not None:
            return error
        if not is_provider_key(key):
            return None
        try:
            cid = key_to_cid(key)
        except ValueError as err:
            log.debug("cid from key '%s': %s", key, err)
            return None
        try:
            peer_id = key_to_peer_id(key)
        except ValueError as err:
            log.debug("pid from key '%s': %s", key, err)
            return None
        try:
            self._bus.emit(ProviderPutEvent(cid=cid, peer_id=peer_id))
        except Exception as err:  # emitting must never break the put itself
            log.warning("emitting provider event: %s", err)
        return None

    def batching(self) -> HookedDatastore:
        """Return the hooked datastore to be used in place of the original."""
        return self._datastore

    async def subscribe(self, handler: Handler) -> None:
        """Pass every event to ``handler`` until it raises or the task is cancelled.

        Asynchronous handlers are given at most HANDLE_TIMEOUT seconds.
        """
        sub = self._bus.subscribe(BUFFER_SIZE)
        try:
            while True:
                event = await asyncio.to_thread(sub.get)
                if not isinstance(event, ProviderPutEvent):
                    raise TypeError(f"casting event: {event!r}")
                result = handler(event)
                if inspect.isawaitable(result):
                    await asyncio.wait_for(result, HANDLE_TIMEOUT)
        finally:
            sub.close()