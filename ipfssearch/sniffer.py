"""Sniffs provider records written to a datastore and queues their resources.

Events flow from the hooked datastore through the event source and handler
into a queue, are filtered into a second queue and finally published.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .config import SnifferConfig
from .eventsource import EventBus, EventSource
from .handler import Handler
from .providerfilters import CidFilter, LastSeenFilter, MultiFilter
from .queuer import PublisherFactory, Queuer
from .streamfilter import StreamFilter
from .types import Provider

log = logging.getLogger(__name__)


class Sniffer:
    """Sniffs the DHT through the datastore returned by :meth:`batching`."""

    restart_delay = 1.0

    def __init__(self, config: SnifferConfig, datastore: Any, publisher_factory: PublisherFactory) -> None:
        self.config = config
        self._events = EventSource(EventBus(), datastore)
        self._factory = publisher_factory

    def batching(self):
        """Return the datastore wrapped with the sniffing hook."""
        return self._events.batching()

    async def _subscribe(self, sniffed: "asyncio.Queue[Provider]") -> None:
        await self._events.subscribe(Handler(sniffed).handle)

    async def _filter(self, sniffed: "asyncio.Queue[Provider]", filtered: "asyncio.Queue[Provider]") -> None:
        combined = MultiFilter(
            LastSeenFilter(self.config.last_seen_expiration, self.config.last_seen_prune_len),
            CidFilter(),
        )
        await StreamFilter(combined, sniffed, filtered).filter()

    async def _queue(self, filtered: "asyncio.Queue[Provider]") -> None:
        publisher = await self._factory.new_publisher()
        await Queuer(publisher, filtered).queue()

    async def _iterate(self, sniffed: "asyncio.Queue[Provider]", filtered: "asyncio.Queue[Provider]") -> None:
        tasks = [
            asyncio.create_task(self._subscribe(sniffed)),
            asyncio.create_task(self._filter(sniffed, filtered)),
            asyncio.create_task(self._queue(filtered)),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        for task in tasks:
            if task in done and not task.cancelled() and task.exception() is not None:
                raise task.exception()

    async def sniff(self) -> None:
        """Sniff until cancelled, restarting after any other error."""
        size = max(1, self.config.buffer_size)
        sniffed: "asyncio.Queue[Provider]" = asyncio.Queue(maxsize=size)
        filtered: "asyncio.Queue[Provider]" = asyncio.Queue(maxsize=size)

        while True:
            try:
                await self._iterate(sniffed, filtered)
                log.info("Sniffing stopped, restarting")
            except asyncio.CancelledError:
                log.info("Sniffing cancelled, returning")
                raise
            except Exception as err:
                log.warning("Sniffing exited with error '%s', restarting", err)
            log.info("Stubbornly restarting in %ss", self.restart_delay)
            await asyncio.sleep(self.restart_delay)