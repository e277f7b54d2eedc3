"""Publishing of sniffed providers onto a queue."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol as _Protocol

from .types import AnnotatedResource, Provider, SourceType

QUEUE_TIMEOUT = 300.0
PRIORITY = 9


class Publisher(_Protocol):
    """Something items can be published to."""

    async def publish(self, item: Any, priority: int) -> None: ...


class PublisherFactory(_Protocol):
    """Creates publishers."""

    async def new_publisher(self) -> Publisher: ...


class Queuer:
    """Publishes an AnnotatedResource for every provider read from ``providers``."""

    def __init__(
        self,
        publisher: Publisher,
        providers: "asyncio.Queue[Provider]",
        queue_timeout: float = QUEUE_TIMEOUT,
    ) -> None:
        self._publisher = publisher
        self._providers = providers
        self.queue_timeout = queue_timeout

    async def queue(self) -> None:
        """Publish until cancelled.

        Raises asyncio.TimeoutError when no provider arrives within the timeout,
        and propagates publishing errors.
        """
        while True:
            provider = await asyncio.wait_for(self._providers.get(), self.queue_timeout)
            resource = AnnotatedResource(resource=provider.resource, source=SourceType.SNIFFER)
            # Highest priority: sniffed content is supposed to be available.
            await self._publisher.publish(resource, PRIORITY)