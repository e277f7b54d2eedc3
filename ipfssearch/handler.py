"""Turns provider put events into providers on a queue."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from .eventsource import ProviderPutEvent
from .types import Protocol, Provider, Resource


class Handler:
    """Converts each ProviderPutEvent into a Provider and puts it on ``providers``."""

    def __init__(self, providers: "asyncio.Queue[Provider]") -> None:
        self._providers = providers

    async def handle(self, event: ProviderPutEvent) -> None:
        """Build a provider from ``event`` and wait until it is queued."""
        provider = Provider(
            resource=Resource(protocol=Protocol.IPFS, id=str(event.cid)),
            date=datetime.now(timezone.utc),
            provider=event.peer_id,
        )
        await self._providers.put(provider)