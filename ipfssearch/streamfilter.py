"""Filters a stream of providers from one queue into another."""

from __future__ import annotations

import asyncio
import logging

from .providerfilters import ProviderFilter
from .types import Provider

log = logging.getLogger(__name__)


class StreamFilter:
    """Moves providers from ``source`` to ``sink``, dropping those the filter rejects."""

    def __init__(
        self,
        provider_filter: ProviderFilter,
        source: "asyncio.Queue[Provider]",
        sink: "asyncio.Queue[Provider]",
    ) -> None:
        self._filter = provider_filter
        self._source = source
        self._sink = sink

    async def filter(self) -> None:
        """Run until cancelled; filter errors drop the provider and are logged."""
        while True:
            provider = await self._source.get()
            try:
                include = self._filter.filter(provider)
            except Exception as err:
                log.debug("filtering %s: %s", provider, err)
                include = False
            if include:
                await self._sink.put(provider)