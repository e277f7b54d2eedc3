"""Filters deciding which sniffed providers are passed on."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Protocol as _Protocol

from .multiformats import Codec, decode_cid
from .types import Protocol, Provider

log = logging.getLogger(__name__)

_LOG_EVERY = 1000


class FilterError(Exception):
    """A filter in a chain failed."""


class UnsupportedProtocolError(ValueError):
    """The provider's resource is not served over a supported protocol."""


class DecodingCidError(ValueError):
    """The provider's resource ID is not a valid CID."""


class UnsupportedCodecError(ValueError):
    """The CID's content type cannot be handled."""


class ProviderFilter(_Protocol):
    def filter(self, provider: Provider) -> bool: ...


def _describe(provider: Provider) -> str:
    resource = provider.resource
    ident = resource.id if resource is not None else ""
    return f"{ident} at {provider.provider} on {provider.date}"


class CidFilter:
    """Passes only IPFS resources whose CID is raw or dag-protobuf."""

    def filter(self, provider: Provider) -> bool:
        resource = provider.resource
        protocol = resource.protocol if resource is not None else Protocol.INVALID
        if protocol is not Protocol.IPFS:
            raise UnsupportedProtocolError(
                f"unsupported protocol: {protocol.name.lower()} for {_describe(provider)}"
            )
        try:
            cid = decode_cid(resource.id)
        except ValueError as err:
            raise DecodingCidError(
                f"unable to decode CID: {err} decoding CID {_describe(provider)}"
            ) from err
        if cid.codec in (Codec.RAW, Codec.DAG_PROTOBUF):
            return True
        raise UnsupportedCodecError(
            f"unsupported codec: {cid.codec} for {_describe(provider)}"
        )


class LastSeenFilter:
    """Drops providers whose resource was seen less than ``expiration`` seconds ago."""

    def __init__(self, expiration: float, prune_len: int) -> None:
        self.expiration = timedelta(seconds=expiration)
        self.prune_len = prune_len
        self._resources: Dict[str, datetime] = {}
        self._count = 0

    def _prune(self) -> None:
        if len(self._resources) <= self.prune_len:
            return
        now = datetime.now(timezone.utc)
        expired = [k for k, seen in self._resources.items() if now - seen > self.expiration]
        for key in expired:
            del self._resources[key]
        log.info(
            "Pruned %d resources, len: %d, pruneLen: %d",
            len(expired),
            len(self._resources),
            self.prune_len,
        )

    def _should_log(self) -> bool:
        return self._count % _LOG_EVERY == 0

    def filter(self, provider: Provider) -> bool:
        self._count += 1
        self._prune()

        key = str(provider.resource)
        last_seen = self._resources.get(key)

        if last_seen is None:
            if self._should_log():
                log.info("Adding LastSeen: %s, len: %d", provider, len(self._resources))
            self._resources[key] = provider.date
            return True

        if provider.date - last_seen > self.expiration:
            if self._should_log():
                log.info("Updating LastSeen: %s, len: %d", provider, len(self._resources))
            self._resources[key] = provider.date
            return True

        if self._should_log():
            log.info("Filtering recent %s, LastSeen %s", provider, last_seen)
        return False


class MultiFilter:
    """Combines filters; a provider passes only when every filter passes it."""

    def __init__(self, *args: ProviderFilter) -> None:
        self._filters = args

    def filter(self, provider: Provider) -> bool:
        for f in self._filters:
            try:
                include = f.filter(provider)
            except Exception as err:
                raise FilterError(f"filter error: {err} with filter {f!r}") from err
            if not include:
                return False
        return True