"""Common data types used internally for resources, providers and errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

Metadata = Dict[str, Any]


class Protocol(Enum):
    """Protocol a resource is served over."""

    INVALID = 0
    IPFS = 1

    def __str__(self) -> str:
        if self is Protocol.IPFS:
            return "ipfs"
        raise ValueError("Invalid value for Protocol.")

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


class ResourceType(Enum):
    """Kind of resource."""

    UNDEFINED = 0
    UNSUPPORTED = 1
    FILE = 2
    DIRECTORY = 3
    PARTIAL = 4

    def __str__(self) -> str:
        return self.name.lower()

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


class SourceType(Enum):
    """Where a resource was learned about."""

    UNKNOWN = 0
    SNIFFER = 1
    DIRECTORY = 2
    MANUAL = 3
    USER = 4

    def __str__(self) -> str:
        return self.name.lower()

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


@dataclass
class Resource:
    """A resource on the distributed web."""

    protocol: Protocol = Protocol.INVALID
    id: str = ""

    def uri(self) -> str:
        """Return a unique identifier for the resource."""
        return f"{self.protocol}://{self.id}"

    def is_valid(self) -> bool:
        return self.protocol is not Protocol.INVALID and self.id != ""

    def __str__(self) -> str:
        return self.uri()


@dataclass
class Reference:
    """Reference to a resource from a named entry in a parent."""

    parent: Optional[Resource] = None
    name: str = ""

    def __str__(self) -> str:
        return self.name


@dataclass
class Stat:
    """Type and size of a resource."""

    type: ResourceType = ResourceType.UNDEFINED
    size: int = 0


@dataclass
class AnnotatedResource:
    """A resource annotated with its source, reference and stat."""

    resource: Resource = field(default_factory=Resource)
    source: SourceType = SourceType.UNKNOWN
    reference: Reference = field(default_factory=Reference)
    stat: Stat = field(default_factory=Stat)

    def uri(self) -> str:
        return self.resource.uri()

    def is_valid(self) -> bool:
        return self.resource.is_valid()

    def __str__(self) -> str:
        if self.reference.name:
            return f"{self.reference.name} ({self.uri()})"
        return self.uri()


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Provider:
    """A resource available from a given provider at a given moment."""

    resource: Optional[Resource] = None
    date: datetime = field(default_factory=_now)
    provider: str = ""

    def __str__(self) -> str:
        uri = self.resource.uri() if self.resource is not None else ""
        return f"{uri} at {self.provider} on {self.date}"


def mock_provider() -> Provider:
    """Return a provider suitable for tests."""
    return Provider(
        resource=Resource(
            protocol=Protocol.IPFS,
            id="QmSKboVigcD3AY4kLsob117KJcMHvMUu6vNFqk1PQzYUpp",
        ),
        date=_now(),
        provider="QmeTtFXm42Jb2todcKR538j6qHYxXt6suUzpF3rtT9FPSd",
    )


class InvalidResourceError(Exception):
    """A resource is unsupported or invalid."""

    def __init__(self, message: str = "resource invalid") -> None:
        super().__init__(message)


class UnsupportedTypeError(InvalidResourceError):
    """The type of a resource is currently unsupported."""

    def __init__(self, message: str = "unsupported type") -> None:
        super().__init__(message)


class UnexpectedResponseError(Exception):
    """An upstream service answered with an unexpected status."""

    def __init__(self, message: str = "unexpected response") -> None:
        super().__init__(message)


class RequestError(Exception):
    """An upstream request failed."""

    def __init__(self, message: str = "request error") -> None:
        super().__init__(message)