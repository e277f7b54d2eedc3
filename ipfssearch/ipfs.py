"""The IPFS protocol: gateway URLs, stat and directory listing over the HTTP API."""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
from urllib.parse import quote, urlsplit, urlunsplit

import requests

from .config import IPFSConfig
from .types import (
    AnnotatedResource,
    InvalidResourceError,
    Protocol,
    Reference,
    Resource,
    ResourceType,
    SourceType,
    Stat,
)

log = logging.getLogger(__name__)

# Characters left alone when escaping a single path segment.
_SEGMENT_SAFE = "$&+:=@"

# UnixFS protobuf data types.
_PB_RAW = 0
_PB_DIRECTORY = 1
_PB_FILE = 2
_PB_METADATA = 3
_PB_HAMT_SHARD = 5

_INVALID_ERROR_PREFIXES = (
    "proto: required field",
    "proto: unixfs_pb.Data: illegal tag 0",
    "unexpected EOF",
    "unrecognized object type",
    "not unixfs node",
    "proto: can't skip unknown wire type",
    "failed to decode Protocol Buffers",
    "protobuf: (PBNode) invalid wireType",
    "protobuf: (PBNode) invalid fieldNumber",
    "proto: invalid field number",
    "proto: variable length integer overflow",
)


class IPFSError(Exception):
    """An error reported by the IPFS HTTP API."""

    def __init__(self, message: str, code: int = 0, command: str = "") -> None:
        self.message = message
        self.code = code
        self.command = command
        super().__init__(str(self))

    def __str__(self) -> str:
        out = f"{self.command}: " if self.command else ""
        if self.code:
            out += f"{self.code}: "
        return out + self.message


def is_invalid_resource_error(error: BaseException) -> bool:
    """Tell whether an error from the API means the content itself is invalid."""
    if isinstance(error, (requests.Timeout, TimeoutError)):
        # Timeouts are explicitly not protocol errors.
        return False
    if not isinstance(error, IPFSError):
        log.warning("Unexpected protocol error: %s:%s", type(error).__name__, error)
        return False
    if error.message.startswith(_INVALID_ERROR_PREFIXES):
        return True
    log.warning("Unexpected IPFS error: %s", error.message)
    return False


def type_from_pb(pb_type: int) -> ResourceType:
    """Map a UnixFS protobuf type to a resource type.

    Raw may be either a file or an unresolved type, hence undefined.
    """
    if pb_type == _PB_RAW:
        return ResourceType.UNDEFINED
    if pb_type == _PB_FILE:
        return ResourceType.FILE
    if pb_type in (_PB_HAMT_SHARD, _PB_DIRECTORY, _PB_METADATA):
        return ResourceType.DIRECTORY
    return ResourceType.UNSUPPORTED


def type_from_string(text: str) -> ResourceType:
    """Map the type reported by ``files/stat`` to a resource type."""
    if text == "file":
        return ResourceType.FILE
    if text == "directory":
        return ResourceType.DIRECTORY
    return ResourceType.UNSUPPORTED


def _absolute_path(resource: AnnotatedResource) -> str:
    return f"/ipfs/{resource.resource.id}"


def _named_path(resource: AnnotatedResource) -> str:
    ref = resource.reference
    if ref.name:
        if ref.parent is None:
            raise ValueError(f"named reference without parent: {resource}")
        return f"/ipfs/{ref.parent.id}/{quote(ref.name, safe=_SEGMENT_SAFE)}"
    return _absolute_path(resource)


def _iter_json(chunks: Iterable[bytes]) -> Iterator[Any]:
    """Yield the JSON values of a stream of concatenated documents."""
    decoder = json.JSONDecoder()
    text = codecs.getincrementaldecoder("utf-8")()
    buf = ""

    def drain(final: bool) -> Iterator[Any]:
        nonlocal buf
        while True:
            buf = buf.lstrip()
            if not buf:
                return
            try:
                value, end = decoder.raw_decode(buf)
            except json.JSONDecodeError as err:
                if final:
                    raise ValueError(f"decoding json: {err}") from err
                return
            buf = buf[end:]
            yield value

    for chunk in chunks:
        buf += text.decode(chunk)
        yield from drain(False)
    buf += text.decode(b"", final=True)
    yield from drain(True)


def _single_link(output: Any) -> Dict[str, Any]:
    objects = output.get("Objects") if isinstance(output, dict) else None
    if not isinstance(objects, list) or len(objects) != 1 or not isinstance(objects[0], dict):
        raise ValueError("unexpected Objects len")
    links = objects[0].get("Links")
    if not isinstance(links, list) or len(links) != 1 or not isinstance(links[0], dict):
        raise ValueError("unexpected Links len")
    return links[0]


class IPFS:
    """The Interplanetary Filesystem protocol, spoken through an IPFS node's HTTP API."""

    def __init__(self, config: IPFSConfig, session: Optional[requests.Session] = None) -> None:
        gateway = urlsplit(config.gateway_url)
        if not gateway.scheme:
            raise ValueError(f"gateway URL is not absolute: {config.gateway_url}")
        api_url = config.api_url
        if "://" not in api_url:
            api_url = "http://" + api_url
        self.config = config
        self._gateway = gateway
        self._api_url = api_url.rstrip("/")
        self._session = session if session is not None else requests.Session()

    def gateway_url(self, resource: AnnotatedResource) -> str:
        """Return the gateway URL for a resource, named after its reference when it has one."""
        return urlunsplit((self._gateway.scheme, self._gateway.netloc, _named_path(resource), "", ""))

    def _request(
        self, command: str, arg: str, options: List[Tuple[str, bool]] = (), stream: bool = False
    ) -> requests.Response:
        params = [("arg", arg)] + [(name, "true" if value else "false") for name, value in options]
        response = self._session.post(f"{self._api_url}/api/v0/{command}", params=params, stream=stream)
        if response.status_code >= 400:
            try:
                error = self._error_from(command, response)
            finally:
                response.close()
            raise error
        return response

    @staticmethod
    def _error_from(command: str, response: requests.Response) -> IPFSError:
        if response.status_code == 404:
            return IPFSError("command not found", command=command)
        content_type = response.headers.get("Content-Type", "").split(";")[0].strip()
        if content_type == "text/plain":
            return IPFSError(response.text, command=command)
        if content_type == "application/json":
            try:
                body = response.json()
            except ValueError as err:
                return IPFSError(f"decoding error response: {err}", command=command)
            if not isinstance(body, dict):
                body = {}
            code = body.get("Code", 0)
            return IPFSError(
                str(body.get("Message", "")),
                code=code if isinstance(code, int) else 0,
                command=command,
            )
        return IPFSError(f"unknown ipfs-shell error encoding: {content_type!r}", command=command)

    def stat(self, resource: AnnotatedResource) -> Stat:
        """Fill in and return the type and size of ``resource``.

        Unreferenced files of exactly the partial size are marked as partials.
        """
        try:
            response = self._request("files/stat", _absolute_path(resource))
            with response:
                result = response.json()
            if not isinstance(result, dict):
                raise ValueError("decoding json: expected an object")
        except Exception as err:
            if is_invalid_resource_error(err):
                raise InvalidResourceError(f"resource invalid: {err}") from err
            raise

        rtype = type_from_string(result.get("Type", ""))
        size = result.get("Size", 0) if rtype is ResourceType.FILE else result.get("CumulativeSize", 0)
        stat = Stat(type=rtype, size=int(size))
        if stat.size == self.config.partial_size and resource.reference.parent is None:
            stat.type = ResourceType.PARTIAL
        resource.stat = stat
        return stat

    def ls(self, resource: AnnotatedResource) -> Iterator[AnnotatedResource]:
        """Yield the directory entries of ``resource``, with type and size as far as known."""
        try:
            response = self._request(
                "ls",
                _absolute_path(resource),
                [("resolve-type", False), ("size", False), ("stream", True)],
                stream=True,
            )
        except IPFSError as err:
            if is_invalid_resource_error(err):
                raise InvalidResourceError(f"resource invalid: {err}") from err
            raise

        with response:
            for output in _iter_json(response.iter_content(chunk_size=None)):
                link = _single_link(output)
                yield AnnotatedResource(
                    resource=Resource(protocol=Protocol.IPFS, id=str(link.get("Hash", ""))),
                    source=SourceType.DIRECTORY,
                    reference=Reference(parent=resource.resource, name=str(link.get("Name", ""))),
                    stat=Stat(type=type_from_pb(link.get("Type", 0)), size=int(link.get("Size", 0))),
                )