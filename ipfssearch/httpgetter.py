"""HTTP GET helper returning response bodies."""

from __future__ import annotations

from typing import BinaryIO

import requests
from requests.adapters import HTTPAdapter

from .types import RequestError, UnexpectedResponseError


def make_session(max_conns: int) -> requests.Session:
    """Return a session pooling up to ``max_conns`` connections, without proxies."""
    session = requests.Session()
    session.trust_env = False
    adapter = HTTPAdapter(pool_connections=max_conns, pool_maxsize=max_conns)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class HTTPBodyGetter:
    """Performs HTTP GET requests and hands back the body stream."""

    def __init__(self, session: requests.Session) -> None:
        self._session = session

    def get_body(self, url: str, expect_status: int = 200) -> BinaryIO:
        """GET ``url`` and return a readable body; the caller closes it."""
        try:
            response = self._session.get(url, stream=True)
        except requests.RequestException as err:
            raise RequestError(f"request error: {err}") from err

        if response.status_code != expect_status:
            response.close()
            raise UnexpectedResponseError(
                f"unexpected response: unexpected status {response.status_code} {response.reason}"
            )

        response.raw.decode_content = True
        return response.raw