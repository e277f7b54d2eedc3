"""TCP dialer retrying while connections are refused."""

from __future__ import annotations

import logging
import socket
import time
from typing import Optional, Tuple

log = logging.getLogger(__name__)


class RetriesExhaustedError(ConnectionError):
    """The maximum number of connection attempts was used up."""


class RetryingDialer:
    """Dials TCP addresses, retrying while the peer refuses the connection."""

    def __init__(self, timeout: float = 30.0, retry_wait: float = 2.0, max_tries: int = 60) -> None:
        self.timeout = timeout
        self.retry_wait = retry_wait
        self.max_tries = max_tries

    def dial(self, address: Tuple[str, int]) -> socket.socket:
        """Connect to ``(host, port)``; other errors than refusal propagate."""
        last: Optional[ConnectionRefusedError] = None
        for attempt in range(self.max_tries):
            try:
                return socket.create_connection(address, timeout=self.timeout)
            except ConnectionRefusedError as err:
                last = err
                log.info(
                    "Connection error (try %d of %d): %s, sleeping %ss",
                    attempt,
                    self.max_tries,
                    err,
                    self.retry_wait,
                )
                time.sleep(self.retry_wait)
        raise RetriesExhaustedError(
            f"Dial retries exhausted: {type(last).__name__} {last}"
        ) from last