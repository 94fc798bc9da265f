"""Retry policy shared by API calls and uploads."""

from __future__ import annotations

import errno
import socket
from dataclasses import dataclass
from typing import Iterator, Optional

_RETRYABLE_ERRNOS = frozenset(
    {
        errno.ECONNREFUSED,
        errno.ECONNRESET,
        errno.ECONNABORTED,
        errno.ETIMEDOUT,
        errno.ENETUNREACH,
        errno.EHOSTUNREACH,
        errno.EPIPE,
        errno.EBADF,
    }
)

_RETRYABLE_PHRASES = (
    "connection refused",
    "connection reset",
    "connection aborted",
    "bad file descriptor",
    "deadline exceeded",
    "i/o timeout",
    "timed out",
    "timeout",
    "network is unreachable",
    "host is unreachable",
    "broken pipe",
    "no such host",
    "temporary failure in name resolution",
)

_RETRYABLE_STATUSES = frozenset({408, 429})


@dataclass(frozen=True)
class RetryConfig:
    """How often to retry and how long to wait between attempts (in seconds)."""

    max_retries: int = 3
    initial_delay: float = 0.5
    max_delay: float = 5.0
    backoff_factor: float = 2.0


def default_retry_config() -> RetryConfig:
    """Retry policy used for API requests."""
    return RetryConfig(max_retries=3, initial_delay=0.5, max_delay=5.0, backoff_factor=2.0)


def upload_retry_config() -> RetryConfig:
    """Retry policy used for Dockerfile uploads."""
    return RetryConfig(max_retries=3, initial_delay=1.0, max_delay=10.0, backoff_factor=2.0)


def is_retryable_error(err: Optional[BaseException]) -> bool:
    """Return True for transient network failures worth another attempt."""
    if err is None:
        return False
    if isinstance(err, (ConnectionError, TimeoutError, socket.gaierror)):
        return True
    if isinstance(err, OSError) and err.errno in _RETRYABLE_ERRNOS:
        return True
    text = str(err).lower()
    return any(phrase in text for phrase in _RETRYABLE_PHRASES)


def is_retryable_http_status(status_code: int) -> bool:
    """Return True for timeouts, throttling and server errors."""
    return status_code in _RETRYABLE_STATUSES or 500 <= status_code < 600


def backoff_delays(config: RetryConfig) -> Iterator[float]:
    """Yield the wait before each retry, growing exponentially up to the cap."""
    delay = min(config.initial_delay, config.max_delay)
    for _ in range(config.max_retries):
        yield delay
        delay = min(delay * config.backoff_factor, config.max_delay)