"""
HTTP transport and middleware for the OpenFIGI client.

A transport takes a fully serialized TransportRequest and returns a
TransportResponse, or raises. Middleware wraps a transport and keeps that
contract, so retry and logging policies can be stacked without the client
knowing which are installed:

    transport = RetryMiddleware(LoggingMiddleware(RequestsTransport()), max_retries=3)
"""

import logging
import random
import time
from typing import Callable, Dict, NamedTuple, Optional

import requests

from openfigi_config import APIConfig
from openfigi_exceptions import TransportError
from openfigi_ratelimit import parse_seconds

logger = logging.getLogger(__name__)


class TransportRequest(NamedTuple):
    """Everything needed to perform one HTTP exchange."""

    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[str] = None


class TransportResponse(NamedTuple):
    """Status, headers and undecoded body of one HTTP exchange."""

    status: int
    headers: Dict[str, str]
    body: str

    def header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None


class Transport:
    """Interface for anything that can perform an exchange."""

    def send(self, request: TransportRequest) -> TransportResponse:
        raise NotImplementedError


class RequestsTransport(Transport):
    """Transport backed by a requests.Session (connection pooling, TLS)."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = APIConfig.TIMEOUT_SECONDS,
    ):
        """
        Initialize the transport.

        Args:
            session: Session to reuse; a new one is created when omitted
            timeout: Per-request timeout in seconds, or None for no timeout
        """
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", APIConfig.USER_AGENT)
        self.timeout = timeout

    def send(self, request: TransportRequest) -> TransportResponse:
        response = self.session.request(
            request.method,
            request.url,
            data=request.body.encode("utf-8") if request.body is not None else None,
            headers=request.headers,
            timeout=self.timeout,
        )
        try:
            return TransportResponse(
                status=response.status_code,
                headers=dict(response.headers),
                body=response.text,
            )
        finally:
            response.close()

    def close(self) -> None:
        self.session.close()


class Middleware(Transport):
    """Base for transports that wrap another transport."""

    def __init__(self, inner: Transport):
        self.inner = inner

    def send(self, request: TransportRequest) -> TransportResponse:
        return self.inner.send(request)


class LoggingMiddleware(Middleware):
    """Log every exchange; never logs the API key."""

    def __init__(self, inner: Transport, log: Optional[logging.Logger] = None):
        super().__init__(inner)
        self.log = log or logger

    def send(self, request: TransportRequest) -> TransportResponse:
        started = time.monotonic()
        try:
            response = self.inner.send(request)
        except Exception as e:
            elapsed_ms = (time.monotonic() - started) * 1000
            self.log.warning(f"{request.method} {request.url} failed after {elapsed_ms:.0f}ms: {e}")
            raise
        elapsed_ms = (time.monotonic() - started) * 1000
        self.log.debug(f"{request.method} {request.url} -> {response.status} ({elapsed_ms:.0f}ms)")
        if response.status >= 400:
            self.log.warning(f"{request.method} {request.url} returned HTTP {response.status}")
        return response


class RetryMiddleware(Middleware):
    """
    Retry transient failures with exponential backoff.

    Retries statuses in ``retry_statuses`` plus connection and timeout failures,
    whether raised by requests or as TransportError by a custom transport.
    A numeric Retry-After header overrides the computed delay. When
    the budget is spent the last response is returned (or the last error
    re-raised) so the client can classify it.
    """

    def __init__(
        self,
        inner: Transport,
        max_retries: int = APIConfig.DEFAULT_MAX_RETRIES,
        backoff_base_seconds: float = APIConfig.DEFAULT_BACKOFF_BASE,
        backoff_cap_seconds: float = APIConfig.DEFAULT_BACKOFF_CAP,
        retry_statuses=None,
        jitter: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(inner)
        self.max_retries = max(0, max_retries)
        self.backoff_base_seconds = max(0.0, backoff_base_seconds)
        self.backoff_cap_seconds = max(0.0, backoff_cap_seconds)
        self.retry_statuses = set(
            APIConfig.TRANSIENT_STATUS_CODES if retry_statuses is None else retry_statuses
        )
        self.jitter = jitter
        self._sleep = sleep

    def _delay(self, attempt: int, response: Optional[TransportResponse] = None) -> float:
        if response is not None:
            retry_after = parse_seconds(response.header("Retry-After"))
            if retry_after is not None:
                return min(self.backoff_cap_seconds, retry_after.total_seconds())
        delay = min(self.backoff_cap_seconds, self.backoff_base_seconds * (2 ** attempt))
        if self.jitter:
            delay = random.uniform(0, delay)
        return delay

    @staticmethod
    def _retryable_error(error: Exception) -> bool:
        if isinstance(error, TransportError):
            return error.is_timeout or error.is_connect
        return True

    def send(self, request: TransportRequest) -> TransportResponse:
        for attempt in range(self.max_retries + 1):
            try:
                response = self.inner.send(request)
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout, TransportError) as e:
                if not self._retryable_error(e) or attempt >= self.max_retries:
                    raise
                delay = self._delay(attempt)
                logger.warning(
                    f"Transport error ({e.__class__.__name__}). "
                    f"Retrying in {delay:.1f}s (attempt {attempt + 1}/{self.max_retries})"
                )
                self._sleep(delay)
                continue

            if response.status not in self.retry_statuses or attempt >= self.max_retries:
                return response
            delay = self._delay(attempt, response)
            logger.warning(
                f"Transient status {response.status}. "
                f"Retrying in {delay:.1f}s (attempt {attempt + 1}/{self.max_retries})"
            )
            self._sleep(delay)
        return response
