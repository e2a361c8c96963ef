"""
Rate-limit ceilings and violation detection.

The guard only reports; it never sleeps, queues or retries. Ceilings are a
pure function of whether an API key is configured, so one guard can be
shared by any number of concurrent callers.
"""

import logging
import math
from datetime import timedelta
from typing import Mapping, NamedTuple, Optional

from openfigi_config import APIConfig, RateLimitConfig
from openfigi_exceptions import RateLimited, ValidationError

logger = logging.getLogger(__name__)


class Ceiling(NamedTuple):
    """Limits that apply to one endpoint in one authentication state."""

    max_jobs_per_request: int
    requests_per_window: int
    window_seconds: int
    authenticated: bool


def _header(headers: Mapping[str, str], names) -> Optional[str]:
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in names:
        if name in lowered:
            return lowered[name]
    return None


def parse_seconds(value: Optional[str]) -> Optional[timedelta]:
    """Parse a seconds-valued header; HTTP-date forms and out-of-range values are ignored."""
    if value is None:
        return None
    try:
        seconds = float(value)
        if not math.isfinite(seconds):
            return None
        return timedelta(seconds=max(0.0, seconds))
    except (ValueError, OverflowError):
        return None


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class RateLimitGuard:
    """Translate authentication state into ceilings and 429s into errors."""

    __slots__ = ("_authenticated",)

    def __init__(self, api_key_configured: bool):
        self._authenticated = bool(api_key_configured)

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    def current_ceiling(self, endpoint: str = APIConfig.ENDPOINT_MAPPING) -> Ceiling:
        """
        Return the ceiling for an endpoint.

        Args:
            endpoint: One of mapping, search or filter

        Raises:
            ValidationError: If the endpoint is unknown
        """
        windows = RateLimitConfig.REQUEST_WINDOWS.get(endpoint)
        if windows is None:
            raise ValidationError("endpoint", endpoint, f"Unknown endpoint '{endpoint}'")
        requests_per_window, window_seconds = windows[self._authenticated]
        if endpoint == APIConfig.ENDPOINT_MAPPING:
            max_jobs = (
                RateLimitConfig.MAPPING_JOBS_WITH_KEY
                if self._authenticated
                else RateLimitConfig.MAPPING_JOBS_WITHOUT_KEY
            )
        else:
            max_jobs = 1
        return Ceiling(max_jobs, requests_per_window, window_seconds, self._authenticated)

    def check(
        self,
        status: int,
        headers: Mapping[str, str],
        endpoint: str,
        url: Optional[str] = None,
    ) -> Optional[int]:
        """
        Inspect a response for a rate-limit violation.

        Args:
            status: HTTP status code
            headers: Response headers
            endpoint: Endpoint the request targeted (the error scope)
            url: Request URL for error context

        Returns:
            The remaining request allowance if the service reported one

        Raises:
            RateLimited: If the service rejected the request for rate reasons
        """
        remaining = _parse_int(_header(headers, RateLimitConfig.REMAINING_HEADERS))

        if status != 429:
            if remaining == 0:
                logger.warning(f"Rate limit allowance for {endpoint} is exhausted")
            return remaining

        retry_after = parse_seconds(_header(headers, (RateLimitConfig.RETRY_AFTER_HEADER,)))
        if retry_after is None:
            retry_after = parse_seconds(_header(headers, RateLimitConfig.RESET_HEADERS))

        ceiling = self.current_ceiling(endpoint) if endpoint in RateLimitConfig.REQUEST_WINDOWS else None
        error = RateLimited(
            scope=endpoint,
            retry_after=retry_after,
            remaining=remaining,
            ceiling=ceiling,
            url=url,
        )
        logger.error(str(error))
        raise error

    def __repr__(self) -> str:
        return f"RateLimitGuard(authenticated={self._authenticated})"
