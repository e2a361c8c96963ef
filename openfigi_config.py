"""
Configuration for the OpenFIGI API client.

Centralizes magic numbers and constants for easier maintenance.
"""

import os
from typing import Mapping, Optional


class APIConfig:
    """API configuration constants."""

    BASE_URL = "https://api.openfigi.com/v3"
    TIMEOUT_SECONDS = 10

    ENDPOINT_MAPPING = "mapping"
    ENDPOINT_SEARCH = "search"
    ENDPOINT_FILTER = "filter"
    ENDPOINT_VALUES = "mapping/values"

    API_KEY_HEADER = "X-OPENFIGI-APIKEY"
    API_KEY_ENV_VAR = "OPENFIGI_API_KEY"
    USER_AGENT = "OpenFIGI-Client/1.0"

    # Retry configuration (used by RetryMiddleware only; the core never retries)
    TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_BACKOFF_BASE = 0.5
    DEFAULT_BACKOFF_CAP = 30.0

    # Pagination
    DEFAULT_MAX_PAGES = 10


class RateLimitConfig:
    """
    Per-endpoint ceilings for the two authentication states.

    OpenFIGI: 25 mapping requests per minute (5 jobs each) without a key,
    25 per 6 seconds (100 jobs each) with one. Search and filter take one
    query per request.
    """

    MAPPING_JOBS_WITHOUT_KEY = 5
    MAPPING_JOBS_WITH_KEY = 100

    # endpoint -> authenticated -> (requests, window seconds)
    REQUEST_WINDOWS = {
        APIConfig.ENDPOINT_MAPPING: {False: (25, 60), True: (25, 6)},
        APIConfig.ENDPOINT_SEARCH: {False: (5, 60), True: (20, 60)},
        APIConfig.ENDPOINT_FILTER: {False: (5, 60), True: (20, 60)},
    }

    REMAINING_HEADERS = ("ratelimit-remaining", "x-ratelimit-remaining")
    RESET_HEADERS = ("ratelimit-reset", "x-ratelimit-reset")
    RETRY_AFTER_HEADER = "retry-after"


class ValueSetConfig:
    """Value-set keys served by the mapping/values endpoint."""

    KEYS = (
        "idType",
        "exchCode",
        "micCode",
        "currency",
        "marketSecDes",
        "securityType",
        "securityType2",
        "stateCode",
    )
    LOCAL_KEYS = ("optionType",)
    DEFAULT_OUTPUT_DIR = "./reference_data"
    SUMMARY_FILENAME = "_summary.json"


class RequestConfig:
    """Request-validation constants."""

    MAX_DATE_RANGE_DAYS = 365
    NO_RESULTS_MESSAGES = {"No identifier found."}


def load_api_key(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Read the API key from the environment.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        The key, or None when unset or blank
    """
    source = os.environ if environ is None else environ
    value = source.get(APIConfig.API_KEY_ENV_VAR)
    if value is None or not value.strip():
        return None
    return value.strip()
