#!/usr/bin/env python3
"""
OpenFIGI Mapping and Search Client

This module maps security identifiers to FIGIs and runs keyword searches
against the OpenFIGI v3 API.

Key Classes:
    OpenFIGIClient: Shared, immutable client handle
    OpenFIGIClientBuilder: Fluent configuration of a client
    Dispatcher: Performs one HTTP exchange and classifies its failures

Usage:
    from openfigi_client import OpenFIGIClient
    client = OpenFIGIClient()
    batch = (client.batch()
             .job(lambda j: j.id_type("ID_ISIN").id_value("US4592001014"))
             .job(lambda j: j.id_type("TICKER").id_value("AAPL").exch_code("US"))
             .build())
    result = client.map_batch(batch)
    for index, records in result.successes():
        ...
    for index, message in result.failures():
        ...

Command-line usage:
    python openfigi_client.py US4592001014
    python openfigi_client.py --id-type TICKER IBM AAPL --exch-code US
    python openfigi_client.py --search "ibm" --currency USD
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union
from urllib.parse import urlparse

import requests

from openfigi_builders import (
    BatchRequestBuilder,
    FilterQueryBuilder,
    MappingJobBuilder,
    SearchQueryBuilder,
)
from openfigi_config import APIConfig, ValueSetConfig, load_api_key
from openfigi_exceptions import (
    ApiError,
    MalformedResponse,
    OpenFIGIError,
    TransportError,
    ValidationError,
)
from openfigi_models import Batch, FilterQuery, MappingJob, SearchQuery
from openfigi_ratelimit import Ceiling, RateLimitGuard
from openfigi_response import ResponseAggregator, ResponseResult
from openfigi_transport import (
    LoggingMiddleware,
    RequestsTransport,
    RetryMiddleware,
    Transport,
    TransportRequest,
)
from openfigi_values import ValueSet, load_value_sets

# Configure logging
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# Add stderr handler if not already present
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        "%(levelname)s: %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

_UNSET = object()


def _format_error_message(status: int, url: str, body: str) -> str:
    """Describe a non-2xx status in OpenFIGI terms."""
    if status == 400:
        return f"Bad request to {url}: Invalid request body or parameters."
    if status == 401:
        return f"Unauthorized access to {url}: API key is missing or invalid."
    if status == 404:
        return f"Not found error from {url}: The requested resource could not be found."
    if status == 405:
        return f"Method not allowed for {url}: The requested method is not supported for this endpoint."
    if status == 406:
        return f"Not acceptable request to {url}: Unsupported Accept header type."
    if status == 413:
        return (
            f"Payload too large for {url}: Too many mapping jobs in request "
            f"(max 100 with API key, 5 without)."
        )
    if status == 500:
        return f"Internal server error from {url}: OpenFIGI service is experiencing issues."
    if status in (502, 503, 504):
        return (
            f"Service unavailable from {url}: OpenFIGI service is temporarily "
            f"unavailable. Please retry later."
        )
    return f"Unexpected HTTP status {status} from {url}: {body}"


def _validate_base_url(base_url: str) -> str:
    parsed = urlparse(base_url) if isinstance(base_url, str) else None
    if parsed is None or parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("base_url", base_url, f"Invalid base URL '{base_url}'")
    return base_url.rstrip("/")


MappingRequest = Union[MappingJob, Batch]
QueryRequest = Union[SearchQuery, FilterQuery]


class Dispatcher:
    """
    Serialize a request, perform exactly one exchange, classify failures.

    Retries are left to whatever middleware wraps the transport.
    """

    def __init__(
        self,
        transport: Transport,
        base_url: str,
        api_key: Optional[str],
        guard: RateLimitGuard,
    ):
        self.transport = transport
        self.base_url = base_url
        self.api_key = api_key
        self.guard = guard

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers[APIConfig.API_KEY_HEADER] = self.api_key
        return headers

    def exchange(self, method: str, path: str, scope: str, body: Any = None) -> Any:
        """
        Perform one exchange and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Endpoint path relative to the base URL
            scope: Rate-limit scope reported in errors
            body: JSON-serializable request body, if any

        Raises:
            TransportError: On timeout, connection, TLS or other request failures
            RateLimited: On HTTP 429
            ApiError: On any other non-2xx status
            MalformedResponse: If the body is not valid JSON
        """
        url = f"{self.base_url}/{path}"
        request = TransportRequest(
            method=method,
            url=url,
            headers=self._headers(),
            body=json.dumps(body) if body is not None else None,
        )

        try:
            response = self.transport.send(request)
        except TransportError:
            raise
        except requests.exceptions.SSLError as e:
            raise TransportError("tls", str(e), url) from e
        except requests.exceptions.Timeout as e:
            raise TransportError("timeout", str(e), url) from e
        except requests.exceptions.ConnectionError as e:
            raise TransportError("connection", str(e), url) from e
        except requests.exceptions.RequestException as e:
            raise TransportError("request", str(e), url) from e

        remaining = self.guard.check(response.status, response.headers, scope, url)
        if remaining is not None:
            logger.debug(f"{scope}: {remaining} requests left in the current window")

        if not 200 <= response.status < 300:
            raise ApiError(
                status=response.status,
                message=_format_error_message(response.status, url, response.body),
                body=response.body,
                url=url,
            )

        try:
            return json.loads(response.body)
        except ValueError as e:
            raise MalformedResponse(f"response body from {url} is not valid JSON") from e

    def send(self, request: Union[MappingRequest, QueryRequest]) -> Any:
        """
        Send a built request to its endpoint.

        Mapping always posts an array (one element for a single job); search
        and filter post a single object. A batch larger than this
        dispatcher's ceiling is rejected before any exchange.
        """
        if isinstance(request, MappingJob):
            return self.exchange("POST", APIConfig.ENDPOINT_MAPPING, APIConfig.ENDPOINT_MAPPING, [request.to_payload()])
        if isinstance(request, Batch):
            BatchRequestBuilder(self.guard).extend(request).build()
            return self.exchange("POST", APIConfig.ENDPOINT_MAPPING, APIConfig.ENDPOINT_MAPPING, request.to_payload())
        if isinstance(request, SearchQuery):
            return self.exchange("POST", APIConfig.ENDPOINT_SEARCH, APIConfig.ENDPOINT_SEARCH, request.to_payload())
        if isinstance(request, FilterQuery):
            return self.exchange("POST", APIConfig.ENDPOINT_FILTER, APIConfig.ENDPOINT_FILTER, request.to_payload())
        raise ValidationError("request", request, f"Cannot send {type(request).__name__}")


class OpenFIGIClient:
    """
    Client for the OpenFIGI mapping, search and filter endpoints.

    Immutable after construction and safe to share; with_api_key() returns a
    new handle over the same transport.
    """

    __slots__ = ("_transport", "_base_url", "_api_key", "_guard", "_value_sets", "_dispatcher", "_aggregator")

    def __init__(
        self,
        transport: Optional[Transport] = None,
        base_url: str = APIConfig.BASE_URL,
        api_key: Any = _UNSET,
        value_sets: Optional[Dict[str, ValueSet]] = None,
    ):
        """
        Initialize the client.

        Args:
            transport: Transport (optionally wrapped in middleware); defaults to RequestsTransport
            base_url: API root, e.g. https://api.openfigi.com/v3
            api_key: Explicit key, None for no key; read from OPENFIGI_API_KEY when omitted
            value_sets: Value-set table used by the builders this client hands out
        """
        if api_key is _UNSET:
            api_key = load_api_key()
        self._transport = transport or RequestsTransport()
        self._base_url = _validate_base_url(base_url)
        self._api_key = api_key or None
        self._guard = RateLimitGuard(self._api_key is not None)
        self._value_sets = value_sets or load_value_sets()
        self._dispatcher = Dispatcher(self._transport, self._base_url, self._api_key, self._guard)
        self._aggregator = ResponseAggregator()

    @classmethod
    def builder(cls) -> "OpenFIGIClientBuilder":
        return OpenFIGIClientBuilder()

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key

    @property
    def has_api_key(self) -> bool:
        return self._api_key is not None

    @property
    def guard(self) -> RateLimitGuard:
        return self._guard

    @property
    def value_sets(self) -> Dict[str, ValueSet]:
        return dict(self._value_sets)

    def with_api_key(self, api_key: Optional[str]) -> "OpenFIGIClient":
        """Return a new client with a different key and the same transport."""
        return OpenFIGIClient(
            transport=self._transport,
            base_url=self._base_url,
            api_key=api_key,
            value_sets=self._value_sets,
        )

    def ceiling(self, endpoint: str = APIConfig.ENDPOINT_MAPPING) -> Ceiling:
        return self._guard.current_ceiling(endpoint)

    def mapping_job(self) -> MappingJobBuilder:
        return MappingJobBuilder(self._value_sets)

    def search_query(self) -> SearchQueryBuilder:
        return SearchQueryBuilder(self._value_sets)

    def filter_query(self) -> FilterQueryBuilder:
        return FilterQueryBuilder(self._value_sets)

    def batch(self) -> BatchRequestBuilder:
        return BatchRequestBuilder(self._guard, self._value_sets)

    def map(self, job: MappingJob) -> ResponseResult:
        """
        Map a single identifier.

        Returns:
            A ResponseResult of length 1
        """
        payload = self._dispatcher.send(job)
        return self._aggregator.aggregate_mapping(payload, expected=1)

    def map_batch(self, batch: Union[Batch, Iterable[MappingJob]]) -> ResponseResult:
        """
        Map a batch of identifiers in one exchange.

        Args:
            batch: A built Batch, or mapping jobs to batch against this client's ceiling

        Returns:
            A ResponseResult whose index i answers job i

        Raises:
            EmptyBatch, BatchSizeExceeded: Before any network call
        """
        if not isinstance(batch, Batch):
            batch = self.batch().extend(batch).build()
        logger.debug(f"Mapping batch of {len(batch)} jobs")
        payload = self._dispatcher.send(batch)
        return self._aggregator.aggregate_mapping(payload, expected=len(batch))

    def search(self, query: Union[SearchQuery, str]) -> ResponseResult:
        """Run one keyword search; a plain string is used as the query text."""
        if isinstance(query, str):
            query = self.search_query().query(query).build()
        payload = self._dispatcher.send(query)
        return self._aggregator.aggregate_query(payload)

    def filter(self, query: FilterQuery) -> ResponseResult:
        """Run one filter request."""
        payload = self._dispatcher.send(query)
        return self._aggregator.aggregate_query(payload)

    def _pages(self, query: QueryRequest, send, max_pages: int) -> Iterator[ResponseResult]:
        for page_num in range(1, max(0, max_pages) + 1):
            result = send(query)
            yield result
            if self._should_stop_pagination(result):
                break
            query = query.with_start(result.next_page)
            logger.debug(f"Following pagination token to page {page_num + 1}")

    def search_pages(
        self,
        query: Union[SearchQuery, str],
        max_pages: int = APIConfig.DEFAULT_MAX_PAGES,
    ) -> Iterator[ResponseResult]:
        """Yield one ResponseResult per page, following ``next`` tokens."""
        if isinstance(query, str):
            query = self.search_query().query(query).build()
        return self._pages(query, self.search, max_pages)

    def filter_pages(
        self,
        query: FilterQuery,
        max_pages: int = APIConfig.DEFAULT_MAX_PAGES,
    ) -> Iterator[ResponseResult]:
        """Yield one ResponseResult per page, following ``next`` tokens."""
        return self._pages(query, self.filter, max_pages)

    def fetch_values(self, key: str) -> List[str]:
        """
        Fetch the current members of a value set.

        Args:
            key: One of ValueSetConfig.KEYS

        Raises:
            ValidationError: If the key is unknown
            MalformedResponse: If the body is not {"values": [str, ...]}
        """
        if key not in ValueSetConfig.KEYS:
            raise ValidationError("key", key, f"Unknown value set '{key}'")
        payload = self._dispatcher.exchange("GET", f"{APIConfig.ENDPOINT_VALUES}/{key}", "values")
        values = payload.get("values") if isinstance(payload, dict) else None
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise MalformedResponse(f"values response for {key} must be {{'values': [str, ...]}}")
        return values

    @staticmethod
    def _should_stop_pagination(result: ResponseResult) -> bool:
        return not result.next_page or result.failure_count > 0

    def __repr__(self) -> str:
        return f"OpenFIGIClient(base_url={self._base_url!r}, has_api_key={self.has_api_key})"


class OpenFIGIClientBuilder:
    """
    Fluent configuration for OpenFIGIClient.

    Middleware is applied in the order added; the first one wraps the
    transport directly.
    """

    def __init__(self):
        self._base_url = APIConfig.BASE_URL
        self._api_key: Any = _UNSET
        self._transport: Optional[Transport] = None
        self._session: Optional[requests.Session] = None
        self._timeout: Optional[float] = APIConfig.TIMEOUT_SECONDS
        self._middleware: List[tuple] = []
        self._value_sets_dir: Optional[str] = None

    def base_url(self, url: str) -> "OpenFIGIClientBuilder":
        self._base_url = url
        return self

    def api_key(self, key: Optional[str]) -> "OpenFIGIClientBuilder":
        self._api_key = key
        return self

    def transport(self, transport: Transport) -> "OpenFIGIClientBuilder":
        self._transport = transport
        return self

    def session(self, session: requests.Session) -> "OpenFIGIClientBuilder":
        self._session = session
        return self

    def timeout(self, seconds: Optional[float]) -> "OpenFIGIClientBuilder":
        self._timeout = seconds
        return self

    def with_middleware(self, factory, **kwargs) -> "OpenFIGIClientBuilder":
        """
        Wrap the transport.

        Args:
            factory: Callable taking the inner transport (e.g. RetryMiddleware)
            **kwargs: Extra arguments for the factory
        """
        self._middleware.append((factory, kwargs))
        return self

    def value_sets_dir(self, directory: str) -> "OpenFIGIClientBuilder":
        self._value_sets_dir = directory
        return self

    def build(self) -> OpenFIGIClient:
        transport = self._transport or RequestsTransport(self._session, self._timeout)
        for factory, kwargs in self._middleware:
            transport = factory(transport, **kwargs)
        return OpenFIGIClient(
            transport=transport,
            base_url=self._base_url,
            api_key=self._api_key,
            value_sets=load_value_sets(self._value_sets_dir),
        )


def _result_to_json(result: ResponseResult, inputs: List[str]) -> List[Dict[str, Any]]:
    rows = []
    for outcome in result:
        row = {"index": outcome.index, "input": inputs[outcome.index]}
        if outcome.ok:
            row["data"] = outcome.to_payload()
            if outcome.warning:
                row["warning"] = outcome.warning
        else:
            row["error"] = outcome.message
        rows.append(row)
    return rows


def main():
    """Main function to handle command-line execution."""
    parser = argparse.ArgumentParser(
        description="Map security identifiers to FIGIs, or search instruments, via the OpenFIGI API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Map an ISIN (the default identifier type):
    python openfigi_client.py US4592001014

  Map several tickers on one exchange in a single batch:
    python openfigi_client.py --id-type TICKER IBM AAPL --exch-code US

  Keyword search restricted to a currency:
    python openfigi_client.py --search "ibm" --currency USD

Set OPENFIGI_API_KEY to raise the batch limit from 5 to 100 jobs.
        """
    )

    parser.add_argument(
        "values",
        nargs="*",
        help="Identifier values to map"
    )
    parser.add_argument(
        "--id-type",
        default="ID_ISIN",
        help="Identifier type for all values (default: ID_ISIN)"
    )
    parser.add_argument(
        "--search",
        help="Run a keyword search instead of mapping"
    )
    parser.add_argument(
        "--currency",
        help="Filter by currency code, e.g. USD"
    )
    parser.add_argument(
        "--exch-code",
        help="Filter by exchange code, e.g. US"
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=APIConfig.DEFAULT_MAX_RETRIES,
        help=f"Max retries for transient failures (default: {APIConfig.DEFAULT_MAX_RETRIES})"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args()

    # Configure logging level
    logger.setLevel(getattr(logging, args.log_level))

    if not args.values and not args.search:
        parser.print_help()
        sys.exit(1)

    try:
        client = (OpenFIGIClient.builder()
                  .with_middleware(LoggingMiddleware)
                  .with_middleware(RetryMiddleware, max_retries=args.max_retries)
                  .build())

        def apply_filters(builder):
            if args.currency:
                builder.currency(args.currency)
            if args.exch_code:
                builder.exch_code(args.exch_code)
            return builder

        if args.search:
            query = apply_filters(client.search_query().query(args.search)).build()
            result = client.search(query)
            inputs = [args.search]
            mode = "search"
        else:
            batch = client.batch()
            for value in args.values:
                batch.add(apply_filters(client.mapping_job().id_type(args.id_type).id_value(value)).build())
            result = client.map_batch(batch.build())
            inputs = list(args.values)
            mode = "mapping"

        output = {
            "mode": mode,
            "id_type": args.id_type if mode == "mapping" else None,
            "results_count": len(result),
            "success_count": result.success_count,
            "failure_count": result.failure_count,
            "results": _result_to_json(result, inputs),
        }
        if result.next_page:
            output["next"] = result.next_page

        print(json.dumps(output, indent=2))

    except ValidationError as e:
        logger.error(f"Validation error: {e}")
        sys.exit(1)
    except OpenFIGIError as e:
        logger.error(f"Request failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
