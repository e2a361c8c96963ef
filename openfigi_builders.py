"""
Fluent, validating builders for OpenFIGI requests.

Every setter checks its argument immediately and raises ValidationError
naming the API field and the rejected value; build() adds the cross-field
checks and returns an immutable request value. Nothing here touches the
network.

Usage:
    job = (MappingJobBuilder()
           .id_type("ID_ISIN")
           .id_value("US4592001014")
           .currency("USD")
           .build())
    batch = BatchRequestBuilder(client.guard).add(job).build()
"""

import math
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from openfigi_config import RequestConfig, load_api_key
from openfigi_exceptions import BatchSizeExceeded, EmptyBatch, ValidationError
from openfigi_models import (
    Batch,
    FilterQuery,
    MappingJob,
    RequestFilters,
    SearchQuery,
)
from openfigi_ratelimit import RateLimitGuard
from openfigi_values import DEFAULT_VALUE_SETS, ValueSet

# securityType2 values that make another filter mandatory
_REQUIRES_EXPIRATION = {"Option", "Warrant"}
_REQUIRES_MATURITY = {"Pool"}
# idType values that need securityType2 to disambiguate
_REQUIRES_SECURITY_TYPE2 = {"BASE_TICKER", "ID_EXCH_SYMBOL"}


def _non_empty_string(field: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, value, f"{field} must be a non-empty string")
    return value


def _number(field: str, value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(field, value, f"{field} bounds must be finite numbers")
    return value


def _date(field: str, value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(field, value, f"{field} bounds must be ISO dates (YYYY-MM-DD)")


class _FilterSetters:
    """Setters for the filter fields shared by every request kind."""

    def __init__(self, value_sets: Optional[Dict[str, ValueSet]] = None):
        self._value_sets = value_sets or DEFAULT_VALUE_SETS
        self._filters: Dict[str, Any] = {}

    def _member(self, key: str, attr: str, value: Any):
        self._filters[attr] = self._value_sets[key].validate(key, value)
        return self

    def exch_code(self, value: str):
        return self._member("exchCode", "exch_code", value)

    def mic_code(self, value: str):
        return self._member("micCode", "mic_code", value)

    def currency(self, value: str):
        return self._member("currency", "currency", value)

    def market_sec_des(self, value: str):
        return self._member("marketSecDes", "market_sec_des", value)

    def security_type(self, value: str):
        return self._member("securityType", "security_type", value)

    def security_type2(self, value: str):
        return self._member("securityType2", "security_type2", value)

    def option_type(self, value: str):
        return self._member("optionType", "option_type", value)

    def state_code(self, value: str):
        return self._member("stateCode", "state_code", value)

    def include_unlisted_equities(self, value: bool = True):
        if not isinstance(value, bool):
            raise ValidationError("includeUnlistedEquities", value, "includeUnlistedEquities must be a bool")
        self._filters["include_unlisted_equities"] = value
        return self

    def _number_range(self, field: str, attr: str, start: Any, end: Any):
        start, end = _number(field, start), _number(field, end)
        if start is None and end is None:
            raise ValidationError(field, (start, end), f"{field} range needs at least one bound")
        if start is not None and end is not None and start > end:
            raise ValidationError(
                field, (start, end), f"{field}: start value cannot be greater than end value"
            )
        self._filters[attr] = (start, end)
        return self

    def strike(self, start: Optional[float] = None, end: Optional[float] = None):
        return self._number_range("strike", "strike", start, end)

    def contract_size(self, start: Optional[float] = None, end: Optional[float] = None):
        return self._number_range("contractSize", "contract_size", start, end)

    def coupon(self, start: Optional[float] = None, end: Optional[float] = None):
        return self._number_range("coupon", "coupon", start, end)

    def _date_range(self, field: str, start: Any, end: Any):
        start, end = _date(field, start), _date(field, end)
        if start is None and end is None:
            raise ValidationError(field, (start, end), f"{field} range needs at least one bound")
        if start is not None and end is not None:
            if start > end:
                raise ValidationError(
                    field, (start, end), f"{field}: start date cannot be after end date"
                )
            if end - start > timedelta(days=RequestConfig.MAX_DATE_RANGE_DAYS):
                raise ValidationError(
                    field, (start, end), f"{field}: date range cannot exceed 1 year"
                )
        self._filters[field] = (start, end)
        return self

    def expiration(self, start: Any = None, end: Any = None):
        return self._date_range("expiration", start, end)

    def maturity(self, start: Any = None, end: Any = None):
        return self._date_range("maturity", start, end)

    def _build_filters(self) -> RequestFilters:
        filters = RequestFilters(**self._filters)

        if filters.exch_code is not None and filters.mic_code is not None:
            raise ValidationError(
                "micCode", filters.mic_code, "Cannot set both exchCode and micCode"
            )
        if filters.security_type2 in _REQUIRES_EXPIRATION and filters.expiration is None:
            raise ValidationError(
                "expiration", None, "expiration is required for Option or Warrant security types"
            )
        if filters.security_type2 in _REQUIRES_MATURITY and filters.maturity is None:
            raise ValidationError(
                "maturity", None, "maturity is required for Pool security types"
            )
        return filters


class MappingJobBuilder(_FilterSetters):
    """Builds one MappingJob."""

    def __init__(self, value_sets: Optional[Dict[str, ValueSet]] = None):
        super().__init__(value_sets)
        self._id_type: Optional[str] = None
        self._id_value: Any = None

    def id_type(self, value: str) -> "MappingJobBuilder":
        self._id_type = self._value_sets["idType"].validate("idType", value)
        return self

    def id_value(self, value: Any) -> "MappingJobBuilder":
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise ValidationError("idValue", value, "idValue must be a string or an integer")
        if isinstance(value, str):
            _non_empty_string("idValue", value)
        self._id_value = value
        return self

    def build(self) -> MappingJob:
        """
        Validate and freeze the job.

        Raises:
            ValidationError: If idType/idValue is missing or filters conflict
        """
        if self._id_type is None:
            raise ValidationError("idType", None, "idType is required")
        if self._id_value is None:
            raise ValidationError("idValue", None, "idValue is required")

        filters = self._build_filters()
        if self._id_type in _REQUIRES_SECURITY_TYPE2 and filters.security_type2 is None:
            raise ValidationError(
                "securityType2",
                None,
                "securityType2 is required when idType is BASE_TICKER or ID_EXCH_SYMBOL",
            )
        return MappingJob(id_type=self._id_type, id_value=self._id_value, filters=filters)


class SearchQueryBuilder(_FilterSetters):
    """Builds one SearchQuery; the keyword is mandatory."""

    def __init__(self, value_sets: Optional[Dict[str, ValueSet]] = None):
        super().__init__(value_sets)
        self._query: Optional[str] = None
        self._start: Optional[str] = None

    def query(self, text: str) -> "SearchQueryBuilder":
        self._query = _non_empty_string("query", text)
        return self

    def start(self, token: str) -> "SearchQueryBuilder":
        self._start = _non_empty_string("start", token)
        return self

    def build(self) -> SearchQuery:
        if self._query is None:
            raise ValidationError("query", None, "query is required")
        return SearchQuery(query=self._query, start=self._start, filters=self._build_filters())


class FilterQueryBuilder(_FilterSetters):
    """Builds one FilterQuery; needs a keyword or at least one filter."""

    def __init__(self, value_sets: Optional[Dict[str, ValueSet]] = None):
        super().__init__(value_sets)
        self._query: Optional[str] = None
        self._start: Optional[str] = None

    def query(self, text: str) -> "FilterQueryBuilder":
        self._query = _non_empty_string("query", text)
        return self

    def start(self, token: str) -> "FilterQueryBuilder":
        self._start = _non_empty_string("start", token)
        return self

    def build(self) -> FilterQuery:
        filters = self._build_filters()
        if self._query is None and filters.is_empty():
            raise ValidationError(
                "query", None, "At least one of query or a filter must be set"
            )
        return FilterQuery(query=self._query, start=self._start, filters=filters)


class BatchRequestBuilder:
    """
    Accumulates mapping jobs into one Batch.

    The ceiling is read from the guard when build() runs, not when jobs are
    added. Without a bound guard it is derived from OPENFIGI_API_KEY at that
    moment.
    """

    def __init__(
        self,
        guard: Optional[RateLimitGuard] = None,
        value_sets: Optional[Dict[str, ValueSet]] = None,
    ):
        self._guard = guard
        self._value_sets = value_sets
        self._jobs: List[MappingJob] = []

    def __len__(self) -> int:
        return len(self._jobs)

    def add(self, job: MappingJob) -> "BatchRequestBuilder":
        if not isinstance(job, MappingJob):
            raise ValidationError("job", job, f"Expected MappingJob, got {type(job).__name__}")
        self._jobs.append(job)
        return self

    def extend(self, jobs: Iterable[MappingJob]) -> "BatchRequestBuilder":
        for job in jobs:
            self.add(job)
        return self

    def job(self, configure: Callable[[MappingJobBuilder], MappingJobBuilder]) -> "BatchRequestBuilder":
        """
        Configure, build and append a job in one step.

        Args:
            configure: Receives a fresh MappingJobBuilder and returns it configured
        """
        builder = configure(MappingJobBuilder(self._value_sets))
        return self.add(builder.build())

    def build(self, guard: Optional[RateLimitGuard] = None) -> Batch:
        """
        Check the batch size and freeze the batch.

        Args:
            guard: Overrides the bound guard for this check

        Raises:
            EmptyBatch: If no jobs were added
            BatchSizeExceeded: If the jobs exceed the active ceiling
        """
        guard = guard or self._guard or RateLimitGuard(load_api_key() is not None)
        limit = guard.current_ceiling().max_jobs_per_request
        if not self._jobs:
            raise EmptyBatch()
        if len(self._jobs) > limit:
            raise BatchSizeExceeded(limit=limit, actual=len(self._jobs))
        return Batch(tuple(self._jobs))
