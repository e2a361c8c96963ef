"""
Value types for OpenFIGI requests and responses.

Requests (MappingJob, SearchQuery, FilterQuery, Batch) are immutable once
built; construct them through openfigi_builders so every field is checked.
Responses (InstrumentRecord, JobSuccess, JobFailure) are passive values
produced by openfigi_response.
"""

import copy
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from openfigi_exceptions import MalformedResponse

NumberRange = Tuple[Optional[float], Optional[float]]
DateRange = Tuple[Optional[date], Optional[date]]
IdValue = Union[str, int]


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _encode(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, tuple):
        return [_encode(v) for v in value]
    return value


@dataclass(frozen=True)
class RequestFilters:
    """Optional filters shared by mapping jobs, search and filter queries."""

    exch_code: Optional[str] = None
    mic_code: Optional[str] = None
    currency: Optional[str] = None
    market_sec_des: Optional[str] = None
    security_type: Optional[str] = None
    security_type2: Optional[str] = None
    include_unlisted_equities: Optional[bool] = None
    option_type: Optional[str] = None
    strike: Optional[NumberRange] = None
    contract_size: Optional[NumberRange] = None
    coupon: Optional[NumberRange] = None
    expiration: Optional[DateRange] = None
    maturity: Optional[DateRange] = None
    state_code: Optional[str] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_payload(self) -> Dict[str, Any]:
        """Serialize set filters with the API's camelCase keys."""
        payload = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                payload[_camel_case(f.name)] = _encode(value)
        return payload


@dataclass(frozen=True)
class MappingJob:
    """One identifier-to-FIGI lookup."""

    id_type: str
    id_value: IdValue
    filters: RequestFilters = field(default_factory=RequestFilters)

    def to_payload(self) -> Dict[str, Any]:
        payload = {"idType": self.id_type, "idValue": self.id_value}
        payload.update(self.filters.to_payload())
        return payload


@dataclass(frozen=True)
class SearchQuery:
    """A keyword search, optionally narrowed by filters."""

    query: str
    start: Optional[str] = None
    filters: RequestFilters = field(default_factory=RequestFilters)

    def to_payload(self) -> Dict[str, Any]:
        payload = {"query": self.query}
        if self.start is not None:
            payload["start"] = self.start
        payload.update(self.filters.to_payload())
        return payload

    def with_start(self, start: Optional[str]) -> "SearchQuery":
        return SearchQuery(query=self.query, start=start, filters=self.filters)


@dataclass(frozen=True)
class FilterQuery:
    """A filter request: an optional keyword plus at least one constraint."""

    query: Optional[str] = None
    start: Optional[str] = None
    filters: RequestFilters = field(default_factory=RequestFilters)

    def to_payload(self) -> Dict[str, Any]:
        payload = {}
        if self.query is not None:
            payload["query"] = self.query
        if self.start is not None:
            payload["start"] = self.start
        payload.update(self.filters.to_payload())
        return payload

    def with_start(self, start: Optional[str]) -> "FilterQuery":
        return FilterQuery(query=self.query, start=start, filters=self.filters)


@dataclass(frozen=True)
class Batch:
    """An ordered group of mapping jobs sent in a single exchange."""

    jobs: Tuple[MappingJob, ...]

    def __len__(self) -> int:
        return len(self.jobs)

    def __iter__(self) -> Iterator[MappingJob]:
        return iter(self.jobs)

    def __getitem__(self, index: int) -> MappingJob:
        return self.jobs[index]

    def to_payload(self) -> List[Dict[str, Any]]:
        return [job.to_payload() for job in self.jobs]


class InstrumentRecord:
    """
    One resolved instrument.

    Keeps the JSON object exactly as received so that to_dict() reproduces it;
    the properties are read-only views over it.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: Dict[str, Any]):
        self._raw = copy.deepcopy(raw)

    @classmethod
    def from_dict(cls, raw: Any) -> "InstrumentRecord":
        """
        Validate and wrap one element of a ``data`` array.

        Raises:
            MalformedResponse: If the element is not an object with a string figi
        """
        if not isinstance(raw, dict):
            raise MalformedResponse(f"expected instrument object, got {type(raw).__name__}")
        if not isinstance(raw.get("figi"), str):
            raise MalformedResponse("instrument record is missing 'figi'")
        return cls(raw)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._raw)

    def get(self, key: str, default: Any = None) -> Any:
        return self._raw.get(key, default)

    @property
    def figi(self) -> str:
        return self._raw["figi"]

    @property
    def name(self) -> Optional[str]:
        return self._raw.get("name")

    @property
    def ticker(self) -> Optional[str]:
        return self._raw.get("ticker")

    @property
    def exch_code(self) -> Optional[str]:
        return self._raw.get("exchCode")

    @property
    def market_sector(self) -> Optional[str]:
        return self._raw.get("marketSector")

    @property
    def security_type(self) -> Optional[str]:
        return self._raw.get("securityType")

    @property
    def security_type2(self) -> Optional[str]:
        return self._raw.get("securityType2")

    @property
    def composite_figi(self) -> Optional[str]:
        return self._raw.get("compositeFIGI")

    @property
    def share_class_figi(self) -> Optional[str]:
        return self._raw.get("shareClassFIGI")

    @property
    def security_description(self) -> Optional[str]:
        return self._raw.get("securityDescription")

    @property
    def metadata(self) -> Optional[str]:
        return self._raw.get("metadata")

    @property
    def display_name(self) -> str:
        """Name, else ticker, else the FIGI itself."""
        return self.name or self.ticker or self.figi

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, InstrumentRecord):
            return NotImplemented
        return self._raw == other._raw

    def __repr__(self) -> str:
        return f"InstrumentRecord(figi={self.figi!r}, name={self.name!r})"


@dataclass(frozen=True)
class JobSuccess:
    """A job that resolved; ``records`` may be empty when nothing matched."""

    index: int
    records: Tuple[InstrumentRecord, ...]
    warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return True

    def to_payload(self) -> List[Dict[str, Any]]:
        """Re-serialize the ``data`` array as received."""
        return [record.to_dict() for record in self.records]


@dataclass(frozen=True)
class JobFailure:
    """A job the service rejected, or whose response slot was malformed."""

    index: int
    message: str
    cause: Optional[MalformedResponse] = None

    @property
    def ok(self) -> bool:
        return False

    @property
    def is_malformed(self) -> bool:
        return self.cause is not None


JobOutcome = Union[JobSuccess, JobFailure]
