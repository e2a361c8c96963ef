"""
Turn raw OpenFIGI JSON into positionally indexed per-job outcomes.

The mapping endpoint answers HTTP 200 with one entry per submitted job, each
holding either a ``data`` array or an ``error`` string. Those entries become
JobSuccess / JobFailure values at the same index as the job that produced
them. A malformed entry becomes a JobFailure for its own slot only; a
malformed envelope (wrong type, wrong length) fails the whole call.
"""

import logging
from typing import Any, Callable, Iterator, Optional, Sequence, Tuple

from openfigi_config import RequestConfig
from openfigi_exceptions import MalformedResponse
from openfigi_models import InstrumentRecord, JobFailure, JobOutcome, JobSuccess

logger = logging.getLogger(__name__)


class OutcomeView:
    """
    Lazy, restartable view over a subset of a result's outcomes.

    Each iteration walks the underlying outcomes again, so iterating twice
    yields the same sequence.
    """

    def __init__(self, outcomes: Sequence[JobOutcome], select: Callable[[JobOutcome], Optional[tuple]]):
        self._outcomes = outcomes
        self._select = select

    def __iter__(self) -> Iterator[tuple]:
        for outcome in self._outcomes:
            item = self._select(outcome)
            if item is not None:
                yield item

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return any(True for _ in self)

    def __repr__(self) -> str:
        return f"OutcomeView({list(self)!r})"


def _success_item(outcome: JobOutcome) -> Optional[Tuple[int, Tuple[InstrumentRecord, ...]]]:
    if isinstance(outcome, JobSuccess):
        return outcome.index, outcome.records
    return None


def _failure_item(outcome: JobOutcome) -> Optional[Tuple[int, str]]:
    if isinstance(outcome, JobFailure):
        return outcome.index, outcome.message
    return None


class ResponseResult:
    """
    Read-only, ordered outcomes of one call.

    Index i corresponds to job i of the originating batch (index 0 for
    single-job, search and filter calls). Failed entries are never dropped;
    use failures() to see them.
    """

    __slots__ = ("_outcomes", "next_page", "total")

    def __init__(
        self,
        outcomes: Sequence[JobOutcome],
        next_page: Optional[str] = None,
        total: Optional[int] = None,
    ):
        self._outcomes = tuple(outcomes)
        self.next_page = next_page
        self.total = total

    @property
    def outcomes(self) -> Tuple[JobOutcome, ...]:
        return self._outcomes

    def __len__(self) -> int:
        return len(self._outcomes)

    def __getitem__(self, index: int) -> JobOutcome:
        return self._outcomes[index]

    def __iter__(self) -> Iterator[JobOutcome]:
        return iter(self._outcomes)

    @property
    def is_empty(self) -> bool:
        return not self._outcomes

    def successes(self) -> OutcomeView:
        """(index, records) for every successful job, in request order."""
        return OutcomeView(self._outcomes, _success_item)

    def failures(self) -> OutcomeView:
        """(index, message) for every failed job, in request order."""
        return OutcomeView(self._outcomes, _failure_item)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self._outcomes if isinstance(o, JobSuccess))

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self._outcomes if isinstance(o, JobFailure))

    def records(self) -> Iterator[Tuple[int, InstrumentRecord]]:
        """Every resolved instrument paired with the index of its job."""
        for index, records in self.successes():
            for record in records:
                yield index, record

    def __repr__(self) -> str:
        return (
            f"ResponseResult(len={len(self)}, successes={self.success_count}, "
            f"failures={self.failure_count})"
        )


class ResponseAggregator:
    """Classify raw response entries into JobSuccess / JobFailure."""

    def classify(self, index: int, entry: Any) -> JobOutcome:
        """
        Classify one response entry.

        Never raises: structural problems become a malformed JobFailure for
        this index so the other entries keep their positions.
        """
        try:
            return self._classify(index, entry)
        except MalformedResponse as e:
            cause = MalformedResponse(e.message, index=index)
            logger.warning(str(cause))
            return JobFailure(index=index, message=str(cause), cause=cause)

    def _classify(self, index: int, entry: Any) -> JobOutcome:
        if not isinstance(entry, dict):
            raise MalformedResponse(f"expected an object, got {type(entry).__name__}")

        has_data = "data" in entry
        has_error = "error" in entry
        if has_data and has_error:
            raise MalformedResponse("entry has both 'data' and 'error'")

        if has_data:
            data = entry["data"]
            if not isinstance(data, list):
                raise MalformedResponse("'data' is not an array")
            records = tuple(InstrumentRecord.from_dict(item) for item in data)
            return JobSuccess(index=index, records=records, warning=entry.get("warning"))

        if has_error:
            message = entry["error"]
            if not isinstance(message, str):
                raise MalformedResponse("'error' is not a string")
            if message in RequestConfig.NO_RESULTS_MESSAGES:
                return JobSuccess(index=index, records=(), warning=message)
            return JobFailure(index=index, message=message)

        warning = entry.get("warning")
        if isinstance(warning, str):
            return JobSuccess(index=index, records=(), warning=warning)

        raise MalformedResponse("entry has neither 'data' nor 'error'")

    def aggregate_mapping(self, payload: Any, expected: int) -> ResponseResult:
        """
        Aggregate a mapping response.

        Args:
            payload: Decoded JSON body
            expected: Number of jobs that were sent

        Raises:
            MalformedResponse: If the body is not an array of ``expected`` entries
        """
        if not isinstance(payload, list):
            raise MalformedResponse(
                f"mapping response must be an array, got {type(payload).__name__}"
            )
        if len(payload) != expected:
            raise MalformedResponse(
                f"mapping response has {len(payload)} entries for {expected} jobs"
            )
        return ResponseResult([self.classify(i, entry) for i, entry in enumerate(payload)])

    def aggregate_query(self, payload: Any) -> ResponseResult:
        """
        Aggregate a search or filter response (a single object).

        Raises:
            MalformedResponse: If the body is not an object
        """
        if not isinstance(payload, dict):
            raise MalformedResponse(
                f"search/filter response must be an object, got {type(payload).__name__}"
            )
        outcome = self.classify(0, payload)

        next_page = payload.get("next")
        if next_page is not None and not isinstance(next_page, str):
            logger.warning("Ignoring non-string 'next' pagination token")
            next_page = None
        total = payload.get("total")
        if total is not None and (isinstance(total, bool) or not isinstance(total, int)):
            logger.warning("Ignoring non-integer 'total'")
            total = None

        return ResponseResult([outcome], next_page=next_page, total=total)
