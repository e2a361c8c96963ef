#!/usr/bin/env python3
"""
Unit tests for openfigi_builders.py

Tests cover:
- Field validation in setters
- Cross-field checks in build()
- Batch ceilings with and without an API key
- Payload serialization of built requests
"""

import unittest
from datetime import date
from unittest.mock import patch

from openfigi_builders import (
    BatchRequestBuilder,
    FilterQueryBuilder,
    MappingJobBuilder,
    SearchQueryBuilder,
)
from openfigi_exceptions import BatchSizeExceeded, EmptyBatch, ValidationError
from openfigi_models import Batch, MappingJob
from openfigi_ratelimit import RateLimitGuard


def isin_job(value="US4592001014"):
    return MappingJobBuilder().id_type("ID_ISIN").id_value(value).build()


class TestMappingJobBuilder(unittest.TestCase):
    """Test single-job validation."""

    def test_build_minimal_job(self):
        """Test a job with only idType and idValue."""
        job = isin_job()
        self.assertIsInstance(job, MappingJob)
        self.assertEqual(job.to_payload(), {"idType": "ID_ISIN", "idValue": "US4592001014"})

    def test_build_job_with_filters(self):
        """Test filters are serialized with camelCase keys."""
        job = (MappingJobBuilder()
               .id_type("TICKER")
               .id_value("IBM")
               .exch_code("US")
               .currency("USD")
               .market_sec_des("Equity")
               .include_unlisted_equities()
               .build())
        self.assertEqual(job.to_payload(), {
            "idType": "TICKER",
            "idValue": "IBM",
            "exchCode": "US",
            "currency": "USD",
            "marketSecDes": "Equity",
            "includeUnlistedEquities": True,
        })

    def test_exchange_names_accepted(self):
        """Test exchange codes that are longer than four characters or lowercase."""
        for code in ("FRANKFURT", "bbox"):
            with self.subTest(code=code):
                job = MappingJobBuilder().id_type("TICKER").id_value("IBM").exch_code(code).build()
                self.assertEqual(job.to_payload()["exchCode"], code)

    def test_integer_id_value(self):
        """Test integer identifiers are accepted as-is."""
        job = MappingJobBuilder().id_type("ID_BB_UNIQUE").id_value(12345).build()
        self.assertEqual(job.id_value, 12345)

    def test_unknown_id_type_rejected(self):
        """Test an idType outside the value set is rejected at the setter."""
        with self.assertRaises(ValidationError) as ctx:
            MappingJobBuilder().id_type("ID_NOPE")
        self.assertEqual(ctx.exception.field, "idType")
        self.assertEqual(ctx.exception.value, "ID_NOPE")

    def test_bool_id_value_rejected(self):
        with self.assertRaises(ValidationError):
            MappingJobBuilder().id_value(True)

    def test_blank_id_value_rejected(self):
        with self.assertRaises(ValidationError):
            MappingJobBuilder().id_value("   ")

    def test_missing_id_type(self):
        with self.assertRaises(ValidationError) as ctx:
            MappingJobBuilder().id_value("US4592001014").build()
        self.assertEqual(ctx.exception.field, "idType")

    def test_missing_id_value(self):
        with self.assertRaises(ValidationError) as ctx:
            MappingJobBuilder().id_type("ID_ISIN").build()
        self.assertEqual(ctx.exception.field, "idValue")

    def test_exch_code_and_mic_code_conflict(self):
        """Test exchCode and micCode cannot both be set."""
        builder = (MappingJobBuilder()
                   .id_type("TICKER")
                   .id_value("IBM")
                   .exch_code("US")
                   .mic_code("XNYS"))
        with self.assertRaises(ValidationError) as ctx:
            builder.build()
        self.assertEqual(ctx.exception.field, "micCode")
        self.assertIn("Cannot set both exchCode and micCode", str(ctx.exception))

    def test_base_ticker_requires_security_type2(self):
        builder = MappingJobBuilder().id_type("BASE_TICKER").id_value("IBM")
        with self.assertRaises(ValidationError) as ctx:
            builder.build()
        self.assertEqual(ctx.exception.field, "securityType2")

        job = builder.security_type2("Common Stock").build()
        self.assertEqual(job.filters.security_type2, "Common Stock")

    def test_option_requires_expiration(self):
        builder = (MappingJobBuilder()
                   .id_type("BASE_TICKER")
                   .id_value("IBM")
                   .security_type2("Option"))
        with self.assertRaises(ValidationError) as ctx:
            builder.build()
        self.assertEqual(ctx.exception.field, "expiration")

        job = builder.expiration("2024-01-01", "2024-06-30").build()
        self.assertEqual(job.to_payload()["expiration"], ["2024-01-01", "2024-06-30"])

    def test_pool_requires_maturity(self):
        builder = (MappingJobBuilder()
                   .id_type("BASE_TICKER")
                   .id_value("FN MA1234")
                   .security_type2("Pool"))
        with self.assertRaises(ValidationError) as ctx:
            builder.build()
        self.assertEqual(ctx.exception.field, "maturity")

        job = builder.maturity(date(2030, 1, 1), None).build()
        self.assertEqual(job.to_payload()["maturity"], ["2030-01-01", None])


class TestFilterSetters(unittest.TestCase):
    """Test range and enumeration setters."""

    def setUp(self):
        """Set up test fixtures."""
        self.builder = MappingJobBuilder().id_type("ID_ISIN").id_value("US4592001014")

    def test_unknown_currency_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.builder.currency("dollars")
        self.assertEqual(ctx.exception.field, "currency")

    def test_unknown_market_sec_des_rejected(self):
        """Test the closed marketSecDes set rejects near-misses."""
        with self.assertRaises(ValidationError):
            self.builder.market_sec_des("equity")

    def test_option_type_closed(self):
        self.builder.option_type("Call")
        with self.assertRaises(ValidationError):
            self.builder.option_type("Straddle")

    def test_number_range(self):
        job = self.builder.strike(10, 20.5).coupon(start=1.5).build()
        payload = job.to_payload()
        self.assertEqual(payload["strike"], [10, 20.5])
        self.assertEqual(payload["coupon"], [1.5, None])

    def test_number_range_inverted(self):
        with self.assertRaises(ValidationError) as ctx:
            self.builder.strike(30, 20)
        self.assertEqual(ctx.exception.field, "strike")

    def test_number_range_without_bounds(self):
        with self.assertRaises(ValidationError):
            self.builder.contract_size()

    def test_number_range_rejects_non_numbers(self):
        for bad in ("10", True, float("nan"), float("inf")):
            with self.subTest(bad=bad):
                with self.assertRaises(ValidationError):
                    self.builder.strike(bad, None)

    def test_date_range_inverted(self):
        with self.assertRaises(ValidationError):
            self.builder.expiration("2024-06-01", "2024-01-01")

    def test_date_range_longer_than_one_year(self):
        with self.assertRaises(ValidationError) as ctx:
            self.builder.maturity("2024-01-01", "2025-06-01")
        self.assertIn("cannot exceed 1 year", str(ctx.exception))

    def test_date_range_exactly_one_year(self):
        self.builder.maturity("2023-01-01", "2024-01-01")

    def test_date_range_bad_string(self):
        with self.assertRaises(ValidationError):
            self.builder.expiration("01/02/2024", None)


class TestQueryBuilders(unittest.TestCase):
    """Test search and filter query builders."""

    def test_search_requires_query(self):
        with self.assertRaises(ValidationError) as ctx:
            SearchQueryBuilder().currency("USD").build()
        self.assertEqual(ctx.exception.field, "query")

    def test_search_payload(self):
        query = SearchQueryBuilder().query("ibm").exch_code("US").start("abc").build()
        self.assertEqual(query.to_payload(), {"query": "ibm", "start": "abc", "exchCode": "US"})

    def test_filter_needs_query_or_filter(self):
        with self.assertRaises(ValidationError):
            FilterQueryBuilder().build()

    def test_filter_with_only_a_filter(self):
        query = FilterQueryBuilder().security_type2("Common Stock").build()
        self.assertEqual(query.to_payload(), {"securityType2": "Common Stock"})

    def test_filter_with_only_a_query(self):
        query = FilterQueryBuilder().query("apple").build()
        self.assertEqual(query.to_payload(), {"query": "apple"})


class TestBatchRequestBuilder(unittest.TestCase):
    """Test batch ceilings."""

    def fill(self, count, guard):
        builder = BatchRequestBuilder(guard)
        for i in range(count):
            builder.add(isin_job(f"US{i:010d}"))
        return builder

    def test_empty_batch(self):
        with self.assertRaises(EmptyBatch):
            BatchRequestBuilder(RateLimitGuard(False)).build()

    def test_within_ceiling_without_key(self):
        """Test every size from 1 to 5 builds without a key."""
        for count in range(1, 6):
            with self.subTest(count=count):
                batch = self.fill(count, RateLimitGuard(False)).build()
                self.assertIsInstance(batch, Batch)
                self.assertEqual(len(batch), count)

    def test_ceiling_plus_one_without_key(self):
        with self.assertRaises(BatchSizeExceeded) as ctx:
            self.fill(6, RateLimitGuard(False)).build()
        self.assertEqual(ctx.exception.limit, 5)
        self.assertEqual(ctx.exception.actual, 6)

    def test_boundary_with_key(self):
        batch = self.fill(100, RateLimitGuard(True)).build()
        self.assertEqual(len(batch), 100)
        with self.assertRaises(BatchSizeExceeded) as ctx:
            self.fill(101, RateLimitGuard(True)).build()
        self.assertEqual(ctx.exception.limit, 100)
        self.assertEqual(ctx.exception.actual, 101)

    def test_build_guard_override(self):
        """Test a guard passed to build() wins over the bound one."""
        builder = self.fill(6, RateLimitGuard(False))
        self.assertEqual(len(builder.build(RateLimitGuard(True))), 6)

    @patch.dict("os.environ", {"OPENFIGI_API_KEY": "secret"})
    def test_unbound_builder_reads_key_at_build_time(self):
        self.assertEqual(len(self.fill(6, None).build()), 6)

    @patch.dict("os.environ", {"OPENFIGI_API_KEY": ""})
    def test_unbound_builder_blank_key(self):
        with self.assertRaises(BatchSizeExceeded):
            self.fill(6, None).build()

    def test_order_preserved(self):
        jobs = [isin_job("US0000000001"), isin_job("US0000000002"), isin_job("US0000000003")]
        batch = BatchRequestBuilder(RateLimitGuard(False)).extend(jobs).build()
        self.assertEqual(list(batch), jobs)
        self.assertEqual([p["idValue"] for p in batch.to_payload()],
                         ["US0000000001", "US0000000002", "US0000000003"])

    def test_add_rejects_non_jobs(self):
        with self.assertRaises(ValidationError):
            BatchRequestBuilder().add({"idType": "ID_ISIN", "idValue": "US4592001014"})

    def test_job_callback(self):
        batch = (BatchRequestBuilder(RateLimitGuard(False))
                 .job(lambda j: j.id_type("TICKER").id_value("AAPL").exch_code("US"))
                 .build())
        self.assertEqual(batch[0].to_payload(),
                         {"idType": "TICKER", "idValue": "AAPL", "exchCode": "US"})


if __name__ == "__main__":
    unittest.main()
