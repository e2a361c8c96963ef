#!/usr/bin/env python3
"""
Unit tests for openfigi_ratelimit.py

Tests cover:
- Ceilings per endpoint and authentication state
- 429 detection and Retry-After / reset header parsing
"""

import unittest
from datetime import timedelta

from openfigi_exceptions import RateLimited, ValidationError
from openfigi_ratelimit import Ceiling, RateLimitGuard, parse_seconds


class TestCurrentCeiling(unittest.TestCase):
    """Test ceilings."""

    def test_mapping_without_key(self):
        ceiling = RateLimitGuard(False).current_ceiling()
        self.assertEqual(ceiling, Ceiling(5, 25, 60, False))

    def test_mapping_with_key(self):
        ceiling = RateLimitGuard(True).current_ceiling("mapping")
        self.assertEqual(ceiling, Ceiling(100, 25, 6, True))

    def test_search_and_filter(self):
        for endpoint in ("search", "filter"):
            with self.subTest(endpoint=endpoint):
                self.assertEqual(RateLimitGuard(False).current_ceiling(endpoint), Ceiling(1, 5, 60, False))
                self.assertEqual(RateLimitGuard(True).current_ceiling(endpoint), Ceiling(1, 20, 60, True))

    def test_unknown_endpoint(self):
        with self.assertRaises(ValidationError):
            RateLimitGuard(False).current_ceiling("lookup")

    def test_authenticated_flag(self):
        self.assertTrue(RateLimitGuard("yes").authenticated)
        self.assertFalse(RateLimitGuard(None).authenticated)


class TestCheck(unittest.TestCase):
    """Test response inspection."""

    def setUp(self):
        """Set up test fixtures."""
        self.guard = RateLimitGuard(False)

    def test_success_returns_remaining(self):
        remaining = self.guard.check(200, {"X-RateLimit-Remaining": "17"}, "mapping")
        self.assertEqual(remaining, 17)

    def test_success_without_headers(self):
        self.assertIsNone(self.guard.check(200, {}, "mapping"))

    def test_other_errors_pass_through(self):
        """Test non-429 failures are left to the caller."""
        self.assertIsNone(self.guard.check(500, {}, "mapping"))

    def test_429_with_retry_after(self):
        with self.assertRaises(RateLimited) as ctx:
            self.guard.check(429, {"Retry-After": "12"}, "mapping", "https://api.openfigi.com/v3/mapping")
        error = ctx.exception
        self.assertEqual(error.scope, "mapping")
        self.assertEqual(error.retry_after, timedelta(seconds=12))
        self.assertEqual(error.ceiling, Ceiling(5, 25, 60, False))
        self.assertEqual(error.url, "https://api.openfigi.com/v3/mapping")
        self.assertIn("retry after 12s", str(error))

    def test_429_falls_back_to_reset_header(self):
        with self.assertRaises(RateLimited) as ctx:
            self.guard.check(429, {"x-ratelimit-reset": "3", "x-ratelimit-remaining": "0"}, "search")
        self.assertEqual(ctx.exception.retry_after, timedelta(seconds=3))
        self.assertEqual(ctx.exception.remaining, 0)

    def test_429_without_hints(self):
        with self.assertRaises(RateLimited) as ctx:
            self.guard.check(429, {}, "filter")
        self.assertIsNone(ctx.exception.retry_after)

    def test_429_on_values_endpoint(self):
        """Test a scope with no configured ceiling still raises."""
        with self.assertRaises(RateLimited) as ctx:
            self.guard.check(429, {}, "values")
        self.assertIsNone(ctx.exception.ceiling)


class TestParseSeconds(unittest.TestCase):

    def test_numeric(self):
        self.assertEqual(parse_seconds("2.5"), timedelta(seconds=2.5))

    def test_negative_clamped(self):
        self.assertEqual(parse_seconds("-4"), timedelta(0))

    def test_http_date_ignored(self):
        self.assertIsNone(parse_seconds("Wed, 21 Oct 2015 07:28:00 GMT"))

    def test_none(self):
        self.assertIsNone(parse_seconds(None))

    def test_out_of_range_ignored(self):
        for value in ("1e15", "inf", "-inf", "nan"):
            with self.subTest(value=value):
                self.assertIsNone(parse_seconds(value))

    def test_429_with_huge_retry_after(self):
        """Test an unrepresentable Retry-After still yields RateLimited."""
        with self.assertRaises(RateLimited) as ctx:
            RateLimitGuard(False).check(429, {"Retry-After": "1e15", "X-RateLimit-Reset": "9"}, "mapping")
        self.assertEqual(ctx.exception.retry_after, timedelta(seconds=9))


if __name__ == "__main__":
    unittest.main()
