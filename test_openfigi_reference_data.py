#!/usr/bin/env python3
"""
Unit tests for openfigi_reference_data.py

Tests cover:
- Saving single and all value sets
- Error reporting in the summary
- Round trip through load_value_sets()
"""

import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import Mock

from openfigi_config import ValueSetConfig
from openfigi_exceptions import ApiError
from openfigi_reference_data import OpenFIGIValueSetFetcher
from openfigi_values import load_value_sets


class TestOpenFIGIValueSetFetcher(unittest.TestCase):
    """Test fetching and saving value sets."""

    def setUp(self):
        """Set up test fixtures."""
        self.tmpdir = tempfile.mkdtemp()
        self.client = Mock()
        self.client.fetch_values.side_effect = lambda key: [f"{key}-A", f"{key}-B"]
        self.fetcher = OpenFIGIValueSetFetcher(output_dir=self.tmpdir, client=self.client)

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def read(self, filename):
        with open(os.path.join(self.tmpdir, filename)) as f:
            return json.load(f)

    def test_creates_output_directory(self):
        target = os.path.join(self.tmpdir, "nested")
        OpenFIGIValueSetFetcher(output_dir=target, client=self.client)
        self.assertTrue(os.path.isdir(target))

    def test_fetch_data_by_type(self):
        result = self.fetcher.fetch_data_by_type("currency")
        self.client.fetch_values.assert_called_once_with("currency")
        self.assertEqual(result["count"], 2)
        saved = self.read("currency.json")
        self.assertEqual(saved["type"], "currency")
        self.assertEqual(saved["items"], ["currency-A", "currency-B"])
        self.assertTrue(saved["timestamp"].endswith("Z"))

    def test_fetch_unknown_type(self):
        self.assertIsNone(self.fetcher.fetch_data_by_type("colour"))
        self.client.fetch_values.assert_not_called()

    def test_fetch_error_returns_none(self):
        self.client.fetch_values.side_effect = ApiError(500, "boom")
        self.assertIsNone(self.fetcher.fetch_data_by_type("exchCode"))
        self.assertFalse(os.path.exists(os.path.join(self.tmpdir, "exchCode.json")))

    def test_fetch_all_data(self):
        summary = self.fetcher.fetch_all_data()
        self.assertEqual(set(summary["files_saved"]), set(ValueSetConfig.KEYS))
        for key in ValueSetConfig.KEYS:
            self.assertEqual(summary["files_saved"][key]["count"], 2)
            self.assertTrue(os.path.exists(os.path.join(self.tmpdir, f"{key}.json")))
        self.assertEqual(self.read(ValueSetConfig.SUMMARY_FILENAME)["source"], "OpenFIGI API")

    def test_fetch_all_data_records_errors(self):
        def fetch(key):
            if key == "micCode":
                raise ApiError(503, "unavailable")
            return ["X"]

        self.client.fetch_values.side_effect = fetch
        summary = self.fetcher.fetch_all_data()
        self.assertEqual(summary["files_saved"]["micCode"], {"error": "unavailable"})
        self.assertEqual(summary["files_saved"]["currency"]["count"], 1)

    def test_saved_sets_load_as_closed(self):
        self.client.fetch_values.side_effect = lambda key: ["USD", "EUR"]
        self.fetcher.fetch_data_by_type("currency")
        sets = load_value_sets(self.tmpdir)
        self.assertTrue(sets["currency"].is_closed)
        self.assertEqual(list(sets["currency"]), ["EUR", "USD"])


if __name__ == "__main__":
    unittest.main()
