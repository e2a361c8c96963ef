#!/usr/bin/env python3
"""
OpenFIGI Value-Set Fetcher

This module fetches the value sets behind the request enumerations
(idType, exchCode, currency, ...) and saves them as JSON snapshots that
openfigi_values.load_value_sets() can load.

Key Classes:
    OpenFIGIValueSetFetcher: Fetches and saves value sets

Usage:
    from openfigi_reference_data import OpenFIGIValueSetFetcher
    fetcher = OpenFIGIValueSetFetcher()
    fetcher.fetch_all_data()

Command-line usage:
    python openfigi_reference_data.py --all
    python openfigi_reference_data.py currency
    python openfigi_reference_data.py --list
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from openfigi_client import OpenFIGIClient
from openfigi_config import APIConfig, ValueSetConfig
from openfigi_exceptions import OpenFIGIError
from openfigi_transport import RetryMiddleware

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

DESCRIPTIONS = {
    "idType": "Identifier types accepted by the mapping endpoint",
    "exchCode": "Exchange codes",
    "micCode": "ISO 10383 market identifier codes",
    "currency": "Currency codes",
    "marketSecDes": "Market sector descriptions",
    "securityType": "Security types",
    "securityType2": "Security types (alternate classification)",
    "stateCode": "State and province codes",
}


class OpenFIGIValueSetFetcher:
    """Fetch value sets from the OpenFIGI API."""

    def __init__(
        self,
        output_dir: str = ValueSetConfig.DEFAULT_OUTPUT_DIR,
        client: Optional[OpenFIGIClient] = None,
        max_retries: int = APIConfig.DEFAULT_MAX_RETRIES,
        backoff_base_seconds: float = APIConfig.DEFAULT_BACKOFF_BASE,
    ):
        """Initialize the value-set fetcher.

        Args:
            output_dir: Directory to save JSON files (default: ./reference_data)
            client: Client to fetch through; one with retry middleware is built when omitted
            max_retries: Max retries for transient failures
            backoff_base_seconds: Base seconds for exponential backoff
        """
        self.output_dir = output_dir
        # Create output directory if it doesn't exist
        if not os.path.exists(self.output_dir):
            os.makedirs(self.output_dir)
            logger.info(f"Created directory: {self.output_dir}")
        self.client = client or (
            OpenFIGIClient.builder()
            .with_middleware(
                RetryMiddleware,
                max_retries=max_retries,
                backoff_base_seconds=backoff_base_seconds,
            )
            .build()
        )

    def fetch_all_data(self) -> Dict[str, Any]:
        """
        Fetch every value set and save each to a JSON file.

        Returns:
            Dictionary with metadata about saved files
        """
        summary = {
            "timestamp": self._get_timestamp(),
            "api_version": "v3",
            "source": "OpenFIGI API",
            "output_directory": self.output_dir,
            "files_saved": {}
        }

        for key in ValueSetConfig.KEYS:
            logger.info(f"Fetching {key}...")
            try:
                file_data = self._fetch_and_save(key)
                summary["files_saved"][key] = {
                    "filename": f"{key}.json",
                    "count": file_data["count"],
                    "filepath": os.path.join(self.output_dir, f"{key}.json"),
                }
            except (OpenFIGIError, OSError) as e:
                logger.error(f"  Error fetching {key}: {e}")
                summary["files_saved"][key] = {
                    "error": str(e)
                }

        summary_path = os.path.join(self.output_dir, ValueSetConfig.SUMMARY_FILENAME)
        self._save_to_file(summary_path, summary)
        logger.info(f"Summary saved to {ValueSetConfig.SUMMARY_FILENAME}")

        return summary

    def fetch_data_by_type(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Fetch one value set and save it to a JSON file.

        Args:
            key: Value-set key (idType, currency, ...)

        Returns:
            The saved file content, or None if the key is unknown or the fetch failed
        """
        if key not in ValueSetConfig.KEYS:
            logger.error(f"Unknown value set '{key}'")
            logger.info(f"Available types: {', '.join(ValueSetConfig.KEYS)}")
            return None

        logger.info(f"Fetching {key}...")
        try:
            return self._fetch_and_save(key)
        except (OpenFIGIError, OSError) as e:
            logger.error(f"Error: {e}")
            return None

    def _fetch_and_save(self, key: str) -> Dict[str, Any]:
        values = self.client.fetch_values(key)
        file_data = {
            "timestamp": self._get_timestamp(),
            "type": key,
            "description": DESCRIPTIONS[key],
            "count": len(values),
            "items": values
        }
        filename = f"{key}.json"
        self._save_to_file(os.path.join(self.output_dir, filename), file_data)
        logger.info(f"  Retrieved {len(values)} values -> {filename}")
        return file_data

    def _save_to_file(self, filepath: str, data: Dict[str, Any]) -> None:
        """Save data to a JSON file."""
        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2)

    def _get_timestamp(self) -> str:
        """Get current timestamp in ISO format."""
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def list_available_types(self) -> None:
        """Log available value-set keys."""
        logger.info("Available Value Sets:")
        logger.info("")
        for key in ValueSetConfig.KEYS:
            logger.info(f"  {key:15} - {DESCRIPTIONS[key]}")
        logger.info("")


def main():
    """Main function to handle command-line execution."""
    parser = argparse.ArgumentParser(
        description="Fetch OpenFIGI value sets (idType, exchCode, currency, etc.)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Fetch all value sets:
    python openfigi_reference_data.py --all

  Fetch only currency codes:
    python openfigi_reference_data.py currency

  List available value sets:
    python openfigi_reference_data.py --list
        """
    )

    parser.add_argument(
        "data_type",
        nargs="?",
        help="Value set to fetch (idType, exchCode, currency, etc.)"
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="Fetch all value sets"
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List available value sets"
    )
    parser.add_argument(
        "--output",
        "-o",
        default=ValueSetConfig.DEFAULT_OUTPUT_DIR,
        help=f"Output directory for JSON files (default: {ValueSetConfig.DEFAULT_OUTPUT_DIR})"
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=APIConfig.DEFAULT_MAX_RETRIES,
        help=f"Max retries for transient failures (default: {APIConfig.DEFAULT_MAX_RETRIES})"
    )
    parser.add_argument(
        "--backoff-base-seconds",
        type=float,
        default=APIConfig.DEFAULT_BACKOFF_BASE,
        help=f"Base seconds for exponential backoff (default: {APIConfig.DEFAULT_BACKOFF_BASE})"
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

    fetcher = OpenFIGIValueSetFetcher(
        output_dir=args.output,
        max_retries=args.max_retries,
        backoff_base_seconds=args.backoff_base_seconds,
    )

    if args.list:
        fetcher.list_available_types()
        sys.exit(0)

    if args.all:
        fetcher.fetch_all_data()
        logger.info(f"All value sets saved to: {args.output}")
        sys.exit(0)

    if args.data_type:
        result = fetcher.fetch_data_by_type(args.data_type)
        if result:
            logger.info(f"Data saved to: {args.output}/{args.data_type}.json")
            sys.exit(0)
        sys.exit(1)

    parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
    main()
