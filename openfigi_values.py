"""
Closed value sets for OpenFIGI request fields.

The built-in snapshot mirrors https://api.openfigi.com/v3/mapping/values/{key}.
Small sets (idType, marketSecDes, optionType) are complete. For the large or
fast-moving sets only well-known members are listed, and any value matching
the documented code format is accepted until a fetched snapshot (written by
openfigi_reference_data.py) replaces them via load_value_sets().
"""

import json
import logging
import os
import re
from typing import Dict, Iterable, Iterator, Optional

from openfigi_config import ValueSetConfig
from openfigi_exceptions import ValidationError

logger = logging.getLogger(__name__)


ID_TYPES = (
    "ID_ISIN", "ID_BB_UNIQUE", "ID_SEDOL", "ID_COMMON", "ID_WERTPAPIER",
    "ID_CUSIP", "ID_BB", "ID_ITALY", "ID_EXCH_SYMBOL", "ID_FULL_EXCHANGE_SYMBOL",
    "COMPOSITE_ID_BB_GLOBAL", "ID_BB_GLOBAL_SHARE_CLASS_LEVEL", "ID_BB_SEC_NUM_DES",
    "ID_BB_GLOBAL", "TICKER", "BASE_TICKER", "ID_CUSIP_8_CHR", "OCC_SYMBOL",
    "UNIQUE_ID_FUT_OPT", "OPRA_SYMBOL", "TRADING_SYSTEM_IDENTIFIER", "ID_CINS",
    "ID_SHORT_CODE", "ID_BB_CONNECT", "ID_AUSTRIAN", "ID_BELGIUM", "ID_CEDEAR",
    "ID_DANISH", "ID_DUTCH", "ID_FRENCH", "ID_JAPAN_COMPANY", "ID_LUXEMBOURG",
    "ID_NORWEGIAN", "ID_SPAIN", "ID_SWEDISH", "ID_SWISS", "ID_TRACE", "ID_XETRA",
    "VENDOR_INDEX_CODE",
)

MARKET_SEC_DES = (
    "Comdty", "Corp", "Curncy", "Equity", "Govt", "Index", "M-Mkt", "Mtge",
    "Muni", "Pfd",
)

OPTION_TYPES = ("Call", "Put")

SECURITY_TYPES2 = (
    "Common Stock", "Corp", "Currency", "Depositary Receipt", "Equity Index",
    "Forward", "Future", "Govt", "Index", "LOAN", "Mortgage", "Mutual Fund",
    "Muni", "Option", "Pool", "Preference", "Right", "Spot", "Swap", "Unit",
    "Warrant",
)

SECURITY_TYPES = (
    "ADR", "BDR", "Closed-End Fund", "Common Stock", "ETP", "Equity Index",
    "GDR", "Index", "Mutual Fund", "Open-End Fund", "Preference",
    "Preferred Stock", "REIT", "Right", "Unit", "Warrant",
)

CURRENCIES = (
    "AED", "ARS", "AUD", "BGN", "BRL", "CAD", "CHF", "CLP", "CNY", "COP",
    "CZK", "DKK", "EGP", "EUR", "GBP", "GBp", "HKD", "HUF", "IDR", "ILS",
    "INR", "ISK", "JPY", "KRW", "KWD", "MXN", "MYR", "NOK", "NZD", "PEN",
    "PHP", "PKR", "PLN", "QAR", "RON", "RUB", "SAR", "SEK", "SGD", "THB",
    "TRY", "TWD", "USD", "VND", "ZAR", "ZAr",
)

EXCH_CODES = (
    "US", "UA", "UB", "UC", "UD", "UF", "UM", "UN", "UP", "UQ", "UR", "UT",
    "UV", "UW", "UX", "LN", "LI", "GR", "GF", "GY", "GB", "FP", "NA", "BB",
    "SM", "IM", "SW", "SE", "VX", "JP", "JT", "HK", "CH", "C1", "CG", "CS",
    "AU", "AT", "SP", "KS", "KQ", "IN", "IB", "IS", "TT", "BZ", "MM", "SJ",
    "PW", "DC", "FH", "NO", "SS", "ID", "AV", "CN", "CT", "NZ", "MK", "TB",
    "FRANKFURT", "bbox",
)

MIC_CODES = (
    "XNYS", "XNAS", "ARCX", "BATS", "XASE", "XLON", "XETR", "XFRA", "XPAR",
    "XAMS", "XBRU", "XMAD", "XMIL", "XSWX", "XSTO", "XTKS", "XHKG", "XSHG",
    "XSHE", "XASX", "XTSE", "XTSX", "XKRX", "XBOM", "XNSE", "XCME", "XCBT",
    "XNYM", "XEUR", "XOSL", "XCSE", "XHEL", "XWBO", "XLIS", "XDUB", "XSES",
)

STATE_CODES = (
    "AK", "AL", "AR", "AZ", "CA", "CO", "CT", "DC", "DE", "FL", "GA", "HI",
    "IA", "ID", "IL", "IN", "KS", "KY", "LA", "MA", "MD", "ME", "MI", "MN",
    "MO", "MS", "MT", "NC", "ND", "NE", "NH", "NJ", "NM", "NV", "NY", "OH",
    "OK", "OR", "PA", "PR", "RI", "SC", "SD", "TN", "TX", "UT", "VA", "VT",
    "WA", "WI", "WV", "WY", "AB", "BC", "MB", "NB", "NL", "NS", "NT", "NU",
    "ON", "PE", "QC", "SK", "YT",
)

# Accepted shape for members not in a partial snapshot
_CODE_PATTERNS = {
    # Exchange names are mixed case and can run past four characters (FRANKFURT, bbox)
    "exchCode": re.compile(r"^[A-Za-z0-9][A-Za-z0-9 .&/-]{0,31}$"),
    "micCode": re.compile(r"^[A-Z0-9]{4}$"),
    "currency": re.compile(r"^[A-Z]{3}$|^[A-Z]{2}[a-z]$"),
    "stateCode": re.compile(r"^[A-Z0-9]{2}$"),
    "securityType": re.compile(r"^[A-Za-z0-9][\w .&/()'+,-]{0,63}$"),
    "securityType2": re.compile(r"^[A-Za-z0-9][\w .&/()'+,-]{0,63}$"),
}


class ValueSet:
    """
    Membership table for one request field.

    A set built with a pattern is partial: values outside the listed members
    are accepted when they match the pattern. A set without one is closed.
    """

    def __init__(self, key: str, values: Iterable[str], pattern: Optional["re.Pattern"] = None):
        self.key = key
        self._values = frozenset(values)
        self.pattern = pattern

    @property
    def is_closed(self) -> bool:
        return self.pattern is None

    def __contains__(self, value: object) -> bool:
        if not isinstance(value, str):
            return False
        if value in self._values:
            return True
        return self.pattern is not None and bool(self.pattern.match(value))

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._values))

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        kind = "closed" if self.is_closed else "partial"
        return f"ValueSet({self.key!r}, {len(self)} values, {kind})"

    def validate(self, field: str, value: object) -> str:
        """
        Check membership, raising ValidationError for non-members.

        Args:
            field: Request field name reported in the error
            value: Candidate value

        Returns:
            The value, unchanged
        """
        if value not in self:
            raise ValidationError(
                field, value, f"{value!r} is not a valid {self.key} value"
            )
        return value


def builtin_value_sets() -> Dict[str, ValueSet]:
    """Return the bundled snapshot keyed by value-set name."""
    return {
        "idType": ValueSet("idType", ID_TYPES),
        "marketSecDes": ValueSet("marketSecDes", MARKET_SEC_DES),
        "optionType": ValueSet("optionType", OPTION_TYPES),
        "securityType2": ValueSet("securityType2", SECURITY_TYPES2, _CODE_PATTERNS["securityType2"]),
        "securityType": ValueSet("securityType", SECURITY_TYPES, _CODE_PATTERNS["securityType"]),
        "currency": ValueSet("currency", CURRENCIES, _CODE_PATTERNS["currency"]),
        "exchCode": ValueSet("exchCode", EXCH_CODES, _CODE_PATTERNS["exchCode"]),
        "micCode": ValueSet("micCode", MIC_CODES, _CODE_PATTERNS["micCode"]),
        "stateCode": ValueSet("stateCode", STATE_CODES, _CODE_PATTERNS["stateCode"]),
    }


def load_value_sets(directory: Optional[str] = None) -> Dict[str, ValueSet]:
    """
    Build the value-set table, preferring fetched snapshots on disk.

    Each ``{key}.json`` file in ``directory`` (as written by
    OpenFIGIValueSetFetcher) replaces the built-in entry with a closed set.
    Missing files keep the built-in entry.

    Args:
        directory: Folder holding fetched snapshots, or None for built-ins only

    Returns:
        Mapping of value-set key to ValueSet
    """
    value_sets = builtin_value_sets()
    if not directory:
        return value_sets

    for key in ValueSetConfig.KEYS:
        filepath = os.path.join(directory, f"{key}.json")
        if not os.path.exists(filepath):
            continue
        with open(filepath) as f:
            payload = json.load(f)
        items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(items, list) or not all(isinstance(v, str) for v in items):
            logger.warning(f"Ignoring {filepath}: expected an 'items' list of strings")
            continue
        value_sets[key] = ValueSet(key, items)
        logger.debug(f"Loaded {len(items)} {key} values from {filepath}")

    return value_sets


DEFAULT_VALUE_SETS = builtin_value_sets()
