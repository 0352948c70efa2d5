"""Per data type extraction of numeric values from raw records.

Each entry is a pure function RawRecord -> float. Keys are probed in order;
the first key present with a non-null value wins. A record carrying none of
the keys yields 0.0. A value that is present but not numeric raises
ExtractionError.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from biaswatch.core.exceptions import ExtractionError


RawRecord = dict[str, Any]
Extractor = Callable[[RawRecord], float]


def _to_float(value: Any, key: str) -> float:
    if isinstance(value, bool):
        raise ExtractionError(f"Boolean value for {key}", details={"key": key})
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().replace(",", "").rstrip("%")
        try:
            number = float(cleaned)
        except ValueError as e:
            raise ExtractionError(
                f"Non-numeric value for {key}: {value!r}", details={"key": key}
            ) from e
    else:
        raise ExtractionError(
            f"Unsupported value type for {key}: {type(value).__name__}",
            details={"key": key},
        )
    if not math.isfinite(number):
        raise ExtractionError(f"Non-finite value for {key}", details={"key": key})
    return number


def first_number(record: RawRecord, *keys: str) -> float:
    """Value of the first present, non-null key as float; 0.0 when none match."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return _to_float(value, key)
    return 0.0


def _probe(*keys: str) -> Extractor:
    def extract(record: RawRecord) -> float:
        return first_number(record, *keys)

    return extract


EXTRACTORS: dict[str, Extractor] = {
    "earnings": _probe("earnings", "netIncome", "value"),
    "revenue": _probe("revenue", "totalRevenue", "value"),
    "debt_ratio": _probe("debtToEquity", "debtRatio", "value"),
    "profit_margin": _probe("profitMargin", "netMargin", "value"),
    "roe": _probe("returnOnEquity", "roe", "value"),
    "economic_indicator": _probe("actual", "value", "current"),
    "guidance": _probe("guidance", "guidanceChange", "value"),
}


def extract_value(record: RawRecord, data_type: str) -> float:
    """Numeric value of a raw record for its data type."""
    try:
        extractor = EXTRACTORS[data_type]
    except KeyError:
        raise ExtractionError(
            f"Unknown data type: {data_type}", details={"data_type": data_type}
        ) from None
    return extractor(record)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse datetimes, ISO-8601 strings and epoch seconds to aware UTC.

    Returns None for missing values; raises ExtractionError for junk.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise ExtractionError(f"Invalid timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        # Milliseconds when too large to be seconds
        seconds = value / 1000 if value > 1e11 else value
        try:
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ExtractionError(f"Timestamp out of range: {value!r}") from e
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ExtractionError(f"Invalid timestamp: {value!r}") from e
    else:
        raise ExtractionError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
