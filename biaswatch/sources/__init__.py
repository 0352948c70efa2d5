"""Data sources: fetch interface, HTTP fetcher, extraction table, registry."""

from .base import DataSource
from .extraction import EXTRACTORS, extract_value, parse_timestamp
from .http import HttpJsonDataSource
from .registry import SourceRegistry, build_default_sources


__all__ = [
    "EXTRACTORS",
    "DataSource",
    "HttpJsonDataSource",
    "SourceRegistry",
    "build_default_sources",
    "extract_value",
    "parse_timestamp",
]
