"""Data source interface."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from biaswatch.domain import SourceDescriptor


@runtime_checkable
class DataSource(Protocol):
    """Fetches raw records for a source descriptor.

    Implementations raise ExternalServiceError on transport or payload errors.
    """

    async def fetch(self, source: SourceDescriptor) -> list[dict[str, Any]]: ...
