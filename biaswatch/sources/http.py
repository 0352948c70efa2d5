"""HTTP JSON data source."""

from __future__ import annotations

from typing import Any

import httpx

from biaswatch.core.config import settings
from biaswatch.core.exceptions import ExternalServiceError
from biaswatch.core.logging import get_logger
from biaswatch.domain import SourceDescriptor


logger = get_logger("sources.http")

# Envelope keys that wrap record lists in common provider payloads
_ENVELOPE_KEYS = ("data", "records", "results", "observations", "items")


def _records_from_payload(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        for key in _ENVELOPE_KEYS:
            inner = payload.get(key)
            if isinstance(inner, list):
                payload = inner
                break
        else:
            return [payload]
    if not isinstance(payload, list):
        raise ExternalServiceError(
            message="Unexpected payload shape",
            details={"type": type(payload).__name__},
        )
    return [item for item in payload if isinstance(item, dict)]


class HttpJsonDataSource:
    """Fetches JSON records over HTTP for sources with extraction_method "api".

    Pass a shared httpx.AsyncClient to reuse connections; otherwise a client
    is opened per fetch.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float | None = None):
        self._client = client
        self._timeout = timeout if timeout is not None else settings.fetch_timeout

    async def fetch(self, source: SourceDescriptor) -> list[dict[str, Any]]:
        if not source.url:
            raise ExternalServiceError(
                message=f"No URL configured for source {source.name}",
                details={"source": source.name},
            )
        if source.extraction_method != "api":
            raise ExternalServiceError(
                message=f"Extraction method {source.extraction_method} not supported over HTTP JSON",
                details={"source": source.name},
            )

        try:
            if self._client is not None:
                response = await self._client.get(source.url)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(source.url)
            response.raise_for_status()
            payload = response.json()
        except httpx.RequestError as exc:
            logger.warning(f"Request for {source.name} failed: {exc}")
            raise ExternalServiceError(
                message=f"Source {source.name} unavailable",
                details={"source": source.name},
            ) from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(f"Source {source.name} returned {exc.response.status_code}")
            raise ExternalServiceError(
                message=f"Source {source.name} returned an error",
                details={"source": source.name, "status_code": exc.response.status_code},
            ) from exc
        except ValueError as exc:
            raise ExternalServiceError(
                message=f"Source {source.name} returned invalid JSON",
                details={"source": source.name},
            ) from exc

        records = _records_from_payload(payload)
        logger.debug(f"Fetched {len(records)} records for {source.name}")
        return records
