"""Tests for the HTTP JSON data source."""

import httpx
import pytest

from biaswatch.core.exceptions import ExternalServiceError
from biaswatch.sources.http import HttpJsonDataSource

from conftest import make_source


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpJsonDataSource:
    @pytest.mark.asyncio
    async def test_plain_list(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == "https://data.example.com/USD/earnings"
            return httpx.Response(200, json=[{"earnings": 1}, {"earnings": 2}, "junk"])

        async with client_for(handler) as client:
            records = await HttpJsonDataSource(client).fetch(make_source())

        assert records == [{"earnings": 1}, {"earnings": 2}]

    @pytest.mark.asyncio
    async def test_envelope_unwrapped(self):
        def handler(request):
            return httpx.Response(200, json={"meta": {}, "observations": [{"actual": 52}]})

        async with client_for(handler) as client:
            records = await HttpJsonDataSource(client).fetch(make_source())

        assert records == [{"actual": 52}]

    @pytest.mark.asyncio
    async def test_single_object(self):
        def handler(request):
            return httpx.Response(200, json={"actual": 52})

        async with client_for(handler) as client:
            records = await HttpJsonDataSource(client).fetch(make_source())

        assert records == [{"actual": 52}]

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        def handler(request):
            return httpx.Response(503)

        async with client_for(handler) as client:
            with pytest.raises(ExternalServiceError) as exc_info:
                await HttpJsonDataSource(client).fetch(make_source())

        assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with client_for(handler) as client:
            with pytest.raises(ExternalServiceError):
                await HttpJsonDataSource(client).fetch(make_source())

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>")

        async with client_for(handler) as client:
            with pytest.raises(ExternalServiceError):
                await HttpJsonDataSource(client).fetch(make_source())

    @pytest.mark.asyncio
    async def test_scalar_payload_rejected(self):
        def handler(request):
            return httpx.Response(200, json=42)

        async with client_for(handler) as client:
            with pytest.raises(ExternalServiceError):
                await HttpJsonDataSource(client).fetch(make_source())

    @pytest.mark.asyncio
    async def test_missing_url(self):
        source = make_source().model_copy(update={"url": None})
        with pytest.raises(ExternalServiceError):
            await HttpJsonDataSource().fetch(source)

    @pytest.mark.asyncio
    async def test_scraping_not_supported(self):
        source = make_source().model_copy(update={"extraction_method": "scraping"})
        with pytest.raises(ExternalServiceError):
            await HttpJsonDataSource().fetch(source)
