"""
Tests for core.http_client lifecycle management and request helpers.
"""

import pytest
from unittest.mock import MagicMock
from fastapi import FastAPI


class TestHttpClientManager:

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        from core.http_client import HttpClientManager

        manager = HttpClientManager(timeout=5.0, max_connections=10)
        client = await manager.start()

        assert manager.is_running
        assert manager.client is client

        await manager.stop()
        assert not manager.is_running

    @pytest.mark.asyncio
    async def test_double_start_raises(self):
        from core.http_client import HttpClientManager

        manager = HttpClientManager()
        await manager.start()
        try:
            with pytest.raises(RuntimeError):
                await manager.start()
        finally:
            await manager.stop()

    def test_client_before_start_raises(self):
        from core.http_client import HttpClientManager

        with pytest.raises(RuntimeError):
            _ = HttpClientManager().client


class TestHttpClientContext:

    @pytest.mark.asyncio
    async def test_context_binds_client_to_app_state(self):
        from core.http_client import create_http_client_context, get_http_client_from_app

        app = FastAPI()
        async with create_http_client_context(app, timeout=5.0) as manager:
            assert get_http_client_from_app(app) is manager.client

        assert not hasattr(app.state, "http_client")

    def test_missing_client_raises(self):
        from core.http_client import get_http_client_from_app

        with pytest.raises(RuntimeError):
            get_http_client_from_app(FastAPI())


class TestClientIp:

    def _request(self, headers: dict, host: str | None = "10.0.0.9") -> MagicMock:
        request = MagicMock()
        request.headers = headers
        request.client = MagicMock(host=host) if host else None
        return request

    def test_forwarded_for_first_entry(self):
        from core.dependencies import get_client_ip

        request = self._request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})
        assert get_client_ip(request) == "203.0.113.5"

    def test_real_ip(self):
        from core.dependencies import get_client_ip

        assert get_client_ip(self._request({"X-Real-IP": " 198.51.100.7 "})) == "198.51.100.7"

    def test_direct_client(self):
        from core.dependencies import get_client_ip

        assert get_client_ip(self._request({})) == "10.0.0.9"

    def test_unknown(self):
        from core.dependencies import get_client_ip

        assert get_client_ip(self._request({}, host=None)) == "unknown"
