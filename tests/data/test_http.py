"""Tests for payload helpers."""

import httpx
import pytest

from buurtinfo.data.http import build_client, get_json, locatieserver_docs, odata_rows


class TestPayloads:
    def test_odata_rows(self):
        assert odata_rows({"value": [{"a": 1}, "junk", None]}) == [{"a": 1}]
        assert odata_rows({"odata.error": {"code": ""}}) == []
        assert odata_rows(None) == []

    def test_locatieserver_docs(self):
        assert locatieserver_docs({"response": {"docs": [{"id": "x"}]}}) == [{"id": "x"}]
        assert locatieserver_docs({"response": None}) == []
        assert locatieserver_docs([]) == []


class TestGetJson:
    async def test_status_errors_raise(self, make_client):
        client = make_client(lambda request: httpx.Response(502))
        with pytest.raises(httpx.HTTPStatusError):
            await get_json(client, "https://x.example/data")

    async def test_undecodable_body_raises_value_error(self, make_client):
        client = make_client(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(ValueError):
            await get_json(client, "https://x.example/data")


class TestBuildClient:
    async def test_follows_redirects(self):
        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "https://x.example/new"})
            return httpx.Response(200, json={"ok": True})

        async with build_client(transport=httpx.MockTransport(handler)) as client:
            assert client.follow_redirects is True
            assert await get_json(client, "https://x.example/old") == {"ok": True}
