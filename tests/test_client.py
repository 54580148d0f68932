"""Tests for MaasApiClient against httpx.MockTransport."""

import asyncio
import json

import httpx
import pytest

from maasbridge.services.cancellation import CancellationToken
from maasbridge.services.client import MaasApiClient
from maasbridge.services.errors import MaasApiError, RequestAbortedError


def make_client(handler) -> MaasApiClient:
    return MaasApiClient(
        "http://maas.test:5240/MAAS/",
        "consumer:token:secret",
        transport=httpx.MockTransport(handler),
    )


class TestConstruction:
    def test_rejects_malformed_key(self) -> None:
        with pytest.raises(ValueError, match="consumer_key:token:secret"):
            MaasApiClient("http://maas.test/MAAS", "not-a-key")

    def test_build_url(self) -> None:
        client = MaasApiClient("http://maas.test/MAAS/", "a:b:c")
        assert client.build_url("machines/") == "http://maas.test/MAAS/api/2.0/machines/"
        assert client.build_url("/zones/1/") == "http://maas.test/MAAS/api/2.0/zones/1/"


class TestGet:
    async def test_decodes_json_and_signs_request(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"system_id": "abc"}])

        async with make_client(handler) as client:
            data = await client.get("/machines/", {"hostname": "n1", "zone": None})

        assert data == [{"system_id": "abc"}]
        request = seen[0]
        assert request.url.path == "/MAAS/api/2.0/machines/"
        assert dict(request.url.params) == {"hostname": "n1"}
        auth = request.headers["Authorization"]
        assert auth.startswith("OAuth ")
        assert 'oauth_signature_method="PLAINTEXT"' in auth
        assert 'oauth_consumer_key="consumer"' in auth
        assert 'oauth_token="token"' in auth

    async def test_list_params_repeat(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        async with make_client(handler) as client:
            await client.get("/machines/", {"mac_address": ["aa", "bb"]})

        assert seen[0].url.params.get_list("mac_address") == ["aa", "bb"]

    @pytest.mark.parametrize(
        "status, code",
        [
            (401, "unauthorized"),
            (403, "forbidden"),
            (404, "resource_not_found"),
            (500, "maas_api_error"),
        ],
    )
    async def test_error_statuses(self, status, code) -> None:
        async with make_client(lambda request: httpx.Response(status, text="nope")) as client:
            with pytest.raises(MaasApiError) as exc_info:
                await client.get("/machines/abc/")
        assert exc_info.value.status_code == status
        assert exc_info.value.error_code == code

    async def test_empty_body_returns_none(self) -> None:
        async with make_client(lambda request: httpx.Response(204)) as client:
            assert await client.get("/machines/abc/") is None

    async def test_non_json_body(self) -> None:
        async with make_client(lambda request: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(MaasApiError) as exc_info:
                await client.get("/machines/")
        assert exc_info.value.status_code == 502

    async def test_transport_errors_propagate(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(httpx.ConnectError):
                await client.get("/machines/")


class TestCancellation:
    async def test_cancelled_token_aborts_before_sending(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        token = CancellationToken()
        token.cancel("user went away")
        async with make_client(handler) as client:
            with pytest.raises(RequestAbortedError, match="user went away"):
                await client.get("/machines/", token=token)
        assert calls == []

    async def test_cancel_while_in_flight(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(10)
            return httpx.Response(200, content=json.dumps({}).encode())

        token = CancellationToken()
        async with make_client(handler) as client:
            task = asyncio.ensure_future(client.get("/machines/", token=token))
            await asyncio.sleep(0.01)
            token.cancel()
            with pytest.raises(RequestAbortedError):
                await task
