from __future__ import annotations

import base64
from typing import TYPE_CHECKING

import httpx
import pytest

from repo_ingest.client import ForgeClient, classify_response, decode_blob_payload, is_rate_limited
from repo_ingest.exceptions import (
    AccessDeniedError,
    AuthRequiredError,
    ErrorCategory,
    HttpStatusError,
    MalformedResponseError,
    NotFoundError,
    RateLimitedError,
    TransportError,
)

if TYPE_CHECKING:
    from tests.conftest import FakeForge


URL = "https://api.github.com/repos/octo/app"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("status", "headers", "expected"),
    [
        (403, {"x-ratelimit-remaining": "0"}, True),
        (429, {}, True),
        (403, {"retry-after": "60"}, True),
        (403, {"x-ratelimit-reset": "1700000000"}, True),
        (403, {}, False),
        (401, {}, False),
        (404, {}, False),
    ],
)
def test_is_rate_limited(status: int, headers: dict[str, str], expected: bool) -> None:
    assert is_rate_limited(httpx.Response(status, headers=headers)) is expected


@pytest.mark.unit
@pytest.mark.parametrize(
    ("status", "headers", "error_type"),
    [
        (401, {}, AuthRequiredError),
        (403, {}, AccessDeniedError),
        (403, {"x-ratelimit-remaining": "0"}, RateLimitedError),
        (404, {}, NotFoundError),
        (500, {}, HttpStatusError),
    ],
)
def test_classify_response(status: int, headers: dict[str, str], error_type: type[Exception]) -> None:
    error = classify_response(httpx.Response(status, headers=headers), url=URL, authenticated=False)

    assert type(error) is error_type
    assert error.status == status
    assert error.url == URL


@pytest.mark.unit
def test_rate_limited_message_depends_on_credential() -> None:
    response = httpx.Response(403, headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "0"})

    anonymous = classify_response(response, url=URL, authenticated=False)
    authed = classify_response(response, url=URL, authenticated=True)

    assert isinstance(anonymous, RateLimitedError)
    assert anonymous.category is ErrorCategory.RATE_LIMITED
    assert "token" in anonymous.message
    assert "token" not in authed.message
    assert anonymous.reset_at == "1970-01-01T00:00:00+00:00"


@pytest.mark.unit
def test_decode_blob_payload_base64_with_line_breaks() -> None:
    encoded = base64.encodebytes(b"print('hi')\n" * 20).decode("ascii")

    assert "\n" in encoded
    assert decode_blob_payload({"content": encoded, "encoding": "base64"}) == b"print('hi')\n" * 20


@pytest.mark.unit
def test_decode_blob_payload_utf8() -> None:
    assert decode_blob_payload({"content": "héllo", "encoding": "utf-8"}) == "héllo".encode()


@pytest.mark.unit
@pytest.mark.parametrize(
    "payload",
    [
        None,
        {"encoding": "base64"},
        {"content": "!!!not base64!!!", "encoding": "base64"},
        {"content": "x", "encoding": "rot13"},
    ],
)
def test_decode_blob_payload_rejects_malformed(payload: object) -> None:
    with pytest.raises(MalformedResponseError):
        decode_blob_payload(payload, url="/blob")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_client_sends_token_header_only_when_configured(forge: FakeForge) -> None:
    async with ForgeClient(transport=forge.transport) as client:
        await client.get_repository("octo", "app")
    async with ForgeClient("secret", transport=forge.transport) as client:
        await client.get_repository("octo", "app")

    first, second = forge.requests
    assert "Authorization" not in first.headers
    assert second.headers["Authorization"] == "token secret"
    assert second.headers["User-Agent"].startswith("repo-ingest/")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_require_auth_without_token_makes_no_request(forge: FakeForge) -> None:
    async with ForgeClient(transport=forge.transport) as client:
        assert client.has_token is False
        with pytest.raises(AuthRequiredError):
            await client.get_repository("octo", "app", require_auth=True)

    assert forge.requests == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_tree_and_blob(forge: FakeForge) -> None:
    sha = forge.add_file("src/app.py", "print('hi')\n")

    async with ForgeClient(transport=forge.transport) as client:
        tree = await client.get_tree("octo", "app", "main")
        content = await client.get_blob("octo", "app", sha)

    assert tree["tree"][0]["path"] == "src/app.py"
    assert forge.requests[0].url.params["recursive"] == "1"
    assert content == b"print('hi')\n"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_json_maps_transport_failures() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with ForgeClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(TransportError) as exc_info:
            await client.get_json("/repos/octo/app")

    assert exc_info.value.category is ErrorCategory.TRANSPORT_ERROR
    assert "connection refused" in exc_info.value.message


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_json_maps_redirect_loops() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=request)

    async with ForgeClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(TransportError) as exc_info:
            await client.get_json("/repos/octo/app")

    assert "redirects" in exc_info.value.message


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_json_rejects_non_json_body() -> None:
    transport = httpx.MockTransport(lambda _request: httpx.Response(200, text="<html>"))

    async with ForgeClient(transport=transport) as client:
        with pytest.raises(MalformedResponseError):
            await client.get_json("/repos/octo/app")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_branches(forge: FakeForge) -> None:
    forge.branches = ["main", "dev"]

    async with ForgeClient(transport=forge.transport) as client:
        branches = await client.list_branches("octo", "app")

    assert [b["name"] for b in branches] == ["main", "dev"]
    assert forge.requests[0].url.params["per_page"] == "100"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_json_maps_undecodable_body_to_transport_error(forge: FakeForge) -> None:
    sha = forge.add_file("b.py", "b")
    forge.fail_blob(sha, status=200, headers={"content-encoding": "gzip"})

    async with ForgeClient(transport=forge.transport) as client:
        with pytest.raises(TransportError) as exc_info:
            await client.get_blob("octo", "app", sha)

    assert exc_info.value.category is ErrorCategory.TRANSPORT_ERROR
