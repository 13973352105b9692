"""Async client for the forge REST API with rate-limit aware error classification."""

from __future__ import annotations

import base64
import binascii
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Self

import httpx

from repo_ingest import __version__
from repo_ingest.config import GITHUB_API_BASE, REQUEST_TIMEOUT_SECONDS
from repo_ingest.exceptions import (
    AccessDeniedError,
    AuthRequiredError,
    ForgeApiError,
    HttpStatusError,
    MalformedResponseError,
    NotFoundError,
    RateLimitedError,
    TransportError,
)
from repo_ingest.logging import logger

if TYPE_CHECKING:
    from types import TracebackType

ACCEPT_HEADER = "application/vnd.github.v3+json"


def _reset_as_iso(reset: str | None) -> str | None:
    if reset and reset.isdigit():
        return datetime.fromtimestamp(int(reset), tz=UTC).isoformat()
    return reset


def is_rate_limited(response: httpx.Response) -> bool:
    """Tell a quota rejection apart from an auth or permission failure.

    Args:
        response (httpx.Response): an unsuccessful response

    Returns:
        bool: True when the remaining quota is zero, on HTTP 429, or on a 403
            that carries `Retry-After` or `X-RateLimit-Reset`
    """
    if response.headers.get("x-ratelimit-remaining") == "0":
        return True
    if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
        return True
    if response.status_code == httpx.codes.FORBIDDEN:
        return bool(response.headers.get("retry-after") or response.headers.get("x-ratelimit-reset"))
    return False


def classify_response(response: httpx.Response, *, url: str, authenticated: bool) -> ForgeApiError:
    """Map an unsuccessful response to the matching ForgeApiError.

    Args:
        response (httpx.Response): the unsuccessful response
        url (str): the requested URL, for error context
        authenticated (bool): whether the request carried a credential

    Returns:
        ForgeApiError: the classified error, ready to be raised
    """
    status = response.status_code
    if is_rate_limited(response):
        return RateLimitedError(
            url=url,
            status=status,
            authenticated=authenticated,
            retry_after=response.headers.get("retry-after"),
            reset_at=_reset_as_iso(response.headers.get("x-ratelimit-reset")),
        )
    if status == httpx.codes.UNAUTHORIZED:
        return AuthRequiredError(url=url, status=status)
    if status == httpx.codes.FORBIDDEN:
        return AccessDeniedError(url=url, status=status)
    if status == httpx.codes.NOT_FOUND:
        return NotFoundError(url=url, status=status)
    return HttpStatusError(url=url, status=status)


def decode_blob_payload(payload: Any, url: str = "") -> bytes:  # noqa: ANN401
    """Decode the body of a blob response into raw bytes.

    Args:
        payload (Any): parsed JSON, expected to hold `content` and `encoding`
        url (str): request URL, for error context

    Raises:
        MalformedResponseError: if the payload shape or encoding is not understood

    Returns:
        bytes: the blob content
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("content"), str):
        raise MalformedResponseError(url=url, reason="missing blob content")
    content: str = payload["content"]
    encoding = payload.get("encoding", "base64")
    if encoding == "base64":
        try:
            return base64.b64decode("".join(content.split()), validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedResponseError(url=url, reason=f"invalid base64: {e}") from e
    if encoding in {"utf-8", "utf8"}:
        return content.encode("utf-8")
    raise MalformedResponseError(url=url, reason=f"unsupported encoding: {encoding}")


class ForgeClient:
    """Authenticated or anonymous access to the forge API.

    The credential belongs to the instance: two clients never share state,
    and a client without a token only issues anonymous requests.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        api_base: str = GITHUB_API_BASE,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = (token or "").strip() or None
        self._http = httpx.AsyncClient(
            base_url=api_base.rstrip("/"),
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Accept": ACCEPT_HEADER, "User-Agent": f"repo-ingest/{__version__}"},
        )

    @property
    def has_token(self) -> bool:
        return self._token is not None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _auth_headers(self) -> dict[str, str]:
        if self._token is None:
            return {}
        return {"Authorization": f"token {self._token}"}

    async def get_json(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        require_auth: bool = False,
    ) -> Any:  # noqa: ANN401
        """GET a JSON document from the forge.

        Without a stored credential the request goes out anonymously. When
        `require_auth` is set and no credential is stored, no request is made.

        Args:
            path (str): API path relative to the base URL, or an absolute URL
            params (dict[str, Any] | None): query parameters
            require_auth (bool): fail fast when no credential is available

        Raises:
            AuthRequiredError: on HTTP 401, or when `require_auth` cannot be honoured
            RateLimitedError: when the quota is exhausted
            AccessDeniedError: on HTTP 403 without rate-limit signals
            NotFoundError: on HTTP 404
            HttpStatusError: on any other unsuccessful status
            TransportError: on timeouts, broken connections or undecodable transfer encodings
            MalformedResponseError: when the body is not JSON

        Returns:
            Any: the decoded JSON body
        """
        if require_auth and self._token is None:
            raise AuthRequiredError(url=path)

        authenticated = self._token is not None
        try:
            response = await self._http.get(path, params=params, headers=self._auth_headers())
        except httpx.TimeoutException as e:
            raise TransportError(url=path, reason=f"timed out ({type(e).__name__})") from e
        except httpx.RequestError as e:
            # includes DecodingError and TooManyRedirects
            raise TransportError(url=path, reason=str(e) or type(e).__name__) from e

        if not response.is_success:
            error = classify_response(response, url=str(response.url), authenticated=authenticated)
            logger.debug("forge_request_failed", url=error.url, status=error.status, error=type(error).__name__)
            raise error
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(url=str(response.url), reason="body is not JSON") from e

    async def get_repository(self, owner: str, name: str, *, require_auth: bool = False) -> dict[str, Any]:
        """Repository metadata (default branch, visibility)."""
        data = await self.get_json(f"/repos/{owner}/{name}", require_auth=require_auth)
        if not isinstance(data, dict):
            raise MalformedResponseError(url=f"/repos/{owner}/{name}", reason="expected an object")
        return data

    async def get_tree(self, owner: str, name: str, ref: str) -> dict[str, Any]:
        """Fully recursive tree listing for a reference."""
        path = f"/repos/{owner}/{name}/git/trees/{ref}"
        data = await self.get_json(path, params={"recursive": "1"})
        if not isinstance(data, dict):
            raise MalformedResponseError(url=path, reason="expected an object")
        return data

    async def get_blob(self, owner: str, name: str, sha: str) -> bytes:
        """Raw content of a blob, decoded from its base64 transfer encoding."""
        path = f"/repos/{owner}/{name}/git/blobs/{sha}"
        return decode_blob_payload(await self.get_json(path), url=path)

    async def list_branches(self, owner: str, name: str) -> list[dict[str, Any]]:
        """First page (up to 100) of the repository's branches."""
        path = f"/repos/{owner}/{name}/branches"
        data = await self.get_json(path, params={"per_page": "100"})
        if not isinstance(data, list):
            raise MalformedResponseError(url=path, reason="expected a list")
        return data
