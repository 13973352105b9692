"""
Shared fixtures: an in-memory forge served through `httpx.MockTransport`.

No test touches the network. Each `FakeForge` holds one repository with a
tree per reference, blob contents by SHA, and optional failure injections,
and records every request it receives.
"""

from __future__ import annotations

import base64
import hashlib
from typing import Any

import httpx
import pytest

from repo_ingest.resolver import RepositoryId, ResolvedRepository


class RecordingSleep:
    """Drop-in for `asyncio.sleep` that returns at once and records each delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeForge:
    def __init__(
        self,
        owner: str = "octo",
        name: str = "app",
        *,
        private: bool = False,
        default_branch: str = "main",
        token: str | None = None,
    ) -> None:
        self.owner = owner
        self.name = name
        self.private = private
        self.default_branch = default_branch
        self.token = token
        self.trees: dict[str, list[dict[str, Any]]] = {default_branch: []}
        self.tree_truncated: dict[str, bool] = {}
        self.tree_status: dict[str, int] = {}
        self.blobs: dict[str, bytes] = {}
        self.blob_failures: dict[str, list[tuple[int, dict[str, str]]]] = {}
        self.metadata_status: int | None = None
        self.error_headers: dict[str, str] = {}
        self.branches: list[str] = [default_branch]
        self.requests: list[httpx.Request] = []

    # ------------------------------ setup helpers ------------------------------

    def add_file(
        self,
        path: str,
        content: str | bytes = "",
        *,
        size: int | None = None,
        ref: str | None = None,
    ) -> str:
        raw = content.encode("utf-8") if isinstance(content, str) else content
        sha = hashlib.sha1(f"{path}\0".encode() + raw).hexdigest()  # noqa: S324
        self.blobs[sha] = raw
        self.trees.setdefault(ref or self.default_branch, []).append(
            {"path": path, "type": "blob", "sha": sha, "size": len(raw) if size is None else size},
        )
        return sha

    def add_dir(self, path: str, *, ref: str | None = None) -> None:
        self.trees.setdefault(ref or self.default_branch, []).append(
            {"path": path, "type": "tree", "sha": hashlib.sha1(path.encode()).hexdigest()},  # noqa: S324
        )

    def fail_blob(self, sha: str, *, times: int = 1, status: int = 500, headers: dict[str, str] | None = None) -> None:
        """Answer `status` to the first `times` requests for `sha`, then serve the blob."""
        self.blob_failures[sha] = [(status, headers or {})] * times

    def sha_of(self, path: str, ref: str | None = None) -> str:
        return next(e["sha"] for e in self.trees[ref or self.default_branch] if e["path"] == path)

    # ------------------------------ inspection ---------------------------------

    def blob_requests(self) -> list[str]:
        return [r.url.path.rsplit("/", 1)[-1] for r in self.requests if "/git/blobs/" in r.url.path]

    def requested_paths(self) -> list[str]:
        by_sha = {e["sha"]: e["path"] for entries in self.trees.values() for e in entries}
        return [by_sha[sha] for sha in self.blob_requests()]

    # ------------------------------ transport ----------------------------------

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    @property
    def resolved(self) -> ResolvedRepository:
        return ResolvedRepository(
            repo=RepositoryId(owner=self.owner, name=self.name),
            ref=self.default_branch,
            is_public=not self.private,
            default_branch=self.default_branch,
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        prefix = f"/repos/{self.owner}/{self.name}"
        path = request.url.path
        authed = request.headers.get("Authorization") == f"token {self.token}" if self.token else False

        if not path.startswith(prefix):
            return httpx.Response(404, json={"message": "Not Found"})
        rest = path[len(prefix) :]

        if self.private and not authed:
            return httpx.Response(401, json={"message": "Requires authentication"})

        if rest == "":
            if self.metadata_status is not None:
                return httpx.Response(self.metadata_status, headers=self.error_headers, json={"message": "error"})
            return httpx.Response(
                200,
                json={
                    "full_name": f"{self.owner}/{self.name}",
                    "private": self.private,
                    "default_branch": self.default_branch,
                },
            )

        if rest == "/branches":
            return httpx.Response(200, json=[{"name": b} for b in self.branches])

        if rest.startswith("/git/trees/"):
            ref = rest[len("/git/trees/") :]
            if ref in self.tree_status:
                return httpx.Response(self.tree_status[ref], headers=self.error_headers, json={"message": "error"})
            if ref not in self.trees:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(
                200,
                json={"sha": "root", "tree": self.trees[ref], "truncated": self.tree_truncated.get(ref, False)},
            )

        if rest.startswith("/git/blobs/"):
            sha = rest[len("/git/blobs/") :]
            pending = self.blob_failures.get(sha)
            if pending:
                status, headers = pending.pop(0)
                return httpx.Response(status, headers=headers, json={"message": "error"})
            if sha not in self.blobs:
                return httpx.Response(404, json={"message": "Not Found"})
            encoded = base64.encodebytes(self.blobs[sha]).decode("ascii")
            return httpx.Response(200, json={"sha": sha, "content": encoded, "encoding": "base64"})

        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def forge() -> FakeForge:
    return FakeForge()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
