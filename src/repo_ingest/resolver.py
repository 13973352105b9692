from __future__ import annotations

import re
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from repo_ingest.exceptions import (
    AuthenticationRequiredError,
    AuthRequiredError,
    InvalidRepositoryError,
    NotFoundError,
    RepositoryNotFoundError,
)
from repo_ingest.logging import logger
from repo_ingest.progress import as_reporter

if TYPE_CHECKING:
    from repo_ingest.client import ForgeClient
    from repo_ingest.progress import ProgressCallback, ProgressReporter

DEFAULT_REF = "main"

_SEGMENT = r"[A-Za-z0-9._-]+"
_URL_PATTERN = re.compile(
    rf"^(?:https?://)?(?:www\.)?github\.com/(?P<owner>{_SEGMENT})/(?P<name>{_SEGMENT}?)(?:\.git)?(?:/.*)?$",
)
_SHORT_PATTERN = re.compile(rf"^(?P<owner>{_SEGMENT})/(?P<name>{_SEGMENT}?)(?:\.git)?$")


class RepositoryId(BaseModel):
    """Owner and name of a repository on the forge."""

    model_config = ConfigDict(frozen=True)

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


class ResolvedRepository(BaseModel):
    """A repository together with the reference that will be ingested."""

    model_config = ConfigDict(frozen=True)

    repo: RepositoryId
    ref: str
    is_public: bool
    default_branch: str = DEFAULT_REF


def parse_repository(identifier: str) -> RepositoryId:
    """Parse `owner/name` or a forge URL into a RepositoryId.

    Accepted forms include `octo/app`, `octo/app.git`,
    `https://github.com/octo/app/` and `https://github.com/octo/app/tree/main/src`.

    Args:
        identifier (str): the user-supplied repository identifier

    Raises:
        InvalidRepositoryError: if the identifier matches neither form

    Returns:
        RepositoryId: the parsed owner and name
    """
    clean = (identifier or "").strip().rstrip("/")
    match = _URL_PATTERN.match(clean) or _SHORT_PATTERN.match(clean)
    if match is None or not match.group("name"):
        raise InvalidRepositoryError(identifier=identifier)
    return RepositoryId(owner=match.group("owner"), name=match.group("name"))


async def resolve_repository(
    client: ForgeClient,
    repo: RepositoryId,
    ref: str | None = None,
    progress: ProgressReporter | ProgressCallback | None = None,
) -> ResolvedRepository:
    """Determine the reference to ingest and whether the repository is public.

    The metadata lookup goes out anonymously unless the client holds a token.
    An AuthRequiredError triggers one authenticated retry.

    Args:
        client (ForgeClient): the API client
        repo (RepositoryId): the repository to resolve
        ref (str | None): an explicit branch or tag; the default branch when empty
        progress: optional status sink

    Raises:
        RepositoryNotFoundError: if the metadata lookup returns 404
        AuthenticationRequiredError: if the repository is private and no token is available

    Returns:
        ResolvedRepository: the repository, reference and visibility
    """
    notify = as_reporter(progress)
    notify("Checking repository access...")
    owner, name = repo.owner, repo.name

    try:
        try:
            data = await client.get_repository(owner, name)
        except AuthRequiredError:
            notify("Repository appears to be private. Using authentication...")
            data = await client.get_repository(owner, name, require_auth=True)
    except AuthRequiredError as e:
        raise AuthenticationRequiredError(repository=repo.full_name, ref=ref) from e
    except NotFoundError as e:
        raise RepositoryNotFoundError(repository=repo.full_name, ref=ref) from e

    is_public = not bool(data.get("private", False))
    if not is_public and not client.has_token:
        raise AuthenticationRequiredError(repository=repo.full_name, ref=ref)

    default_branch = data.get("default_branch") or DEFAULT_REF
    target = (ref or "").strip() or default_branch
    notify(f"Repository is {'public' if is_public else 'private'}. Using branch: {target}")
    logger.info("repository_resolved", repository=repo.full_name, ref=target, public=is_public)
    return ResolvedRepository(repo=repo, ref=target, is_public=is_public, default_branch=default_branch)


async def list_branches(client: ForgeClient, repo: RepositoryId) -> list[str]:
    """Return the names of the repository's branches (first 100).

    Raises:
        RepositoryNotFoundError: if the repository does not exist
    """
    try:
        branches = await client.list_branches(repo.owner, repo.name)
    except NotFoundError as e:
        raise RepositoryNotFoundError(repository=repo.full_name) from e
    return [b["name"] for b in branches if isinstance(b, dict) and b.get("name")]
