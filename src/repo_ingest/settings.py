from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from repo_ingest.config import (
    BACKOFF_BASE_SECONDS,
    BATCH_DELAY_SECONDS,
    BATCH_SIZE,
    GITHUB_API_BASE,
    MAX_ATTEMPTS,
    MAX_FILE_BYTES,
    MAX_FILES,
    MAX_TOTAL_BYTES,
    REQUEST_TIMEOUT_SECONDS,
    SUPPORTED_EXTENSIONS,
    IngestionBudget,
)

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "REPO_INGEST_"


class Settings(BaseModel):
    """Configuration settings for the repo_ingest package."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    repo: str = Field(default="", description="Repository as owner/name or URL.")
    ref: str = Field(default="", description="Branch or tag; empty means default branch.")
    token: SecretStr | None = Field(default=None, description="Forge API token.")
    api_base: str = Field(default=GITHUB_API_BASE, description="Forge API base URL.")

    max_files: int = Field(default=MAX_FILES, gt=0, description="Max files retrieved.")
    max_file_bytes: int = Field(
        default=MAX_FILE_BYTES,
        gt=0,
        description="Files at or above this reported size are skipped.",
    )
    max_total_bytes: int = Field(
        default=MAX_TOTAL_BYTES,
        gt=0,
        description="Cumulative byte budget for retrieved content.",
    )
    batch_size: int = Field(default=BATCH_SIZE, gt=0, description="Concurrent fetches per batch.")
    max_attempts: int = Field(default=MAX_ATTEMPTS, gt=0, description="Attempts per blob.")
    backoff_base: float = Field(
        default=BACKOFF_BASE_SECONDS,
        ge=0,
        description="First retry delay in seconds, doubled per attempt.",
    )
    batch_delay: float = Field(
        default=BATCH_DELAY_SECONDS,
        ge=0,
        description="Pause between batches in seconds.",
    )
    timeout: float = Field(default=REQUEST_TIMEOUT_SECONDS, gt=0, description="Per-request timeout.")

    exclude_glob: list[str] = Field(default_factory=list, description="Exclude glob.")
    extensions: list[str] = Field(
        default_factory=lambda: sorted(SUPPORTED_EXTENSIONS),
        description="Supported extensions, dot included.",
    )

    output: Path | None = Field(default=None, description="Output file (.md or .jsonl).")
    format: str = Field(default="", description="Force format.")
    chunk_chars: int = Field(default=24_000, gt=0, description="Chunk size for jsonl.")
    log_file: str = Field(default="", description="Log file path.")
    list_branches: bool = Field(default=False, description="List branches and exit.")

    @property
    def budget(self) -> IngestionBudget:
        """The hard limits of a run built from these settings."""
        return IngestionBudget(
            max_files=self.max_files,
            max_file_bytes=self.max_file_bytes,
            max_total_bytes=self.max_total_bytes,
        )

    @property
    def token_value(self) -> str | None:
        """The raw token, or None when unset or blank."""
        if self.token is None:
            return None
        return self.token.get_secret_value().strip() or None

    @classmethod
    def from_env(cls, **overrides: Any) -> Settings:  # noqa: ANN401
        """Build settings from the nearest `.env` file and the process environment.

        `GITHUB_TOKEN` provides the token. Every field can also be set with a
        `REPO_INGEST_` prefixed, upper-cased variable (e.g. `REPO_INGEST_MAX_FILES`);
        list fields take comma-separated values. Keyword overrides win.

        Returns:
            Settings: the validated settings
        """
        if ENV_FILE:
            load_dotenv(ENV_FILE, override=False)

        values: dict[str, Any] = {}
        token = os.environ.get("GITHUB_TOKEN")
        if token:
            values["token"] = token
        for name, field in cls.model_fields.items():
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if field.annotation == list[str]:
                values[name] = [x.strip() for x in raw.split(",") if x.strip()]
            else:
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path, **overrides: Any) -> Settings:  # noqa: ANN401
        """Build settings from a YAML mapping of field names to values.

        Args:
            path (Path): the YAML file to read
            **overrides: values that take precedence over the file

        Raises:
            ValueError: if the document is not a mapping

        Returns:
            Settings: the validated settings
        """
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            msg = f"Expected a mapping in {path}, got {type(data).__name__}"
            raise ValueError(msg)  # noqa: TRY004
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)
