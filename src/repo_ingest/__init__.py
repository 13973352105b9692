"""Budgeted ingestion of remote Git-forge repositories into an in-memory file set."""

from __future__ import annotations

__version__ = "0.1.0"
