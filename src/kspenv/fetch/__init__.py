"""Integrity-checked artifact retrieval."""

from .http import FetchResult, fetch, fetch_unpinned, normalize_sha256, to_sri

__all__ = ["FetchResult", "fetch", "fetch_unpinned", "normalize_sha256", "to_sri"]
