"""Integrity-enforced HTTP/file fetch implementation."""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.error import URLError
from urllib.request import urlopen

from kspenv.errors import IntegrityError, UnavailableError, ValidationError
from kspenv.policy import Policy, ensure_network_allowed

HEX_SHA256_PATTERN = re.compile(r"^[0-9a-f]{64}$")
SRI_PREFIX = "sha256-"


@dataclass(frozen=True, slots=True)
class FetchResult:
    path: Path
    sha256: str


def normalize_sha256(value: str) -> str:
    """Return a lowercase hex digest for a hex or SRI (``sha256-<base64>``) hash."""
    candidate = value.strip()
    if candidate.startswith(SRI_PREFIX):
        try:
            raw = base64.b64decode(candidate[len(SRI_PREFIX) :], validate=True)
        except binascii.Error as exc:
            raise ValidationError(
                "Invalid SRI hash encoding.",
                context={"hash": value},
            ) from exc
        if len(raw) != 32:
            raise ValidationError("SRI sha256 hash must decode to 32 bytes.", context={"hash": value})
        return raw.hex()
    lowered = candidate.lower()
    if not HEX_SHA256_PATTERN.fullmatch(lowered):
        raise ValidationError(
            "sha256 must be 64 hex characters or an SRI `sha256-` string.",
            context={"hash": value},
        )
    return lowered


def to_sri(hex_digest: str) -> str:
    return SRI_PREFIX + base64.b64encode(bytes.fromhex(hex_digest)).decode("ascii")


def fetch(
    url: str,
    *,
    sha256: str,
    cache_dir: str | Path,
    policy: Policy | None = None,
) -> Path:
    """Fetch content and return a content-addressed cached path.

    A cached artifact with the expected digest is returned without touching
    the network.
    """
    if not sha256:
        if policy is not None and not policy.require_integrity:
            return fetch_unpinned(url, cache_dir=cache_dir, policy=policy).path
        raise ValidationError(
            "fetch() requires a sha256 value.",
            hint="Pin the artifact hash or relax policy.require_integrity.",
            context={"url": url},
        )
    expected = normalize_sha256(sha256)
    cache_path = Path(cache_dir)
    cache_path.mkdir(parents=True, exist_ok=True)
    artifact_path = cache_path / expected

    if artifact_path.exists():
        _assert_hash_matches(artifact_path, expected_sha256=expected)
        return artifact_path

    if policy is not None:
        ensure_network_allowed(policy=policy, operation="fetch")
    payload = _download(url)

    actual_sha256 = hashlib.sha256(payload).hexdigest()
    if actual_sha256 != expected:
        raise IntegrityError(
            "Fetched content hash mismatch.",
            hint="Update the expected hash or source URL to a trusted immutable artifact.",
            context={
                "operation": "fetch",
                "url": url,
                "expected": to_sri(expected),
                "actual": to_sri(actual_sha256),
            },
        )

    _write_atomic(artifact_path, payload)
    return artifact_path


def fetch_unpinned(
    url: str,
    *,
    cache_dir: str | Path,
    policy: Policy | None = None,
) -> FetchResult:
    """Fetch content with no expected hash and record the observed digest."""
    if policy is not None:
        ensure_network_allowed(policy=policy, operation="fetch_unpinned")
    payload = _download(url)
    digest = hashlib.sha256(payload).hexdigest()
    cache_path = Path(cache_dir)
    cache_path.mkdir(parents=True, exist_ok=True)
    artifact_path = cache_path / digest
    if not artifact_path.exists():
        _write_atomic(artifact_path, payload)
    return FetchResult(path=artifact_path, sha256=digest)


def _download(url: str) -> bytes:
    try:
        with urlopen(url) as response:  # noqa: S310 - callers verify or record digests
            return response.read()
    except (URLError, OSError) as exc:
        raise UnavailableError(
            "Upstream artifact is not available.",
            hint="Check the URL and network reachability.",
            context={"operation": "fetch", "url": url, "reason": str(exc)},
        ) from exc


def _write_atomic(path: Path, payload: bytes) -> None:
    temp_path = path.with_suffix(".tmp")
    temp_path.write_bytes(payload)
    os.replace(temp_path, path)


def _assert_hash_matches(path: Path, *, expected_sha256: str) -> None:
    actual_sha256 = hashlib.sha256(path.read_bytes()).hexdigest()
    if actual_sha256 != expected_sha256:
        raise IntegrityError(
            "Cached artifact hash mismatch.",
            hint="Clear cache and refetch with trusted inputs.",
            context={
                "operation": "fetch",
                "path": str(path),
                "expected": expected_sha256,
                "actual": actual_sha256,
            },
        )
