"""Lockfile typed model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class LockedToolchain:
    channel: str
    date: str
    sha256: str


@dataclass(frozen=True, slots=True)
class Lockfile:
    version: int
    project_digest: str
    project: dict[str, Any]
    toolchains: dict[str, LockedToolchain] = field(default_factory=dict)
