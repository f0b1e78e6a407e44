"""Lockfile resolution helpers."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from kspenv.lockfile.model import LockedToolchain, Lockfile
from kspenv.models import Toolchain

LOCKFILE_VERSION = 1


def project_digest(project: dict[str, Any]) -> str:
    canonical = json.dumps(project, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def build_lockfile(
    *,
    project: dict[str, Any],
    toolchains: Mapping[str, Toolchain],
) -> Lockfile:
    return Lockfile(
        version=LOCKFILE_VERSION,
        project_digest=project_digest(project),
        project=project,
        toolchains={
            system: LockedToolchain(
                channel=toolchain.channel,
                date=toolchain.date,
                sha256=toolchain.manifest_sha256,
            )
            for system, toolchain in sorted(toolchains.items())
        },
    )
