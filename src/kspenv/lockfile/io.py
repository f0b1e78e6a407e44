"""Lockfile parser and serializer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from kspenv.errors import LockfileError
from kspenv.lockfile.model import LockedToolchain, Lockfile


def serialize_lockfile(lockfile: Lockfile) -> str:
    payload = {
        "version": lockfile.version,
        "project_digest": lockfile.project_digest,
        "project": lockfile.project,
        "toolchains": {
            system: {"channel": item.channel, "date": item.date, "sha256": item.sha256}
            for system, item in sorted(lockfile.toolchains.items())
        },
    }
    return json.dumps(payload, indent=2, sort_keys=True) + "\n"


def parse_lockfile(raw: str) -> Lockfile:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LockfileError("Invalid lockfile JSON.", hint=str(exc)) from exc

    if not isinstance(payload, dict):
        raise LockfileError("Invalid lockfile payload type.")

    version = _required_int(payload, "version")
    digest = _required_str(payload, "project_digest")
    project = _required_dict(payload, "project")
    toolchains_raw = _required_dict(payload, "toolchains")
    toolchains = {
        system: _parse_locked_toolchain(item) for system, item in toolchains_raw.items()
    }
    return Lockfile(
        version=version,
        project_digest=digest,
        project=project,
        toolchains=toolchains,
    )


def read_lockfile(path: str | Path) -> Lockfile:
    lock_path = Path(path)
    try:
        raw = lock_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockfileError(
            "Lockfile does not exist.",
            hint="Run project.lock() before using frozen mode.",
            context={"path": str(lock_path)},
        ) from exc
    return parse_lockfile(raw)


def write_lockfile(lockfile: Lockfile, path: str | Path) -> Path:
    lock_path = Path(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.write_text(serialize_lockfile(lockfile), encoding="utf-8")
    return lock_path


def _parse_locked_toolchain(item: Any) -> LockedToolchain:
    if not isinstance(item, dict):
        raise LockfileError("Invalid toolchain entry in lockfile.")
    return LockedToolchain(
        channel=_required_str(item, "channel"),
        date=_required_str(item, "date"),
        sha256=_required_str(item, "sha256"),
    )


def _required_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value


def _required_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if not isinstance(value, int):
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value


def _required_dict(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    if not isinstance(value, dict):
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value
