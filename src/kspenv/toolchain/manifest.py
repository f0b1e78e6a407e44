"""Rust distribution channel manifest (``channel-rust-*.toml``, v2) model."""

from __future__ import annotations

import tomllib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from kspenv.errors import ValidationError

ANY_TARGET = "*"
STD_PACKAGE = "rust-std"


@dataclass(frozen=True, slots=True)
class TargetEntry:
    available: bool
    url: str = ""
    sha256: str = ""


@dataclass(frozen=True, slots=True)
class ChannelManifest:
    date: str
    packages: Mapping[str, Mapping[str, TargetEntry]] = field(default_factory=dict)
    renames: Mapping[str, str] = field(default_factory=dict)

    def package_name(self, component: str) -> str:
        return self.renames.get(component, component)

    def knows_component(self, component: str) -> bool:
        return self.package_name(component) in self.packages

    def component_entry(self, component: str, host: str) -> TargetEntry | None:
        targets = self.packages.get(self.package_name(component), {})
        entry = targets.get(host) or targets.get(ANY_TARGET)
        if entry is None or not entry.available:
            return None
        return entry

    def published_targets(self) -> tuple[str, ...]:
        return tuple(sorted(self.packages.get(STD_PACKAGE, {})))

    def target_entry(self, target: str) -> TargetEntry | None:
        entry = self.packages.get(STD_PACKAGE, {}).get(target)
        if entry is None or not entry.available:
            return None
        return entry

    def missing_components(self, components: Iterable[str], host: str) -> tuple[str, ...]:
        return tuple(item for item in components if self.component_entry(item, host) is None)

    def missing_targets(self, targets: Iterable[str]) -> tuple[str, ...]:
        return tuple(item for item in targets if self.target_entry(item) is None)


def parse_manifest(raw: bytes | str) -> ChannelManifest:
    text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
    try:
        payload = tomllib.loads(text)
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("Invalid channel manifest.", hint=str(exc)) from exc

    version = payload.get("manifest-version")
    if version != "2":
        raise ValidationError(
            "Unsupported channel manifest version.",
            context={"manifest_version": str(version)},
        )
    date = payload.get("date")
    if not isinstance(date, str) or not date:
        raise ValidationError("Channel manifest is missing its `date`.")

    packages: dict[str, dict[str, TargetEntry]] = {}
    for name, package in _table(payload, "pkg").items():
        if not isinstance(package, dict):
            continue
        packages[name] = {
            triple: _target_entry(entry)
            for triple, entry in _table(package, "target").items()
            if isinstance(entry, dict)
        }

    renames: dict[str, str] = {}
    for name, rename in _table(payload, "renames").items():
        if isinstance(rename, dict) and isinstance(rename.get("to"), str):
            renames[name] = rename["to"]

    return ChannelManifest(date=date, packages=packages, renames=renames)


def read_manifest(path: str | Path) -> ChannelManifest:
    return parse_manifest(Path(path).read_bytes())


def _table(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValidationError(f"Invalid channel manifest `{key}` table.")
    return value


def _target_entry(entry: Mapping[str, Any]) -> TargetEntry:
    available = bool(entry.get("available", False))
    # xz archives are preferred when published.
    url = entry.get("xz_url") or entry.get("url") or ""
    sha256 = entry.get("xz_hash") if entry.get("xz_url") else entry.get("hash")
    return TargetEntry(available=available, url=str(url), sha256=str(sha256 or ""))
