"""Protocol for package build and development shell backends."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from kspenv.models import DevelopmentShell, Package

SEARCH_PATH_LAYOUT: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("PATH", ("bin",)),
    ("PKG_CONFIG_PATH", ("lib/pkgconfig", "share/pkgconfig")),
    ("LIBRARY_PATH", ("lib",)),
    ("LD_LIBRARY_PATH", ("lib",)),
    ("C_INCLUDE_PATH", ("include",)),
    ("XDG_DATA_DIRS", ("share",)),
)


@dataclass(frozen=True, slots=True)
class BuildResult:
    backend: str
    system: str
    pname: str
    command: tuple[str, ...]
    program: Path
    stdout: str = ""
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ShellSession:
    backend: str
    system: str
    command: tuple[str, ...]
    returncode: int
    env: Mapping[str, str] = field(default_factory=dict)


class BuildBackend(Protocol):
    name: str

    def build(self, package: Package) -> BuildResult:
        """Run the downstream build and return the produced program."""

    def enter_shell(self, shell: DevelopmentShell) -> ShellSession:
        """Start an interactive session with the shell's environment."""


def search_path_env(prefixes: Iterable[Path]) -> dict[str, str]:
    """Compose search-path variables from dependency prefixes, preserving order."""
    ordered = list(dict.fromkeys(Path(item) for item in prefixes))
    env: dict[str, str] = {}
    for variable, subdirs in SEARCH_PATH_LAYOUT:
        entries = [
            str(prefix / subdir)
            for prefix in ordered
            for subdir in subdirs
            if (prefix / subdir).is_dir()
        ]
        if entries:
            env[variable] = ":".join(entries)
    return env


def merge_env(
    base: Mapping[str, str],
    search_paths: Mapping[str, str],
    declared: Mapping[str, str],
) -> dict[str, str]:
    """Search paths are prepended to inherited ones; declared values win outright."""
    merged = dict(base)
    for variable, value in search_paths.items():
        inherited = merged.get(variable)
        merged[variable] = f"{value}:{inherited}" if inherited else value
    merged.update(declared)
    return merged
