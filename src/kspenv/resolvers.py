"""Dependency resolvers: map dependency names to installed prefixes.

The package manager behind a resolver is a black box; resolvers only report
where a dependency lives once it has been realised.
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from kspenv.errors import UnavailableError
from kspenv.models import Dependency, SystemIdentifier


class DependencyResolver(Protocol):
    def resolve(self, dependency: Dependency, system: SystemIdentifier) -> Path:
        """Return the installation prefix for ``dependency`` on ``system``."""


@dataclass(slots=True)
class StaticResolver:
    """Resolve from a fixed name -> prefix mapping."""

    prefixes: Mapping[str, Path] = field(default_factory=dict)

    def resolve(self, dependency: Dependency, system: SystemIdentifier) -> Path:
        try:
            return Path(self.prefixes[dependency.name])
        except KeyError:
            raise UnavailableError(
                "Dependency has no known prefix.",
                hint="Add the dependency to the resolver's prefix mapping.",
                context={"dependency": dependency.name, "system": system},
            ) from None


@dataclass(slots=True)
class NixResolver:
    """Realise ``nixpkgs`` attributes with ``nix build`` and return store paths."""

    flake: str = "nixpkgs"
    extra_args: list[str] = field(default_factory=list)
    _resolved: dict[tuple[str, str], Path] = field(default_factory=dict, init=False, repr=False)

    def resolve(self, dependency: Dependency, system: SystemIdentifier) -> Path:
        key = (dependency.name, system)
        if key in self._resolved:
            return self._resolved[key]
        if shutil.which("nix") is None:
            raise UnavailableError(
                "Nix resolver requires `nix` in PATH.",
                hint="Install Nix: https://nixos.org/download.html",
                context={"dependency": dependency.name},
            )
        installable = f"{self.flake}#legacyPackages.{system}.{dependency.name}"
        completed = subprocess.run(
            ["nix", "build", "--no-link", "--print-out-paths", *self.extra_args, installable],
            check=False,
            text=True,
            capture_output=True,
        )
        if completed.returncode != 0:
            raise UnavailableError(
                "Nix could not realise dependency.",
                context={
                    "dependency": dependency.name,
                    "system": system,
                    "stderr": completed.stderr[-2000:],
                },
            )
        lines = [line for line in completed.stdout.splitlines() if line.strip()]
        if not lines:
            raise UnavailableError(
                "Nix returned no store path for dependency.",
                context={"dependency": dependency.name, "system": system},
            )
        prefix = Path(lines[0].strip())
        self._resolved[key] = prefix
        return prefix


__all__ = ["DependencyResolver", "NixResolver", "StaticResolver"]
