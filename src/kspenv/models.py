"""Core typed dataclasses for toolchains, dependency sets and derived outputs."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import cbor2

from kspenv.errors import ValidationError

SystemIdentifier = str
Strategy = Literal["pinned", "floating"]
DependencyKind = Literal["tool", "library", "hook", "toolchain"]

DEFAULT_SYSTEMS: tuple[SystemIdentifier, ...] = (
    "aarch64-linux",
    "aarch64-darwin",
    "x86_64-darwin",
    "x86_64-linux",
)

SYSTEM_TO_HOST_TRIPLE: dict[SystemIdentifier, str] = {
    "aarch64-darwin": "aarch64-apple-darwin",
    "aarch64-linux": "aarch64-unknown-linux-gnu",
    "armv7l-linux": "armv7-unknown-linux-gnueabihf",
    "i686-linux": "i686-unknown-linux-gnu",
    "x86_64-darwin": "x86_64-apple-darwin",
    "x86_64-linux": "x86_64-unknown-linux-gnu",
}

DEFAULT_CARGO_OPTIONS: tuple[str, ...] = ("--release", "--locked")
IMPLICIT_FEATURES: tuple[str, ...] = ("default",)
DEFAULT_SHELL_HOOK = 'echo "Loaded devshell"'


def host_triple(system: SystemIdentifier) -> str:
    try:
        return SYSTEM_TO_HOST_TRIPLE[system]
    except KeyError:
        raise ValidationError(
            f"Unknown system identifier `{system}`.",
            hint="Use one of: " + ", ".join(sorted(SYSTEM_TO_HOST_TRIPLE)),
            context={"system": system},
        ) from None


def ordered_unique(items: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


@dataclass(frozen=True, slots=True)
class ToolchainSpec:
    """Request for a compiler toolchain.

    ``pinned`` specs name a channel manifest and its content hash; ``floating``
    specs pick the most recent manifest offering every requested component.
    """

    strategy: Strategy
    channel: str
    sha256: str | None = None
    date: str | None = None
    components: tuple[str, ...] = ()
    targets: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.channel:
            raise ValidationError("ToolchainSpec requires a channel.")
        if self.strategy not in ("pinned", "floating"):
            raise ValidationError(f"Unsupported toolchain strategy: {self.strategy}")
        if self.strategy == "pinned" and not self.sha256:
            raise ValidationError(
                "Pinned toolchains require an integrity hash.",
                hint="Pass sha256= or use ToolchainSpec.floating().",
                context={"channel": self.channel},
            )
        if self.strategy == "floating" and self.sha256:
            raise ValidationError(
                "Floating toolchains cannot carry an integrity hash.",
                context={"channel": self.channel},
            )
        object.__setattr__(self, "components", ordered_unique(self.components))
        object.__setattr__(self, "targets", ordered_unique(self.targets))

    @classmethod
    def pinned(
        cls,
        channel: str,
        *,
        sha256: str,
        date: str | None = None,
        components: Iterable[str] = (),
        targets: Iterable[str] = (),
    ) -> ToolchainSpec:
        return cls(
            strategy="pinned",
            channel=channel,
            sha256=sha256,
            date=date,
            components=tuple(components),
            targets=tuple(targets),
        )

    @classmethod
    def floating(
        cls,
        channel: str = "nightly",
        *,
        components: Iterable[str] = (),
        targets: Iterable[str] = (),
    ) -> ToolchainSpec:
        return cls(
            strategy="floating",
            channel=channel,
            components=tuple(components),
            targets=tuple(targets),
        )


@dataclass(frozen=True, slots=True)
class ResolvedComponent:
    name: str
    package: str
    target: str
    url: str
    sha256: str


@dataclass(frozen=True, slots=True)
class Toolchain:
    """A concrete, installable toolchain bundle."""

    channel: str
    date: str
    manifest_sha256: str
    host: str
    components: tuple[ResolvedComponent, ...]
    targets: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return f"rust-{self.channel}-{self.date}"

    @property
    def identity(self) -> str:
        return f"{self.name}-{self.host}-{self.manifest_sha256[:16]}"

    def component_names(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.components)

    def as_dependency(self) -> Dependency:
        return Dependency(name=self.name, kind="toolchain")

    def to_payload(self) -> dict[str, object]:
        return {
            "channel": self.channel,
            "date": self.date,
            "manifest_sha256": self.manifest_sha256,
            "host": self.host,
            "components": [
                {
                    "name": item.name,
                    "package": item.package,
                    "target": item.target,
                    "url": item.url,
                    "sha256": item.sha256,
                }
                for item in self.components
            ],
            "targets": list(self.targets),
        }


@dataclass(frozen=True, slots=True)
class Dependency:
    name: str
    kind: DependencyKind = "library"

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("Dependency names must be non-empty.")


@dataclass(frozen=True, slots=True)
class DependencySet:
    tools: tuple[Dependency, ...] = ()
    libraries: tuple[Dependency, ...] = ()
    hooks: tuple[Dependency, ...] = ()

    def __post_init__(self) -> None:
        overlap = {item.name for item in self.tools} & {item.name for item in self.libraries}
        if overlap:
            raise ValidationError(
                "Build tools and runtime libraries must be disjoint.",
                context={"overlap": ", ".join(sorted(overlap))},
            )

    @property
    def inputs(self) -> tuple[Dependency, ...]:
        """Tools followed by libraries, in link order."""
        return self.tools + self.libraries

    def names(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.inputs)

    def to_payload(self) -> dict[str, list[str]]:
        return {
            "tools": [item.name for item in self.tools],
            "libraries": [item.name for item in self.libraries],
            "hooks": [item.name for item in self.hooks],
        }


@dataclass(frozen=True, slots=True)
class BuildOptions:
    pname: str
    root: Path
    features: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    cargo_options: tuple[str, ...] = DEFAULT_CARGO_OPTIONS

    def __post_init__(self) -> None:
        if not self.pname:
            raise ValidationError("BuildOptions requires a package name.")
        object.__setattr__(self, "features", ordered_unique(self.features))
        object.__setattr__(self, "env", dict(sorted(self.env.items())))


@dataclass(frozen=True, slots=True)
class Package:
    system: SystemIdentifier
    pname: str
    root: Path
    toolchain: Toolchain
    dependencies: DependencySet
    build_flags: tuple[str, ...]
    effective_features: tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict)

    @property
    def main_program(self) -> str:
        return f"bin/{self.pname}"

    def to_payload(self) -> dict[str, object]:
        return {
            "system": self.system,
            "pname": self.pname,
            "root": str(self.root),
            "toolchain": self.toolchain.to_payload(),
            "dependencies": self.dependencies.to_payload(),
            "build_flags": list(self.build_flags),
            "effective_features": list(self.effective_features),
            "env": dict(sorted(self.env.items())),
        }


@dataclass(frozen=True, slots=True)
class DevelopmentShell:
    system: SystemIdentifier
    toolchain: Toolchain
    dependencies: DependencySet
    dev_tools: tuple[Dependency, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    shell_hook: str = DEFAULT_SHELL_HOOK

    @property
    def inputs(self) -> tuple[Dependency, ...]:
        return self.dependencies.inputs + self.dev_tools

    def to_payload(self) -> dict[str, object]:
        return {
            "system": self.system,
            "toolchain": self.toolchain.to_payload(),
            "dependencies": self.dependencies.to_payload(),
            "dev_tools": [item.name for item in self.dev_tools],
            "env": dict(sorted(self.env.items())),
            "shell_hook": self.shell_hook,
        }


@dataclass(frozen=True, slots=True)
class Outputs:
    system: SystemIdentifier
    package: Package
    shell: DevelopmentShell
    schema_version: int = 1

    def to_payload(self) -> dict[str, object]:
        return {
            "schema_version": self.schema_version,
            "system": self.system,
            "package": self.package.to_payload(),
            "shell": self.shell.to_payload(),
        }

    def to_json(self, path: str | Path | None = None) -> str:
        encoded = json.dumps(self.to_payload(), indent=2, sort_keys=True) + "\n"
        if path is not None:
            Path(path).write_text(encoded, encoding="utf-8")
        return encoded

    def spec_bytes(self) -> bytes:
        return cbor2.dumps(self.to_payload(), canonical=True)

    def digest(self) -> str:
        return hashlib.sha256(self.spec_bytes()).hexdigest()


__all__ = [
    "DEFAULT_CARGO_OPTIONS",
    "DEFAULT_SHELL_HOOK",
    "DEFAULT_SYSTEMS",
    "BuildOptions",
    "Dependency",
    "DependencyKind",
    "DependencySet",
    "DevelopmentShell",
    "IMPLICIT_FEATURES",
    "Outputs",
    "Package",
    "ResolvedComponent",
    "SYSTEM_TO_HOST_TRIPLE",
    "Strategy",
    "SystemIdentifier",
    "Toolchain",
    "ToolchainSpec",
    "host_triple",
    "ordered_unique",
]
