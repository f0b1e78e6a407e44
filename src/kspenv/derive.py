"""Derive the package and development shell outputs from one shared input triple."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping

from kspenv.errors import ValidationError
from kspenv.models import (
    DEFAULT_SHELL_HOOK,
    IMPLICIT_FEATURES,
    BuildOptions,
    Dependency,
    DependencySet,
    DevelopmentShell,
    Outputs,
    Package,
    SystemIdentifier,
    Toolchain,
    ordered_unique,
)


def build_flags(options: BuildOptions) -> tuple[str, ...]:
    """Default cargo options with the requested features appended."""
    flags = list(options.cargo_options)
    if options.features:
        flags.extend(["--features", ",".join(options.features)])
    return tuple(flags)


def effective_features(options: BuildOptions) -> tuple[str, ...]:
    return ordered_unique((*IMPLICIT_FEATURES, *options.features))


def derive_outputs(
    system: SystemIdentifier,
    *,
    toolchain: Toolchain,
    dependencies: DependencySet,
    build_options: BuildOptions,
    dev_tools: Iterable[str] = (),
    shell_hook: str = DEFAULT_SHELL_HOOK,
) -> Outputs:
    env: Mapping[str, str] = dict(build_options.env)
    package = Package(
        system=system,
        pname=build_options.pname,
        root=build_options.root,
        toolchain=toolchain,
        dependencies=dependencies,
        build_flags=build_flags(build_options),
        effective_features=effective_features(build_options),
        env=env,
    )
    present = set(dependencies.names())
    shell = DevelopmentShell(
        system=system,
        toolchain=toolchain,
        dependencies=dependencies,
        dev_tools=tuple(
            Dependency(name=name, kind="tool")
            for name in ordered_unique(dev_tools)
            if name not in present
        ),
        env=env,
        shell_hook=shell_hook,
    )
    return Outputs(system=system, package=package, shell=shell)


def derive_all(
    systems: Iterable[SystemIdentifier],
    derive: Callable[[SystemIdentifier], Outputs],
) -> dict[SystemIdentifier, Outputs]:
    """Evaluate ``derive`` independently for each system in the given order."""
    selected = ordered_unique(systems)
    if not selected:
        raise ValidationError("derive_all() requires at least one system identifier.")
    return {system: derive(system) for system in selected}


__all__ = ["build_flags", "derive_all", "derive_outputs", "effective_features"]
