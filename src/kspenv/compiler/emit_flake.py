"""Deterministic ``flake.nix`` emission for derived outputs.

The emitted flake has this layout:
- a fenix toolchain pinned by channel, date and manifest hash,
- a naersk ``buildPackage`` with ``cargoBuildOptions`` appended to,
- a ``mkShell`` development shell with the same inputs plus dev tools,
- ``packages``, ``apps`` and ``devShells`` attributes for every system.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from kspenv.errors import ValidationError
from kspenv.fetch import to_sri
from kspenv.models import (
    DependencySet,
    DevelopmentShell,
    Outputs,
    Package,
    SystemIdentifier,
    Toolchain,
)

FLAKE_INPUTS = (
    '    nixpkgs.url = "github:nixos/nixpkgs/nixos-unstable";\n'
    '    naersk = { url = "github:nix-community/naersk"; inputs.nixpkgs.follows = "nixpkgs"; };\n'
    "    fenix = {\n"
    '      url = "github:nix-community/fenix";\n'
    '      inputs.nixpkgs.follows = "nixpkgs";\n'
    "    };\n"
)

# Env names become attributes next to these in buildPackage and mkShell.
ENV_NAME_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
RESERVED_ATTRIBUTES = frozenset(
    {
        "buildInputs",
        "cargoBuildOptions",
        "name",
        "nativeBuildInputs",
        "pname",
        "release",
        "root",
        "shellHook",
        "src",
        "version",
    }
)
NIX_KEYWORDS = frozenset({"assert", "else", "if", "in", "inherit", "let", "or", "rec", "then", "with"})


@dataclass(frozen=True, slots=True)
class FlakeEmission:
    path: Path
    systems: tuple[SystemIdentifier, ...]
    packages: Mapping[SystemIdentifier, str] = field(default_factory=dict)


def validate_env_name(name: str) -> str:
    if not ENV_NAME_PATTERN.fullmatch(name):
        raise ValidationError(
            "Environment variable names must match [A-Za-z_][A-Za-z0-9_]*.",
            context={"name": name},
        )
    if name in RESERVED_ATTRIBUTES or name in NIX_KEYWORDS:
        raise ValidationError(
            "Environment variable name collides with a flake attribute or Nix keyword.",
            hint="Pick another name for the variable.",
            context={"name": name},
        )
    return name


def nix_string(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("${", "\\${")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def nix_list(items: tuple[str, ...] | list[str]) -> str:
    if not items:
        return "[ ]"
    return "[ " + " ".join(items) + " ]"


def render_flake(
    *,
    packages: Mapping[SystemIdentifier, Package] | None = None,
    shells: Mapping[SystemIdentifier, DevelopmentShell] | None = None,
    description: str = "Rust Development Overlay",
) -> str:
    packages = dict(packages or {})
    shells = dict(shells or {})
    if not packages and not shells:
        raise ValidationError("render_flake() requires a package or shell for at least one system.")
    lines: list[str] = [
        "{",
        f"  description = {nix_string(description)};",
        "",
        "  inputs = {",
        FLAKE_INPUTS.rstrip("\n"),
        "  };",
        "",
        "  outputs = { self, nixpkgs, fenix, naersk, ... }: {",
    ]
    if packages:
        lines.append("    packages = {")
        for system in sorted(packages):
            lines.extend(_render_packages(packages[system]))
        lines.append("    };")
        lines.append("")
        lines.append("    apps = {")
        for system in sorted(packages):
            lines.extend(_render_apps(packages[system]))
        lines.append("    };")
    if packages and shells:
        lines.append("")
    if shells:
        lines.append("    devShells = {")
        for system in sorted(shells):
            lines.extend(_render_shell(shells[system]))
        lines.append("    };")
    lines.append("  };")
    lines.append("}")
    return "\n".join(lines) + "\n"


def split_outputs(
    outputs: Mapping[SystemIdentifier, Outputs],
) -> tuple[dict[SystemIdentifier, Package], dict[SystemIdentifier, DevelopmentShell]]:
    packages = {system: item.package for system, item in outputs.items()}
    shells = {system: item.shell for system, item in outputs.items()}
    return packages, shells


def emit_flake(
    destination: str | Path,
    *,
    packages: Mapping[SystemIdentifier, Package] | None = None,
    shells: Mapping[SystemIdentifier, DevelopmentShell] | None = None,
    description: str = "Rust Development Overlay",
) -> FlakeEmission:
    target_dir = Path(destination)
    target_dir.mkdir(parents=True, exist_ok=True)
    flake_path = target_dir / "flake.nix"
    rendered = render_flake(packages=packages, shells=shells, description=description)
    flake_path.write_text(rendered, encoding="utf-8")
    systems = set(packages or {}) | set(shells or {})
    return FlakeEmission(
        path=flake_path,
        systems=tuple(sorted(systems)),
        packages={system: item.pname for system, item in sorted((packages or {}).items())},
    )


def _system_let(system: SystemIdentifier, toolchain: Toolchain) -> list[str]:
    return [
        f"      {nix_string(system)} = let",
        "        pkgs = import nixpkgs {",
        f"          system = {nix_string(system)};",
        "          overlays = [ fenix.overlays.default ];",
        "        };",
        f"        toolchain = {_toolchain_expr(toolchain)};",
    ]


def _toolchain_expr(toolchain: Toolchain) -> str:
    args = (
        f"{{ channel = {nix_string(toolchain.channel)}; "
        f"date = {nix_string(toolchain.date)}; "
        f"sha256 = {nix_string(to_sri(toolchain.manifest_sha256))}; }}"
    )
    host_components = tuple(
        nix_string(item.name) for item in toolchain.components if item.target == toolchain.host
    )
    base = f"(pkgs.fenix.toolchainOf {args}).withComponents {nix_list(host_components)}"
    if not toolchain.targets:
        return base
    parts = [f"({base})"]
    for target in toolchain.targets:
        parts.append(f"(pkgs.fenix.targets.{nix_string(target)}.toolchainOf {args}).rust-std")
    return "pkgs.fenix.combine " + nix_list(parts)


def _input_list(dependencies: DependencySet, extra: tuple[str, ...] = ()) -> str:
    names = [
        "toolchain" if item.kind == "toolchain" else item.name for item in dependencies.inputs
    ]
    names.extend(extra)
    return "with pkgs; " + nix_list(names)


def _env_lines(env: Mapping[str, str], indent: str) -> list[str]:
    return [f"{indent}{name} = {nix_string(value)};" for name, value in sorted(env.items())]


def _render_packages(package: Package) -> list[str]:
    system = package.system
    lines = _system_let(system, package.toolchain)
    lines.extend(
        [
            f"        naersk-lib = naersk.lib.{nix_string(system)}.override {{",
            "          rustc = toolchain;",
            "          cargo = toolchain;",
            "        };",
            "      in rec {",
            f"        {package.pname} = naersk-lib.buildPackage {{",
            f"          pname = {nix_string(package.pname)};",
            f"          root = {_nix_path(package.root)};",
            f"          buildInputs = {_input_list(package.dependencies)};",
            "          nativeBuildInputs = with pkgs; "
            + nix_list([item.name for item in package.dependencies.hooks])
            + ";",
        ],
    )
    release = "--release" in package.build_flags
    lines.append(f"          release = {'true' if release else 'false'};")
    # naersk adds --release itself; every other flag is appended verbatim.
    extra = [nix_string(flag) for flag in package.build_flags if flag != "--release"]
    if extra:
        lines.append(f"          cargoBuildOptions = options: options ++ {nix_list(extra)};")
    lines.extend(_env_lines(package.env, "          "))
    lines.extend(
        [
            "        };",
            f"        default = {package.pname};",
            "      };",
        ],
    )
    return lines


def _render_apps(package: Package) -> list[str]:
    drv = f"self.packages.{nix_string(package.system)}.{package.pname}"
    program = "${" + drv + "}/" + package.main_program
    return [
        f"      {nix_string(package.system)} = rec {{",
        f"        {package.pname} = {{",
        '          type = "app";',
        f'          program = "{program}";',
        "        };",
        f"        default = {package.pname};",
        "      };",
    ]


def _render_shell(shell: DevelopmentShell) -> list[str]:
    lines = _system_let(shell.system, shell.toolchain)
    dev_tools = tuple(item.name for item in shell.dev_tools)
    lines.extend(
        [
            "      in {",
            "        default = pkgs.mkShell {",
            f"          buildInputs = {_input_list(shell.dependencies, dev_tools)};",
            "          nativeBuildInputs = with pkgs; "
            + nix_list([item.name for item in shell.dependencies.hooks])
            + ";",
        ],
    )
    lines.extend(_env_lines(shell.env, "          "))
    lines.extend(
        [
            f"          shellHook = {nix_string(shell.shell_hook)};",
            "        };",
            "      };",
        ],
    )
    return lines


def _nix_path(path: Path) -> str:
    resolved = str(Path(path).resolve())
    # Nix path literals cannot carry spaces or quotes.
    if any(char in resolved for char in ' "\'$'):
        return f"(/. + {nix_string(resolved)})"
    return resolved
