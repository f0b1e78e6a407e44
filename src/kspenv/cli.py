"""Command line entry point.

Usage:
    kspenv --project examples/kspacker/project.py show
    kspenv --project examples/kspacker/project.py package --backend nix
    kspenv --project examples/kspacker/project.py shell
    kspenv --project examples/kspacker/project.py lock
    kspenv --project examples/kspacker/project.py emit --out flake-dir

The project file must define ``build_project()`` returning a
:class:`kspenv.project.Project`.
"""

from __future__ import annotations

import argparse
import importlib.util
import json
import platform
import sys
from collections.abc import Sequence
from pathlib import Path

from kspenv.backends import BuildBackend, InProcessBackend, LocalBackend, NixBackend
from kspenv.errors import KspenvError, ValidationError
from kspenv.project import Project

BACKENDS = ("local", "nix", "inprocess")

_MACHINE_ALIASES = {"amd64": "x86_64", "arm64": "aarch64"}
_PLATFORM_ALIASES = {"linux": "linux", "darwin": "darwin"}


def current_system() -> str:
    machine = platform.machine().lower()
    machine = _MACHINE_ALIASES.get(machine, machine)
    kernel = _PLATFORM_ALIASES.get(sys.platform, sys.platform)
    return f"{machine}-{kernel}"


def load_project(path: Path) -> Project:
    spec = importlib.util.spec_from_file_location("kspenv_project", path)
    if spec is None or spec.loader is None:
        raise ValidationError("Cannot load project file.", context={"path": str(path)})
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    factory = getattr(module, "build_project", None)
    if factory is None:
        raise ValidationError(
            "Project file does not define build_project().",
            context={"path": str(path)},
        )
    project = factory()
    if not isinstance(project, Project):
        raise ValidationError(
            "build_project() must return a Project.",
            context={"path": str(path), "type": type(project).__name__},
        )
    return project


def make_backend(name: str, project: Project) -> BuildBackend:
    assert project.state_dir is not None
    if name == "local":
        return LocalBackend(state_dir=project.state_dir, policy=project.policy, logger=project.logger)
    if name == "nix":
        return NixBackend(emit_dir=project.state_dir / "flake", logger=project.logger)
    if name == "inprocess":
        return InProcessBackend(build_dir=project.state_dir / "inprocess")
    raise ValidationError("Unknown backend.", context={"backend": name})


def cmd_show(project: Project, args: argparse.Namespace) -> int:
    outputs = project.outputs(args.system, frozen=args.frozen)
    print(json.dumps(outputs.to_payload(), indent=2, sort_keys=True))
    return 0


def cmd_package(project: Project, args: argparse.Namespace) -> int:
    result = project.build(args.system, make_backend(args.backend, project), frozen=args.frozen)
    print(result.program)
    return 0


def cmd_shell(project: Project, args: argparse.Namespace) -> int:
    session = project.shell(args.system, make_backend(args.backend, project), frozen=args.frozen)
    return session.returncode


def cmd_lock(project: Project, args: argparse.Namespace) -> int:
    path = project.lock(args.out, systems=args.systems or (args.system,))
    print(f"Locked toolchains to {path}")
    return 0


def cmd_emit(project: Project, args: argparse.Namespace) -> int:
    emission = project.emit_flake(args.out, systems=args.systems or (args.system,), frozen=args.frozen)
    print(f"Emitted {emission.path}")
    return 0


COMMANDS = {
    "show": cmd_show,
    "package": cmd_package,
    "shell": cmd_shell,
    "lock": cmd_lock,
    "emit": cmd_emit,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kspenv", description="Rust build and dev-shell environments")
    parser.add_argument("--project", type=Path, default=Path("project.py"), help="Project file")
    parser.add_argument("--system", default=current_system(), help="Target system identifier")
    parser.add_argument("--log-json", type=Path, default=None, help="Write structured logs here")
    sub = parser.add_subparsers(dest="command", required=True)

    show_p = sub.add_parser("show", help="Print the derived outputs for one system")
    show_p.add_argument("--frozen", action="store_true", help="Require the lockfile")

    for name, help_text in (
        ("package", "Build the release program"),
        ("shell", "Enter the development shell"),
    ):
        command_p = sub.add_parser(name, help=help_text)
        command_p.add_argument("--backend", choices=BACKENDS, default="local")
        command_p.add_argument("--frozen", action="store_true", help="Require the lockfile")

    lock_p = sub.add_parser("lock", help="Resolve and record toolchains")
    lock_p.add_argument("--out", type=Path, default=None, help="Lockfile path")
    lock_p.add_argument("--systems", nargs="+", default=None, help="Systems to lock")

    emit_p = sub.add_parser("emit", help="Write a flake.nix for the project")
    emit_p.add_argument("--out", type=Path, default=None, help="Destination directory")
    emit_p.add_argument("--systems", nargs="+", default=None, help="Systems to emit")
    emit_p.add_argument("--frozen", action="store_true", help="Require the lockfile")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    project: Project | None = None
    try:
        project = load_project(args.project)
        return COMMANDS[args.command](project, args)
    except KspenvError as exc:
        print(json.dumps(exc.to_dict(), indent=2, sort_keys=True), file=sys.stderr)
        return 1
    finally:
        if args.log_json is not None and project is not None:
            project.logger.to_json_lines(args.log_json)


if __name__ == "__main__":
    raise SystemExit(main())
