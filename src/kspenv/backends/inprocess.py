"""In-process backend for testing and development.

Produces deterministic placeholder programs without invoking cargo, nix or
any other external tool, and records every request it receives.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path

from kspenv.backends.base import BuildResult, ShellSession
from kspenv.models import DevelopmentShell, Package


@dataclass(slots=True)
class InProcessBackend:
    """Backend that writes deterministic placeholder artifacts in-process."""

    name: str = "inprocess"
    build_dir: Path = field(default_factory=lambda: Path(".kspenv/inprocess"))
    builds: list[Package] = field(default_factory=list)
    shells: list[DevelopmentShell] = field(default_factory=list)

    def build(self, package: Package) -> BuildResult:
        self.builds.append(package)
        command = ("cargo", "build", *package.build_flags)
        program = self.build_dir / package.system / package.main_program
        program.parent.mkdir(parents=True, exist_ok=True)
        digest = hashlib.sha256(" ".join(command).encode("utf-8")).hexdigest()
        program.write_text(
            (
                f"kspenv-artifact: pname={package.pname} system={package.system}\n"
                f"toolchain={package.toolchain.identity}\n"
                f"inputs={','.join(package.dependencies.names())}\n"
                f"command_digest={digest}\n"
            ),
            encoding="utf-8",
        )
        return BuildResult(
            backend=self.name,
            system=package.system,
            pname=package.pname,
            command=command,
            program=program,
            env=dict(package.env),
        )

    def enter_shell(self, shell: DevelopmentShell) -> ShellSession:
        self.shells.append(shell)
        return ShellSession(
            backend=self.name,
            system=shell.system,
            command=("sh", "-c", shell.shell_hook),
            returncode=0,
            env=dict(shell.env),
        )
