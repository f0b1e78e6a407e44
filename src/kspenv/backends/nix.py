"""Native Nix build backend.

Emits a ``flake.nix`` for the requested output into ``emit_dir`` and runs
``nix build`` / ``nix develop`` against it.  The project root is referenced
by absolute path, so evaluation runs with ``--impure``.

This backend requires ``nix`` available in PATH with flakes enabled.
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from kspenv.backends.base import BuildResult, ShellSession
from kspenv.compiler import emit_flake
from kspenv.errors import BuildError, ValidationError
from kspenv.models import DevelopmentShell, Package
from kspenv.observability import StructuredLogger


@dataclass(slots=True)
class NixBackend:
    name: str = "nix"
    emit_dir: Path = field(default_factory=lambda: Path(".kspenv/flake"))
    nix_args: list[str] = field(default_factory=list)
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def build(self, package: Package) -> BuildResult:
        self._ensure_prerequisites()
        flake_dir = self._emit(package=package)
        out_link = flake_dir / f"result-{package.system}"
        installable = f"path:{flake_dir}#packages.{package.system}.{package.pname}"
        command = (
            "nix",
            "build",
            "--impure",
            "--out-link",
            str(out_link),
            *self.nix_args,
            installable,
        )
        self.logger.log(
            operation="build_start",
            system=package.system,
            output="package",
            component=package.pname,
            message="Starting nix build.",
            extra={"command": list(command)},
        )
        result = subprocess.run(list(command), capture_output=True, text=True, check=False)
        if result.returncode != 0:
            raise BuildError(
                "nix build failed.",
                hint="The downstream build output is reproduced verbatim below.",
                context={
                    "backend": self.name,
                    "system": package.system,
                    "package": package.pname,
                    "returncode": str(result.returncode),
                    "stderr": result.stderr,
                    "stdout": result.stdout,
                },
            )
        return BuildResult(
            backend=self.name,
            system=package.system,
            pname=package.pname,
            command=command,
            program=out_link / package.main_program,
            stdout=result.stdout,
            env=dict(package.env),
        )

    def enter_shell(self, shell: DevelopmentShell) -> ShellSession:
        self._ensure_prerequisites()
        flake_dir = self._emit(shell=shell)
        installable = f"path:{flake_dir}#devShells.{shell.system}.default"
        command = ("nix", "develop", "--impure", *self.nix_args, installable)
        completed = subprocess.run(list(command), check=False)
        return ShellSession(
            backend=self.name,
            system=shell.system,
            command=command,
            returncode=completed.returncode,
            env=dict(shell.env),
        )

    def _emit(
        self,
        *,
        package: Package | None = None,
        shell: DevelopmentShell | None = None,
    ) -> Path:
        if package is not None:
            system = package.system
        elif shell is not None:
            system = shell.system
        else:
            raise ValidationError("Nothing to emit for the nix backend.")
        emission = emit_flake(
            self.emit_dir / system,
            packages={system: package} if package is not None else None,
            shells={system: shell} if shell is not None else None,
        )
        return emission.path.parent.resolve()

    def _ensure_prerequisites(self) -> None:
        if shutil.which("nix") is None:
            raise BuildError(
                "Nix backend requires `nix` in PATH.",
                hint="Install Nix: https://nixos.org/download.html",
                context={"backend": self.name, "operation": "prepare"},
            )
