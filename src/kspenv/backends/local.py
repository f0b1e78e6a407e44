"""Host build execution via cargo.

Installs the resolved toolchain into a per-identity prefix, resolves every
dependency prefix through a :class:`DependencyResolver`, and runs
``cargo build`` with the composed search paths and declared environment.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from kspenv.backends.base import BuildResult, ShellSession, merge_env, search_path_env
from kspenv.backends.hooks import HOOK_HANDLERS
from kspenv.errors import BuildError, ValidationError
from kspenv.models import Dependency, DependencySet, DevelopmentShell, Package, Toolchain
from kspenv.observability import StructuredLogger
from kspenv.policy import Policy
from kspenv.resolvers import DependencyResolver, NixResolver
from kspenv.toolchain import install_toolchain


@dataclass(slots=True)
class LocalBackend:
    name: str = "local"
    resolver: DependencyResolver = field(default_factory=NixResolver)
    state_dir: Path = field(default_factory=lambda: Path(".kspenv"))
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    inherit_env: Mapping[str, str] | None = None

    def prepare(self, toolchain: Toolchain) -> Path:
        return install_toolchain(
            toolchain,
            root=self.state_dir / "toolchains",
            cache_dir=self.state_dir / "cache",
            policy=self.policy,
            logger=self.logger,
        )

    def environment(
        self,
        *,
        system: str,
        toolchain: Toolchain,
        inputs: tuple[Dependency, ...],
        declared: Mapping[str, str],
    ) -> dict[str, str]:
        toolchain_prefix = self.prepare(toolchain)
        prefixes = [
            toolchain_prefix if item.kind == "toolchain" else self.resolver.resolve(item, system)
            for item in inputs
        ]
        base = dict(os.environ if self.inherit_env is None else self.inherit_env)
        return merge_env(base, search_path_env(prefixes), declared)

    def build(self, package: Package) -> BuildResult:
        self._ensure_hooks_supported(package.dependencies)
        env = self.environment(
            system=package.system,
            toolchain=package.toolchain,
            inputs=package.dependencies.inputs,
            declared=package.env,
        )
        command = ("cargo", "build", *package.build_flags)
        self.logger.log(
            operation="build_start",
            system=package.system,
            output="package",
            component=package.pname,
            message="Starting cargo build.",
            extra={"command": list(command)},
        )
        completed = subprocess.run(
            list(command),
            cwd=str(package.root),
            env=env,
            capture_output=True,
            text=True,
            check=False,
        )
        if completed.returncode != 0:
            raise BuildError(
                "cargo build failed.",
                hint="The downstream build output is reproduced verbatim below.",
                context={
                    "backend": self.name,
                    "system": package.system,
                    "package": package.pname,
                    "returncode": str(completed.returncode),
                    "stderr": completed.stderr,
                    "stdout": completed.stdout,
                },
            )

        program = self._program_path(package)
        hook_prefixes = [
            self.resolver.resolve(item, package.system) for item in package.dependencies.libraries
        ]
        for hook in package.dependencies.hooks:
            HOOK_HANDLERS[hook.name](program, hook_prefixes)
        self.logger.log(
            operation="build_done",
            system=package.system,
            output="package",
            component=package.pname,
            message="Cargo build finished.",
            extra={"program": str(program)},
        )
        return BuildResult(
            backend=self.name,
            system=package.system,
            pname=package.pname,
            command=command,
            program=program,
            stdout=completed.stdout,
            env=dict(package.env),
        )

    def enter_shell(self, shell: DevelopmentShell) -> ShellSession:
        env = self.environment(
            system=shell.system,
            toolchain=shell.toolchain,
            inputs=shell.inputs,
            declared=shell.env,
        )
        login_shell = env.get("SHELL", "/bin/sh")
        command = ("/bin/sh", "-c", f'{shell.shell_hook}\nexec "$0" -i', login_shell)
        self.logger.log(
            operation="shell_enter",
            system=shell.system,
            output="shell",
            component=None,
            message="Entering development shell.",
        )
        completed = subprocess.run(list(command), env=env, check=False)
        return ShellSession(
            backend=self.name,
            system=shell.system,
            command=command,
            returncode=completed.returncode,
            env=dict(shell.env),
        )

    def _ensure_hooks_supported(self, dependencies: DependencySet) -> None:
        unsupported = [item.name for item in dependencies.hooks if item.name not in HOOK_HANDLERS]
        if unsupported:
            raise ValidationError(
                "No local handler for packaging hooks.",
                hint="Use the nix backend or drop the hooks.",
                context={"backend": self.name, "hooks": ", ".join(unsupported)},
            )

    @staticmethod
    def _program_path(package: Package) -> Path:
        profile = "release" if "--release" in package.build_flags else "debug"
        program = Path(package.root) / "target" / profile / package.pname
        if not program.exists():
            raise BuildError(
                "cargo build produced no program for the package.",
                context={"package": package.pname, "expected": str(program)},
            )
        return program
