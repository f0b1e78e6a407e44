"""Project object for toolchain, environment and output declarations."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Self

from .backends import BuildBackend, BuildResult, LocalBackend, ShellSession
from .compiler import FlakeEmission, emit_flake, split_outputs, validate_env_name
from .compose import DEFAULT_GUI_HOOKS, DEFAULT_GUI_LIBRARIES, ComposeOptions, compose_dependencies
from .config_source import TextConfigSource
from .derive import derive_all, derive_outputs
from .errors import LockfileError, ValidationError
from .lockfile import build_lockfile, project_digest, read_lockfile, write_lockfile
from .models import (
    DEFAULT_CARGO_OPTIONS,
    DEFAULT_SHELL_HOOK,
    DEFAULT_SYSTEMS,
    BuildOptions,
    Outputs,
    SystemIdentifier,
    Toolchain,
    ToolchainSpec,
)
from .observability import StructuredLogger
from .policy import Policy, ensure_frozen_policy
from .toolchain import DEFAULT_DIST_ROOT, ToolchainSelector


@dataclass(slots=True)
class Project:
    """Declares how one crate is built and developed, for every system."""

    name: str
    root: Path = field(default_factory=lambda: Path("."))
    state_dir: Path | None = None
    dist_root: str = DEFAULT_DIST_ROOT
    policy: Policy = field(default_factory=Policy)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    today: Callable[[], date] = date.today
    _toolchain_spec: ToolchainSpec | None = field(init=False, default=None, repr=False)
    _build_tools: list[str] = field(init=False, default_factory=list, repr=False)
    _libraries: list[str] = field(init=False, default_factory=list, repr=False)
    _hooks: list[str] = field(init=False, default_factory=list, repr=False)
    _include_gui_deps: bool = field(init=False, default=True, repr=False)
    _gui_libraries: tuple[str, ...] = field(init=False, default=DEFAULT_GUI_LIBRARIES, repr=False)
    _gui_hooks: tuple[str, ...] = field(init=False, default=DEFAULT_GUI_HOOKS, repr=False)
    _dev_tools: list[str] = field(init=False, default_factory=list, repr=False)
    _features: list[str] = field(init=False, default_factory=list, repr=False)
    _cargo_options: tuple[str, ...] = field(init=False, default=DEFAULT_CARGO_OPTIONS, repr=False)
    _env: dict[str, str] = field(init=False, default_factory=dict, repr=False)
    _env_files: dict[str, Path] = field(init=False, default_factory=dict, repr=False)
    _shell_hook: str = field(init=False, default=DEFAULT_SHELL_HOOK, repr=False)
    _config: TextConfigSource = field(init=False, default_factory=TextConfigSource, repr=False)
    _toolchains: dict[tuple[SystemIdentifier, ToolchainSpec], Toolchain] = field(
        init=False,
        default_factory=dict,
        repr=False,
    )

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("Project requires a non-empty name.")
        self.root = Path(self.root)
        if self.state_dir is None:
            self.state_dir = self.root / ".kspenv"

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def toolchain(self, spec: ToolchainSpec) -> Self:
        self._toolchain_spec = spec
        self._toolchains.clear()
        return self

    def build_tools(self, *names: str) -> Self:
        self._build_tools.extend(_require_names("build_tools", names))
        return self

    def libraries(self, *names: str) -> Self:
        self._libraries.extend(_require_names("libraries", names))
        return self

    def hooks(self, *names: str) -> Self:
        self._hooks.extend(_require_names("hooks", names))
        return self

    def gui(
        self,
        *,
        enabled: bool = True,
        libraries: tuple[str, ...] | None = None,
        hooks: tuple[str, ...] | None = None,
    ) -> Self:
        self._include_gui_deps = enabled
        if libraries is not None:
            self._gui_libraries = tuple(libraries)
        if hooks is not None:
            self._gui_hooks = tuple(hooks)
        return self

    def dev_tools(self, *names: str) -> Self:
        self._dev_tools.extend(_require_names("dev_tools", names))
        return self

    def features(self, *names: str) -> Self:
        self._features.extend(_require_names("features", names))
        return self

    def cargo_options(self, *options: str) -> Self:
        self._cargo_options = tuple(options)
        return self

    def env(self, name: str, value: str) -> Self:
        self._check_env_name(name)
        self._env[name] = value
        return self

    def env_file(self, name: str, path: str | Path) -> Self:
        """Set ``name`` to the verbatim contents of ``path``, read at evaluation time."""
        self._check_env_name(name)
        source = Path(path)
        self._env_files[name] = source if source.is_absolute() else self.root / source
        return self

    def shell_hook(self, script: str) -> Self:
        self._shell_hook = script
        return self

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def compose_options(self) -> ComposeOptions:
        return ComposeOptions(
            build_tools=tuple(self._build_tools),
            libraries=tuple(self._libraries),
            hooks=tuple(self._hooks),
            include_gui_deps=self._include_gui_deps,
            gui_libraries=self._gui_libraries,
            gui_hooks=self._gui_hooks,
        )

    def resolve_toolchain(self, system: SystemIdentifier, *, frozen: bool = False) -> Toolchain:
        # The lock is re-read on every frozen call so later declarations make it stale.
        spec = self._locked_spec(system) if frozen else self._require_spec()
        key = (system, spec)
        if key not in self._toolchains:
            self._toolchains[key] = self._selector().resolve(spec, system)
        return self._toolchains[key]

    def outputs(self, system: SystemIdentifier, *, frozen: bool = False) -> Outputs:
        ensure_frozen_policy(policy=self.policy, frozen=frozen)
        with self._config.evaluation():
            toolchain = self.resolve_toolchain(system, frozen=frozen)
            dependencies = compose_dependencies(toolchain, self.compose_options())
            self.logger.log(
                operation="compose",
                system=system,
                output=None,
                component="environment",
                message="Composed dependency set.",
                extra=dependencies.to_payload(),
            )
            options = self._build_options()
            outputs = derive_outputs(
                system,
                toolchain=toolchain,
                dependencies=dependencies,
                build_options=options,
                dev_tools=self._dev_tools,
                shell_hook=self._shell_hook,
            )
        self.logger.log(
            operation="derive",
            system=system,
            output=None,
            component=None,
            message="Derived package and shell outputs.",
            extra={"digest": outputs.digest()},
        )
        return outputs

    def all_outputs(
        self,
        systems: Iterable[SystemIdentifier] = DEFAULT_SYSTEMS,
        *,
        frozen: bool = False,
    ) -> dict[SystemIdentifier, Outputs]:
        return derive_all(systems, lambda system: self.outputs(system, frozen=frozen))

    def build(
        self,
        system: SystemIdentifier,
        backend: BuildBackend | None = None,
        *,
        frozen: bool = False,
    ) -> BuildResult:
        package = self.outputs(system, frozen=frozen).package
        return (backend or self._default_backend()).build(package)

    def shell(
        self,
        system: SystemIdentifier,
        backend: BuildBackend | None = None,
        *,
        frozen: bool = False,
    ) -> ShellSession:
        shell = self.outputs(system, frozen=frozen).shell
        return (backend or self._default_backend()).enter_shell(shell)

    def lock(
        self,
        path: str | Path | None = None,
        *,
        systems: Iterable[SystemIdentifier] = DEFAULT_SYSTEMS,
    ) -> Path:
        toolchains = {system: self.resolve_toolchain(system) for system in dict.fromkeys(systems)}
        lock = build_lockfile(project=self.descriptor(), toolchains=toolchains)
        return write_lockfile(lock, self._lock_path(path))

    def emit_flake(
        self,
        destination: str | Path | None = None,
        *,
        systems: Iterable[SystemIdentifier] = DEFAULT_SYSTEMS,
        frozen: bool = False,
    ) -> FlakeEmission:
        packages, shells = split_outputs(self.all_outputs(systems, frozen=frozen))
        return emit_flake(destination or self.root, packages=packages, shells=shells)

    def descriptor(self) -> dict[str, Any]:
        """Declarations that determine outputs, excluding machine-local paths."""
        spec = self._require_spec()
        options = self.compose_options()
        return {
            "name": self.name,
            "toolchain": {
                "strategy": spec.strategy,
                "channel": spec.channel,
                "sha256": spec.sha256,
                "date": spec.date,
                "components": list(spec.components),
                "targets": list(spec.targets),
            },
            "compose": {
                "build_tools": list(options.build_tools),
                "libraries": list(options.libraries),
                "hooks": list(options.hooks),
                "include_gui_deps": options.include_gui_deps,
                "gui_libraries": list(options.gui_libraries),
                "gui_hooks": list(options.gui_hooks),
            },
            "features": list(dict.fromkeys(self._features)),
            "cargo_options": list(self._cargo_options),
            "env": dict(sorted(self._env.items())),
            "env_files": {
                name: _portable_path(path, self.root) for name, path in sorted(self._env_files.items())
            },
            "dev_tools": list(dict.fromkeys(self._dev_tools)),
            "shell_hook": self._shell_hook,
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_spec(self) -> ToolchainSpec:
        if self._toolchain_spec is None:
            raise ValidationError(
                "Project has no toolchain declared.",
                hint="Call project.toolchain(ToolchainSpec.pinned(...)) or .floating(...).",
                context={"project": self.name},
            )
        return self._toolchain_spec

    def _locked_spec(self, system: SystemIdentifier) -> ToolchainSpec:
        lock_path = self._lock_path(None)
        lock = read_lockfile(lock_path)
        if lock.project_digest != project_digest(self.descriptor()):
            raise LockfileError(
                "Lockfile is stale for the current project declarations.",
                hint="Run project.lock() to refresh it.",
                context={"path": str(lock_path)},
            )
        locked = lock.toolchains.get(system)
        if locked is None:
            raise LockfileError(
                "Lockfile has no toolchain for this system.",
                hint="Run project.lock(systems=...) including this system.",
                context={"path": str(lock_path), "system": system},
            )
        spec = self._require_spec()
        return ToolchainSpec.pinned(
            locked.channel,
            sha256=locked.sha256,
            date=locked.date,
            components=spec.components,
            targets=spec.targets,
        )

    def _build_options(self) -> BuildOptions:
        env = dict(self._env)
        for name, path in sorted(self._env_files.items()):
            env[name] = self._config.read(path)
        return BuildOptions(
            pname=self.name,
            root=self.root,
            features=tuple(self._features),
            env=env,
            cargo_options=self._cargo_options,
        )

    def _selector(self) -> ToolchainSelector:
        assert self.state_dir is not None
        return ToolchainSelector(
            cache_dir=self.state_dir / "cache",
            dist_root=self.dist_root,
            policy=self.policy,
            logger=self.logger,
            today=self.today,
        )

    def _default_backend(self) -> LocalBackend:
        assert self.state_dir is not None
        return LocalBackend(state_dir=self.state_dir, policy=self.policy, logger=self.logger)

    def _lock_path(self, path: str | Path | None) -> Path:
        if path is None:
            return self.root / "kspenv.lock"
        return Path(path)

    def _check_env_name(self, name: str) -> None:
        validate_env_name(name)
        if name in self._env or name in self._env_files:
            raise ValidationError(
                "Environment variable is already declared.",
                context={"name": name},
            )


def _require_names(operation: str, names: tuple[str, ...]) -> tuple[str, ...]:
    if not names:
        raise ValidationError(f"{operation}() requires at least one name.")
    for name in names:
        if not name:
            raise ValidationError(f"{operation}() names must be non-empty.")
    return names


def _portable_path(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)
