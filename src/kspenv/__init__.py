"""Public package entrypoint for kspenv build and dev-shell environments."""

from .compose import ComposeOptions, compose_dependencies
from .config_source import TextConfigSource, read_text_config
from .derive import derive_all, derive_outputs
from .errors import (
    BuildError,
    ErrorCode,
    FileReadError,
    IntegrityError,
    KspenvError,
    LockfileError,
    PolicyError,
    UnavailableError,
    UnsupportedComponentError,
    UnsupportedTargetError,
    ValidationError,
)
from .models import (
    DEFAULT_SYSTEMS,
    BuildOptions,
    Dependency,
    DependencySet,
    DevelopmentShell,
    Outputs,
    Package,
    Toolchain,
    ToolchainSpec,
)
from .policy import Policy
from .project import Project
from .toolchain import ToolchainSelector, install_toolchain

__all__ = [
    "DEFAULT_SYSTEMS",
    "BuildError",
    "BuildOptions",
    "ComposeOptions",
    "Dependency",
    "DependencySet",
    "DevelopmentShell",
    "ErrorCode",
    "FileReadError",
    "IntegrityError",
    "KspenvError",
    "LockfileError",
    "Outputs",
    "Package",
    "Policy",
    "PolicyError",
    "Project",
    "TextConfigSource",
    "Toolchain",
    "ToolchainSelector",
    "ToolchainSpec",
    "UnavailableError",
    "UnsupportedComponentError",
    "UnsupportedTargetError",
    "ValidationError",
    "compose_dependencies",
    "derive_all",
    "derive_outputs",
    "install_toolchain",
    "read_text_config",
]
