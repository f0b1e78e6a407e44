"""Build backend interfaces and implementations."""

from .base import BuildBackend, BuildResult, ShellSession, merge_env, search_path_env
from .inprocess import InProcessBackend
from .local import LocalBackend
from .nix import NixBackend

__all__ = [
    "BuildBackend",
    "BuildResult",
    "InProcessBackend",
    "LocalBackend",
    "NixBackend",
    "ShellSession",
    "merge_env",
    "search_path_env",
]
