"""Compiler interfaces for emitting Nix flake descriptors."""

from .emit_flake import (
    RESERVED_ATTRIBUTES,
    FlakeEmission,
    emit_flake,
    nix_string,
    render_flake,
    split_outputs,
    validate_env_name,
)

__all__ = [
    "RESERVED_ATTRIBUTES",
    "FlakeEmission",
    "emit_flake",
    "nix_string",
    "render_flake",
    "split_outputs",
    "validate_env_name",
]
