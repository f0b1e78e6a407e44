"""Toolchain selection and installation APIs."""

from .install import install_toolchain, is_installed, toolchain_prefix
from .manifest import ChannelManifest, TargetEntry, parse_manifest, read_manifest
from .resolve import DEFAULT_DIST_ROOT, ToolchainSelector, manifest_url, select_components

__all__ = [
    "DEFAULT_DIST_ROOT",
    "ChannelManifest",
    "TargetEntry",
    "ToolchainSelector",
    "install_toolchain",
    "is_installed",
    "manifest_url",
    "parse_manifest",
    "read_manifest",
    "select_components",
    "toolchain_prefix",
]
