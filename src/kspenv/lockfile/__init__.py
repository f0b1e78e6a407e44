"""Lockfile model, resolution and IO APIs."""

from .io import parse_lockfile, read_lockfile, serialize_lockfile, write_lockfile
from .model import LockedToolchain, Lockfile
from .resolve import LOCKFILE_VERSION, build_lockfile, project_digest

__all__ = [
    "LOCKFILE_VERSION",
    "LockedToolchain",
    "Lockfile",
    "build_lockfile",
    "parse_lockfile",
    "project_digest",
    "read_lockfile",
    "serialize_lockfile",
    "write_lockfile",
]
