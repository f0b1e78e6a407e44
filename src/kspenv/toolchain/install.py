"""Install a resolved toolchain bundle into a per-identity prefix.

Component archives are the standard Rust dist tarballs: a single top-level
directory holding a ``components`` list and, per component, a ``manifest.in``
whose ``file:``/``dir:`` lines name the paths to install.
"""

from __future__ import annotations

import shutil
import tarfile
import tempfile
from pathlib import Path

from kspenv.errors import ValidationError
from kspenv.fetch import fetch
from kspenv.models import ResolvedComponent, Toolchain
from kspenv.observability import StructuredLogger
from kspenv.policy import Policy

STAMP_NAME = ".kspenv-toolchain"


def toolchain_prefix(toolchain: Toolchain, root: str | Path) -> Path:
    return Path(root) / toolchain.identity


def is_installed(toolchain: Toolchain, root: str | Path) -> bool:
    stamp = toolchain_prefix(toolchain, root) / STAMP_NAME
    return stamp.exists() and stamp.read_text(encoding="utf-8").strip() == toolchain.identity


def install_toolchain(
    toolchain: Toolchain,
    *,
    root: str | Path,
    cache_dir: str | Path,
    policy: Policy | None = None,
    logger: StructuredLogger | None = None,
) -> Path:
    """Fetch, verify and install every component; return the toolchain prefix."""
    prefix = toolchain_prefix(toolchain, root)
    if is_installed(toolchain, root):
        return prefix

    prefix.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=str(prefix.parent)))
    try:
        for component in toolchain.components:
            archive = _fetch_component(component, cache_dir=cache_dir, policy=policy)
            _install_archive(archive, prefix=staging, component=component)
            if logger is not None:
                logger.log(
                    operation="install_component",
                    system=None,
                    output=None,
                    component=component.name,
                    message="Installed toolchain component.",
                    extra={"target": component.target},
                )
        (staging / STAMP_NAME).write_text(toolchain.identity + "\n", encoding="utf-8")
        if prefix.exists():
            shutil.rmtree(prefix)
        shutil.move(str(staging), prefix)
    finally:
        if staging.exists():
            shutil.rmtree(staging, ignore_errors=True)
    return prefix


def _fetch_component(
    component: ResolvedComponent,
    *,
    cache_dir: str | Path,
    policy: Policy | None,
) -> Path:
    if not component.url or not component.sha256:
        raise ValidationError(
            "Toolchain component has no downloadable archive.",
            context={"component": component.name, "target": component.target},
        )
    return fetch(
        component.url,
        sha256=component.sha256,
        cache_dir=Path(cache_dir) / "components",
        policy=policy,
    )


def _install_archive(archive: Path, *, prefix: Path, component: ResolvedComponent) -> None:
    with tempfile.TemporaryDirectory(prefix="kspenv-unpack-") as unpack:
        unpack_dir = Path(unpack)
        try:
            with tarfile.open(archive, mode="r:*") as tar:
                tar.extractall(unpack_dir, filter="data")
        except tarfile.TarError as exc:
            raise ValidationError(
                "Toolchain component archive is not a readable tarball.",
                context={"component": component.name, "archive": str(archive)},
            ) from exc

        tops = [item for item in unpack_dir.iterdir() if item.is_dir()]
        if len(tops) != 1:
            raise ValidationError(
                "Toolchain component archive must contain one top-level directory.",
                context={"component": component.name},
            )
        top = tops[0]
        components_file = top / "components"
        if not components_file.exists():
            raise ValidationError(
                "Toolchain component archive is missing its `components` list.",
                context={"component": component.name},
            )
        for name in components_file.read_text(encoding="utf-8").split():
            _install_component_dir(top / name, prefix=prefix)


def _install_component_dir(source: Path, *, prefix: Path) -> None:
    manifest = source / "manifest.in"
    if not manifest.exists():
        raise ValidationError(
            "Toolchain component is missing `manifest.in`.",
            context={"path": str(source)},
        )
    for line in manifest.read_text(encoding="utf-8").splitlines():
        kind, _, rel = line.strip().partition(":")
        if not rel:
            continue
        src = source / rel
        dest = prefix / rel
        dest.parent.mkdir(parents=True, exist_ok=True)
        if kind == "file":
            shutil.copy2(src, dest)
        elif kind == "dir":
            shutil.copytree(src, dest, dirs_exist_ok=True)
        else:
            raise ValidationError(
                "Unknown entry kind in component `manifest.in`.",
                context={"path": str(manifest), "line": line},
            )
