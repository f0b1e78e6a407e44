"""Shared test fixtures."""

from __future__ import annotations

import base64
import hashlib
import io
import tarfile
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from pathlib import Path

import pytest

from kspenv import Project, ToolchainSpec
from kspenv.backends.inprocess import InProcessBackend

HOST = "x86_64-unknown-linux-gnu"
ALL_HOSTS = (
    "aarch64-unknown-linux-gnu",
    "aarch64-apple-darwin",
    "x86_64-apple-darwin",
    "x86_64-unknown-linux-gnu",
)
COMPONENTS = ("cargo", "rustc", "clippy", "rustfmt", "rust-src")
STD_TARGETS = (HOST, "wasm32-unknown-unknown")
TODAY = date(2022, 3, 10)


def manifest_toml(
    day: str,
    *,
    hosts: Iterable[str] = (HOST,),
    components: Iterable[str] = COMPONENTS,
    unavailable: Iterable[str] = (),
    std_targets: Iterable[str] = STD_TARGETS,
    archives: Mapping[str, tuple[str, str]] | None = None,
) -> str:
    """Render a minimal v2 channel manifest."""
    hosts = tuple(hosts)
    unavailable = set(unavailable)
    archives = dict(archives or {})
    lines = ['manifest-version = "2"', f'date = "{day}"', ""]

    def entry(package: str, triple: str, name: str) -> None:
        lines.append(f'[pkg.{package}.target."{triple}"]')
        if name in unavailable:
            lines.append("available = false")
        else:
            url, digest = archives.get(name, (f"https://example.invalid/{day}/{name}.tar.gz", "0" * 64))
            lines.extend(["available = true", f'url = "{url}"', f'hash = "{digest}"'])
        lines.append("")

    for name in components:
        for triple in ("*",) if name == "rust-src" else hosts:
            entry(name, triple, name)
    for target in std_targets:
        entry("rust-std", target, f"rust-std-{target}")
    return "\n".join(lines)


def sri(path: Path) -> str:
    return "sha256-" + base64.b64encode(hashlib.sha256(path.read_bytes()).digest()).decode("ascii")


@dataclass
class Dist:
    """A ``file://`` stand-in for the Rust dist server."""

    root: Path

    @property
    def uri(self) -> str:
        return self.root.as_uri()

    def publish(self, text: str, *, day: str | None = None, channel: str = "nightly") -> Path:
        directory = self.root / day if day else self.root
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"channel-rust-{channel}.toml"
        path.write_text(text, encoding="utf-8")
        return path

    def archive(self, component: str, files: Mapping[str, str]) -> tuple[str, str]:
        """Write a dist-style component tarball; return its URL and hex digest."""
        top = f"{component}-nightly-{HOST}"
        members: dict[str, bytes] = {
            f"{top}/components": f"{component}\n".encode(),
            f"{top}/{component}/manifest.in": "".join(f"file:{rel}\n" for rel in files).encode(),
        }
        for rel, content in files.items():
            members[f"{top}/{component}/{rel}"] = content.encode()

        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            for name, payload in members.items():
                info = tarfile.TarInfo(name)
                info.size = len(payload)
                info.mtime = 0
                tar.addfile(info, io.BytesIO(payload))
        path = self.root / "archives" / f"{component}.tar.gz"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(buffer.getvalue())
        return path.as_uri(), hashlib.sha256(path.read_bytes()).hexdigest()


@pytest.fixture
def dist(tmp_path: Path) -> Dist:
    return Dist(tmp_path / "dist")


@pytest.fixture
def pinned_spec(dist: Dist) -> ToolchainSpec:
    manifest = dist.publish(manifest_toml("2022-03-01", hosts=ALL_HOSTS))
    return ToolchainSpec.pinned("nightly", sha256=sri(manifest), components=COMPONENTS)


@pytest.fixture
def kspacker(tmp_path: Path, dist: Dist, pinned_spec: ToolchainSpec) -> Project:
    """A kspacker-shaped project resolved against the local dist root."""
    root = tmp_path / "kspacker"
    root.mkdir()
    (root / "proton-steam-comptime.txt").write_text("/opt/example/path\n", encoding="utf-8")
    project = Project(
        name="kspacker",
        root=root,
        state_dir=tmp_path / "state",
        dist_root=dist.uri,
        today=lambda: TODAY,
    )
    project.toolchain(pinned_spec)
    project.build_tools("pkg-config")
    project.libraries("openssl")
    project.features("proton-steam-comptime")
    project.env_file("PROTON_PATH_OVR", "proton-steam-comptime.txt")
    project.dev_tools("rust-analyzer-nightly", "valgrind")
    return project


@pytest.fixture
def inprocess_backend(tmp_path: Path) -> InProcessBackend:
    """Provide an in-process backend for tests that build or enter shells."""
    return InProcessBackend(build_dir=tmp_path / "inprocess")
