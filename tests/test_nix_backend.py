import subprocess
from pathlib import Path
from typing import Any

import pytest

from kspenv import Project
from kspenv.backends import NixBackend
from kspenv.errors import BuildError


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> Any:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_nix_backend_fails_when_nix_missing(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    kspacker: Project,
) -> None:
    backend = NixBackend(emit_dir=tmp_path / "flake")
    monkeypatch.setattr("kspenv.backends.nix.shutil.which", lambda _: None)

    with pytest.raises(BuildError) as excinfo:
        backend.build(kspacker.outputs("x86_64-linux").package)

    assert "nix" in str(excinfo.value).lower()
    assert excinfo.value.hint is not None
    assert not (tmp_path / "flake").exists()


def test_nix_backend_builds_emitted_flake(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    kspacker: Project,
) -> None:
    backend = NixBackend(emit_dir=tmp_path / "flake", nix_args=["-L"])
    calls: list[list[str]] = []
    monkeypatch.setattr("kspenv.backends.nix.shutil.which", lambda _: "/usr/bin/nix")
    monkeypatch.setattr(
        "kspenv.backends.nix.subprocess.run",
        lambda argv, **kwargs: calls.append(argv) or _completed(stdout="/nix/store/abc-kspacker\n"),
    )

    result = backend.build(kspacker.outputs("x86_64-linux").package)

    flake_dir = (tmp_path / "flake" / "x86_64-linux").resolve()
    assert (flake_dir / "flake.nix").exists()
    assert calls[0][:3] == ["nix", "build", "--impure"]
    assert "-L" in calls[0]
    assert calls[0][-1] == f"path:{flake_dir}#packages.x86_64-linux.kspacker"
    assert result.program == flake_dir / "result-x86_64-linux" / "bin" / "kspacker"
    assert result.env == {"PROTON_PATH_OVR": "/opt/example/path\n"}


def test_nix_backend_failure_surfaces_output_verbatim(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    kspacker: Project,
) -> None:
    backend = NixBackend(emit_dir=tmp_path / "flake")
    stderr = "error: builder for '/nix/store/xyz-kspacker.drv' failed with exit code 101\n"
    monkeypatch.setattr("kspenv.backends.nix.shutil.which", lambda _: "/usr/bin/nix")
    monkeypatch.setattr(
        "kspenv.backends.nix.subprocess.run",
        lambda argv, **kwargs: _completed(returncode=1, stderr=stderr),
    )

    with pytest.raises(BuildError) as excinfo:
        backend.build(kspacker.outputs("x86_64-linux").package)

    assert excinfo.value.context["stderr"] == stderr


def test_nix_backend_enters_dev_shell(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    kspacker: Project,
) -> None:
    backend = NixBackend(emit_dir=tmp_path / "flake")
    calls: list[list[str]] = []
    monkeypatch.setattr("kspenv.backends.nix.shutil.which", lambda _: "/usr/bin/nix")
    monkeypatch.setattr(
        "kspenv.backends.nix.subprocess.run",
        lambda argv, **kwargs: calls.append(argv) or _completed(),
    )

    session = backend.enter_shell(kspacker.outputs("aarch64-darwin").shell)

    flake = (tmp_path / "flake" / "aarch64-darwin" / "flake.nix").read_text(encoding="utf-8")
    assert session.returncode == 0
    assert calls[0][:2] == ["nix", "develop"]
    assert calls[0][-1].endswith("#devShells.aarch64-darwin.default")
    assert "devShells" in flake
    assert "naersk-lib.buildPackage" not in flake
