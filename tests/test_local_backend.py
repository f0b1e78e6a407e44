import subprocess
from pathlib import Path
from typing import Any

import pytest

from kspenv import Project
from kspenv.backends import LocalBackend, merge_env, search_path_env
from kspenv.errors import BuildError, ValidationError
from kspenv.models import Toolchain
from kspenv.resolvers import StaticResolver

GUI_NAMES = ("glib", "pango", "gdk-pixbuf", "atk", "gtk3")


def _prefix(root: Path, name: str, *subdirs: str) -> Path:
    prefix = root / name
    for subdir in subdirs:
        (prefix / subdir).mkdir(parents=True, exist_ok=True)
    return prefix


def _backend(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> LocalBackend:
    store = tmp_path / "store"
    toolchain_prefix = _prefix(store, "toolchain", "bin", "lib")
    monkeypatch.setattr(LocalBackend, "prepare", lambda self, toolchain: toolchain_prefix)
    prefixes = {
        "pkg-config": _prefix(store, "pkg-config", "bin"),
        "openssl": _prefix(store, "openssl", "lib/pkgconfig", "include"),
        "rust-analyzer-nightly": _prefix(store, "rust-analyzer-nightly", "bin"),
        "valgrind": _prefix(store, "valgrind", "bin"),
    }
    for name in GUI_NAMES:
        prefixes[name] = _prefix(store, name, "lib", "share")
    return LocalBackend(
        resolver=StaticResolver(prefixes),
        state_dir=tmp_path / "state",
        inherit_env={"PATH": "/usr/bin", "HOME": "/home/dev"},
    )


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> Any:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_search_path_env_only_includes_existing_dirs(tmp_path: Path) -> None:
    first = _prefix(tmp_path, "a", "bin", "lib/pkgconfig")
    second = _prefix(tmp_path, "b", "bin", "share")

    env = search_path_env([first, second, first])

    assert env["PATH"] == f"{first}/bin:{second}/bin"
    assert env["PKG_CONFIG_PATH"] == f"{first}/lib/pkgconfig"
    assert env["XDG_DATA_DIRS"] == f"{second}/share"
    assert "LIBRARY_PATH" not in env


def test_merge_env_prepends_search_paths_and_declared_values_win() -> None:
    merged = merge_env(
        {"PATH": "/usr/bin", "PROTON_PATH_OVR": "inherited"},
        {"PATH": "/store/bin", "PKG_CONFIG_PATH": "/store/lib/pkgconfig"},
        {"PROTON_PATH_OVR": "/opt/example/path\n"},
    )

    assert merged == {
        "PATH": "/store/bin:/usr/bin",
        "PKG_CONFIG_PATH": "/store/lib/pkgconfig",
        "PROTON_PATH_OVR": "/opt/example/path\n",
    }


def test_local_build_runs_cargo_with_composed_environment(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    kspacker: Project,
) -> None:
    backend = _backend(tmp_path, monkeypatch)
    package = kspacker.outputs("x86_64-linux").package
    calls: list[dict[str, Any]] = []

    def fake_run(argv: list[str], **kwargs: Any) -> Any:
        calls.append({"argv": argv, **kwargs})
        program = Path(kwargs["cwd"]) / "target" / "release" / "kspacker"
        program.parent.mkdir(parents=True, exist_ok=True)
        program.write_text("binary", encoding="utf-8")
        return _completed(stdout="Finished release")

    monkeypatch.setattr("kspenv.backends.local.subprocess.run", fake_run)

    result = backend.build(package)

    assert calls[0]["argv"] == [
        "cargo",
        "build",
        "--release",
        "--locked",
        "--features",
        "proton-steam-comptime",
    ]
    env = calls[0]["env"]
    store = tmp_path / "store"
    assert env["PATH"] == f"{store}/toolchain/bin:{store}/pkg-config/bin:/usr/bin"
    assert env["PKG_CONFIG_PATH"] == f"{store}/openssl/lib/pkgconfig"
    assert env["PROTON_PATH_OVR"] == "/opt/example/path\n"
    assert env["HOME"] == "/home/dev"
    assert f"{store}/rust-analyzer-nightly/bin" not in env["PATH"]
    assert result.program == kspacker.root / "target" / "release" / "kspacker"
    assert result.stdout == "Finished release"


def test_local_build_applies_gapps_wrapper(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    kspacker: Project,
) -> None:
    backend = _backend(tmp_path, monkeypatch)

    def fake_run(argv: list[str], **kwargs: Any) -> Any:
        program = Path(kwargs["cwd"]) / "target" / "release" / "kspacker"
        program.parent.mkdir(parents=True, exist_ok=True)
        program.write_text("binary", encoding="utf-8")
        return _completed()

    monkeypatch.setattr("kspenv.backends.local.subprocess.run", fake_run)

    result = backend.build(kspacker.outputs("x86_64-linux").package)

    launcher = result.program.read_text(encoding="utf-8")
    assert launcher.startswith("#!/bin/sh\n")
    assert "XDG_DATA_DIRS" in launcher
    assert (result.program.parent / ".kspacker-wrapped").read_text(encoding="utf-8") == "binary"


def test_local_build_failure_surfaces_output_verbatim(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    kspacker: Project,
) -> None:
    backend = _backend(tmp_path, monkeypatch)
    stderr = "error[E0425]: cannot find value `x` in this scope\n --> src/main.rs:2:5\n"
    monkeypatch.setattr(
        "kspenv.backends.local.subprocess.run",
        lambda argv, **kwargs: _completed(returncode=101, stdout="Compiling kspacker", stderr=stderr),
    )

    with pytest.raises(BuildError) as excinfo:
        backend.build(kspacker.outputs("x86_64-linux").package)

    assert excinfo.value.code == "E_BUILD"
    assert excinfo.value.context["stderr"] == stderr
    assert excinfo.value.context["stdout"] == "Compiling kspacker"
    assert excinfo.value.context["returncode"] == "101"


def test_local_build_requires_program_output(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    kspacker: Project,
) -> None:
    backend = _backend(tmp_path, monkeypatch)
    monkeypatch.setattr("kspenv.backends.local.subprocess.run", lambda argv, **kwargs: _completed())

    with pytest.raises(BuildError) as excinfo:
        backend.build(kspacker.outputs("x86_64-linux").package)

    assert excinfo.value.context["expected"].endswith("target/release/kspacker")


def test_local_build_rejects_hooks_without_handler(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    kspacker: Project,
) -> None:
    backend = _backend(tmp_path, monkeypatch)
    kspacker.hooks("autoPatchelfHook")

    def fail_run(argv: list[str], **kwargs: Any) -> Any:
        raise AssertionError("cargo must not run")

    monkeypatch.setattr("kspenv.backends.local.subprocess.run", fail_run)

    with pytest.raises(ValidationError) as excinfo:
        backend.build(kspacker.outputs("x86_64-linux").package)

    assert excinfo.value.context["hooks"] == "autoPatchelfHook"


def test_local_shell_runs_hook_with_dev_tools_on_path(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    kspacker: Project,
) -> None:
    backend = _backend(tmp_path, monkeypatch)
    calls: list[dict[str, Any]] = []

    def fake_run(argv: list[str], **kwargs: Any) -> Any:
        calls.append({"argv": argv, **kwargs})
        return _completed()

    monkeypatch.setattr("kspenv.backends.local.subprocess.run", fake_run)

    session = backend.enter_shell(kspacker.outputs("x86_64-linux").shell)

    assert session.returncode == 0
    assert calls[0]["argv"][:2] == ["/bin/sh", "-c"]
    assert calls[0]["argv"][2].startswith('echo "Loaded devshell"\n')
    assert f"{tmp_path}/store/rust-analyzer-nightly/bin" in calls[0]["env"]["PATH"]
    assert calls[0]["env"]["PROTON_PATH_OVR"] == "/opt/example/path\n"


def test_local_prepare_installs_into_state_dir(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    seen: dict[str, Any] = {}

    def fake_install(toolchain: Toolchain, **kwargs: Any) -> Path:
        seen.update(kwargs)
        return kwargs["root"] / toolchain.identity

    monkeypatch.setattr("kspenv.backends.local.install_toolchain", fake_install)
    toolchain = Toolchain(
        channel="nightly",
        date="2022-03-01",
        manifest_sha256="ab" * 32,
        host="x86_64-unknown-linux-gnu",
        components=(),
    )

    prefix = LocalBackend(state_dir=tmp_path / "state").prepare(toolchain)

    assert prefix == tmp_path / "state" / "toolchains" / toolchain.identity
    assert seen["cache_dir"] == tmp_path / "state" / "cache"
