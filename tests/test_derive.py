from pathlib import Path

import pytest

from kspenv.compose import ComposeOptions, compose_dependencies
from kspenv.derive import build_flags, derive_all, derive_outputs, effective_features
from kspenv.errors import ValidationError
from kspenv.models import BuildOptions, Outputs, Toolchain


def _toolchain(date: str = "2022-03-01") -> Toolchain:
    return Toolchain(
        channel="nightly",
        date=date,
        manifest_sha256="ab" * 32,
        host="x86_64-unknown-linux-gnu",
        components=(),
    )


def _derive(
    *,
    features: tuple[str, ...] = ("proton-steam-comptime",),
    env: dict[str, str] | None = None,
    dev_tools: tuple[str, ...] = ("rust-analyzer-nightly",),
) -> Outputs:
    toolchain = _toolchain()
    return derive_outputs(
        "x86_64-linux",
        toolchain=toolchain,
        dependencies=compose_dependencies(
            toolchain,
            ComposeOptions(build_tools=("pkg-config",), libraries=("openssl",)),
        ),
        build_options=BuildOptions(
            pname="kspacker",
            root=Path("/src/kspacker"),
            features=features,
            env={"PROTON_PATH_OVR": "/opt/example/path\n"} if env is None else env,
        ),
        dev_tools=dev_tools,
    )


def test_package_and_shell_share_toolchain_dependencies_and_env() -> None:
    outputs = _derive()

    assert outputs.package.toolchain == outputs.shell.toolchain
    assert outputs.package.dependencies == outputs.shell.dependencies
    assert outputs.package.env == outputs.shell.env == {"PROTON_PATH_OVR": "/opt/example/path\n"}


def test_shell_adds_dev_tools_on_top_of_package_inputs() -> None:
    outputs = _derive(dev_tools=("rust-analyzer-nightly", "pkg-config", "valgrind"))

    names = [item.name for item in outputs.shell.inputs]
    assert names[: len(outputs.package.dependencies.inputs)] == list(
        outputs.package.dependencies.names(),
    )
    assert [item.name for item in outputs.shell.dev_tools] == ["rust-analyzer-nightly", "valgrind"]
    assert outputs.shell.shell_hook == 'echo "Loaded devshell"'


def test_features_are_appended_to_default_build_options() -> None:
    outputs = _derive(features=("alpha",))

    assert outputs.package.build_flags == ("--release", "--locked", "--features", "alpha")
    assert outputs.package.effective_features == ("default", "alpha")


def test_no_features_means_defaults_only() -> None:
    outputs = _derive(features=())

    assert outputs.package.build_flags == ("--release", "--locked")
    assert outputs.package.effective_features == ("default",)


def test_build_flags_join_features_with_commas() -> None:
    options = BuildOptions(pname="x", root=Path("."), features=("a", "b"))

    assert build_flags(options)[-2:] == ("--features", "a,b")
    assert effective_features(options) == ("default", "a", "b")


def test_main_program_names_the_package_binary() -> None:
    assert _derive().package.main_program == "bin/kspacker"


def test_derivation_is_deterministic() -> None:
    first = _derive()
    second = _derive()

    assert first == second
    assert first.spec_bytes() == second.spec_bytes()
    assert first.digest() == second.digest()


def test_digest_changes_with_env_value() -> None:
    assert _derive().digest() != _derive(env={"PROTON_PATH_OVR": "/other"}).digest()


def test_outputs_to_json_writes_payload(tmp_path: Path) -> None:
    path = tmp_path / "outputs.json"

    encoded = _derive().to_json(path)

    assert path.read_text(encoding="utf-8") == encoded
    assert '"pname": "kspacker"' in encoded


def test_derive_all_preserves_system_order_and_isolation() -> None:
    seen: list[str] = []

    def derive(system: str) -> Outputs:
        seen.append(system)
        base = _derive()
        return Outputs(system=system, package=base.package, shell=base.shell)

    outputs = derive_all(("x86_64-linux", "aarch64-darwin", "x86_64-linux"), derive)

    assert list(outputs) == ["x86_64-linux", "aarch64-darwin"]
    assert seen == ["x86_64-linux", "aarch64-darwin"]


def test_derive_all_requires_a_system() -> None:
    with pytest.raises(ValidationError):
        derive_all((), lambda system: _derive())
