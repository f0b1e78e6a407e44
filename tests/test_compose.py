from kspenv.compose import DEFAULT_GUI_LIBRARIES, ComposeOptions, compose_dependencies
from kspenv.models import Toolchain


def _toolchain() -> Toolchain:
    return Toolchain(
        channel="nightly",
        date="2022-03-01",
        manifest_sha256="ab" * 32,
        host="x86_64-unknown-linux-gnu",
        components=(),
    )


def test_compose_preserves_declared_order_with_toolchain_first() -> None:
    deps = compose_dependencies(
        _toolchain(),
        ComposeOptions(build_tools=("pkg-config", "cmake"), libraries=("openssl", "zlib")),
    )

    assert deps.to_payload()["tools"] == ["rust-nightly-2022-03-01", "pkg-config", "cmake"]
    assert deps.to_payload()["libraries"] == ["openssl", "zlib", *DEFAULT_GUI_LIBRARIES]
    assert deps.to_payload()["hooks"] == ["wrapGAppsHook"]
    assert deps.tools[0].kind == "toolchain"


def test_compose_dedupes_repeated_names() -> None:
    deps = compose_dependencies(
        _toolchain(),
        ComposeOptions(
            build_tools=("pkg-config", "pkg-config"),
            libraries=("glib", "openssl", "glib"),
        ),
    )

    assert deps.to_payload()["libraries"] == ["glib", "openssl", "pango", "gdk-pixbuf", "atk", "gtk3"]
    assert deps.to_payload()["tools"].count("pkg-config") == 1


def test_compose_can_drop_gui_dependencies() -> None:
    deps = compose_dependencies(
        _toolchain(),
        ComposeOptions(libraries=("openssl",), include_gui_deps=False),
    )

    assert deps.to_payload() == {
        "tools": ["rust-nightly-2022-03-01"],
        "libraries": ["openssl"],
        "hooks": [],
    }


def test_compose_keeps_name_used_as_tool_and_library_once() -> None:
    deps = compose_dependencies(
        _toolchain(),
        ComposeOptions(
            build_tools=("pkg-config", "openssl"),
            libraries=("openssl", "zlib"),
            include_gui_deps=False,
        ),
    )

    assert deps.to_payload()["tools"] == ["rust-nightly-2022-03-01", "pkg-config", "openssl"]
    assert deps.to_payload()["libraries"] == ["zlib"]
    assert deps.names().count("openssl") == 1


def test_inputs_list_tools_before_libraries() -> None:
    deps = compose_dependencies(
        _toolchain(),
        ComposeOptions(build_tools=("pkg-config",), libraries=("openssl",), include_gui_deps=False),
    )

    assert deps.names() == ("rust-nightly-2022-03-01", "pkg-config", "openssl")
