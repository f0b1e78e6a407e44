"""Latest nightly offering clippy and a wasm target, without GUI libraries."""

from kspenv import Project, ToolchainSpec


def build_project() -> Project:
    project = Project(name="hello")
    project.toolchain(
        ToolchainSpec.floating(
            "nightly",
            components=("cargo", "rustc", "clippy"),
            targets=("wasm32-unknown-unknown",),
        ),
    )
    project.gui(enabled=False)
    project.env("RUST_LOG", "info")
    return project


if __name__ == "__main__":
    project = build_project()
    project.lock()
    print(project.outputs("x86_64-linux", frozen=True).to_json())
