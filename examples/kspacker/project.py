"""kspacker: release package and development shell for every default system.

Usage:
    kspenv --project examples/kspacker/project.py show
    kspenv --project examples/kspacker/project.py emit --systems x86_64-linux aarch64-darwin
"""

from pathlib import Path

from kspenv import Project, ToolchainSpec

HERE = Path(__file__).resolve().parent

NIGHTLY = ToolchainSpec.pinned(
    "nightly",
    sha256="sha256-o0S6q8Wi8rrPQpm6nFvmlSkqCnRGi3YSLvrKUqTvKPM=",
    components=("cargo", "rustc", "clippy", "rustfmt", "rust-src"),
)


def build_project() -> Project:
    project = Project(name="kspacker", root=HERE)
    project.toolchain(NIGHTLY)
    project.build_tools("pkg-config")
    project.libraries("openssl")
    project.features("proton-steam-comptime")
    project.env_file("PROTON_PATH_OVR", "proton-steam-comptime.txt")
    project.dev_tools("rust-analyzer-nightly", "exa", "fd", "valgrind", "massif-visualizer")
    return project


if __name__ == "__main__":
    build_project().emit_flake()
