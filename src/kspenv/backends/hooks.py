"""Local implementations of packaging hooks.

Hooks post-process built binaries during packaging; they never run at
program runtime.
"""

from __future__ import annotations

import os
import shlex
from collections.abc import Callable, Iterable
from pathlib import Path

HookHandler = Callable[[Path, Iterable[Path]], Path]


def wrap_gapps(program: Path, prefixes: Iterable[Path]) -> Path:
    """Move ``program`` aside and write a launcher exporting GUI search paths.

    Follows the ``.<name>-wrapped`` convention of the Nix ``wrapGAppsHook``.
    """
    ordered = list(dict.fromkeys(Path(item) for item in prefixes))
    data_dirs = [str(item / "share") for item in ordered if (item / "share").is_dir()]
    typelibs = [
        str(item / "lib" / "girepository-1.0")
        for item in ordered
        if (item / "lib" / "girepository-1.0").is_dir()
    ]
    libs = [str(item / "lib") for item in ordered if (item / "lib").is_dir()]

    wrapped = program.with_name(f".{program.name}-wrapped")
    os.replace(program, wrapped)

    lines = ["#!/bin/sh"]
    for variable, entries in (
        ("XDG_DATA_DIRS", data_dirs),
        ("GI_TYPELIB_PATH", typelibs),
        ("LD_LIBRARY_PATH", libs),
    ):
        if entries:
            joined = shlex.quote(":".join(entries))
            lines.append(f"export {variable}={joined}\"${{{variable}:+:${variable}}}\"")
    lines.append(f'exec {shlex.quote(str(wrapped))} "$@"')
    program.write_text("\n".join(lines) + "\n", encoding="utf-8")
    program.chmod(0o755)
    return program


HOOK_HANDLERS: dict[str, HookHandler] = {
    "wrapGAppsHook": wrap_gapps,
    "wrapGAppsHook3": wrap_gapps,
}
