"""Environment composition: toolchain plus native dependencies and build hooks."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from kspenv.models import Dependency, DependencyKind, DependencySet, Toolchain, ordered_unique

DEFAULT_GUI_LIBRARIES: tuple[str, ...] = ("glib", "pango", "gdk-pixbuf", "atk", "gtk3")
DEFAULT_GUI_HOOKS: tuple[str, ...] = ("wrapGAppsHook",)


@dataclass(frozen=True, slots=True)
class ComposeOptions:
    build_tools: tuple[str, ...] = ()
    libraries: tuple[str, ...] = ()
    hooks: tuple[str, ...] = ()
    include_gui_deps: bool = True
    gui_libraries: tuple[str, ...] = DEFAULT_GUI_LIBRARIES
    gui_hooks: tuple[str, ...] = DEFAULT_GUI_HOOKS


def compose_dependencies(toolchain: Toolchain, options: ComposeOptions) -> DependencySet:
    """Return the ordered, deduplicated dependency set for one toolchain.

    Order is preserved exactly as declared (toolchain first, then build tools;
    libraries before GUI libraries) since linker resolution is order-sensitive.
    A name declared both as a tool and as a library is kept once, as a tool.
    """
    tools = tuple(dict.fromkeys((toolchain.as_dependency(), *_deps(options.build_tools, kind="tool"))))
    tool_names = {item.name for item in tools}
    library_names = list(options.libraries)
    hook_names = list(options.hooks)
    if options.include_gui_deps:
        library_names.extend(options.gui_libraries)
        hook_names.extend(options.gui_hooks)
    return DependencySet(
        tools=tools,
        libraries=_deps((name for name in library_names if name not in tool_names), kind="library"),
        hooks=_deps(hook_names, kind="hook"),
    )


def _deps(names: Iterable[str], *, kind: DependencyKind) -> tuple[Dependency, ...]:
    return tuple(Dependency(name=name, kind=kind) for name in ordered_unique(names))


__all__ = [
    "DEFAULT_GUI_HOOKS",
    "DEFAULT_GUI_LIBRARIES",
    "ComposeOptions",
    "compose_dependencies",
]
