"""Configuration-time text sources.

Files named here are read once per evaluation, as raw bytes decoded as UTF-8.
The text is used verbatim: no stripping, so a trailing newline in the file is
part of the value.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from kspenv.errors import FileReadError


def read_text_config(path: str | Path) -> str:
    source = Path(path)
    try:
        raw = source.read_bytes()
    except FileNotFoundError as exc:
        raise FileReadError(
            "Configuration source file does not exist.",
            hint="Create the file or point the project at the right path.",
            context={"path": str(source)},
        ) from exc
    except OSError as exc:
        raise FileReadError(
            "Configuration source file could not be read.",
            context={"path": str(source), "reason": str(exc)},
        ) from exc
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FileReadError(
            "Configuration source file is not valid UTF-8.",
            context={"path": str(source), "reason": str(exc)},
        ) from exc


@dataclass(slots=True)
class TextConfigSource:
    """Scoped reader that returns the same text for a path within one evaluation."""

    _values: dict[Path, str] | None = field(default=None, init=False, repr=False)

    @contextmanager
    def evaluation(self) -> Iterator[TextConfigSource]:
        previous = self._values
        self._values = {}
        try:
            yield self
        finally:
            self._values = previous

    def read(self, path: str | Path) -> str:
        key = Path(path).resolve()
        if self._values is None:
            return read_text_config(key)
        if key not in self._values:
            self._values[key] = read_text_config(key)
        return self._values[key]
