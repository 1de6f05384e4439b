"""A set of strings that serialises as a sorted JSON array."""

from __future__ import annotations

import json
from collections.abc import Iterable

_HTML_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


class MapAsSlice(set):
    """Key-only collection of strings, written out as a sorted array."""

    def add(self, k: str) -> None:
        super().add(k)

    def add_map(self, other: Iterable[str]) -> None:
        """Add every key of another collection."""
        self.update(other)

    def add_slice(self, other: Iterable[str]) -> None:
        """Add every string of a sequence."""
        self.update(other)

    def set_slice(self, v: Iterable[str]) -> None:
        """Replace the contents with the strings of a sequence."""
        self.clear()
        self.update(v)

    def clone(self) -> MapAsSlice:
        """Return an independent copy."""
        return MapAsSlice(self)

    def slice(self) -> list[str]:
        """Return the keys as a sorted list."""
        return sorted(self)

    def to_json(self) -> str:
        """Serialise as a compact, HTML-safe JSON array of sorted keys."""
        text = json.dumps(self.slice(), ensure_ascii=False, separators=(",", ":"))
        return text.translate(_HTML_ESCAPES)

    @classmethod
    def from_json(cls, data: str | bytes) -> MapAsSlice | None:
        """Read a JSON array of strings; ``null`` yields None."""
        value = json.loads(data)
        if value is None:
            return None
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError("expected a JSON array of strings")
        return cls(value)