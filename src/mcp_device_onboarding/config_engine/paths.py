"""Dotted property paths and declaration pointers.

A PropertyPath addresses a value inside nested dicts ("authentication.password").
A pointer is a declaration string starting with "/" that names another node of
the same declaration ("/Common/myVlan/tag").
"""
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class PropertyPath:
    """Immutable sequence of keys into a nested dict."""
    segments: tuple[str, ...]

    @classmethod
    def from_dotted(cls, dotted: str) -> "PropertyPath":
        return cls(tuple(dotted.split(".")))

    def __str__(self) -> str:
        return ".".join(self.segments)

    def __len__(self) -> int:
        return len(self.segments)

    @property
    def head(self) -> str:
        return self.segments[0]

    def drop(self, count: int) -> "PropertyPath":
        """Path without its first `count` segments."""
        return PropertyPath(self.segments[count:])

    def child(self, *segments: str) -> "PropertyPath":
        return PropertyPath(self.segments + segments)

    def get(self, obj: Any, default: Any = None) -> Any:
        """Value at this path, or default when any segment is missing."""
        current = obj
        for segment in self.segments:
            if not isinstance(current, dict) or segment not in current:
                return default
            current = current[segment]
        return current

    def set(self, obj: dict, value: Any) -> None:
        """Set the value, creating intermediate dicts as needed."""
        current = obj
        for segment in self.segments[:-1]:
            if not isinstance(current.get(segment), dict):
                current[segment] = {}
            current = current[segment]
        current[self.segments[-1]] = value

    def delete(self, obj: dict) -> bool:
        """Remove the value; returns True when something was removed."""
        current = obj
        for segment in self.segments[:-1]:
            current = current.get(segment) if isinstance(current, dict) else None
            if current is None:
                return False
        if isinstance(current, dict) and self.segments[-1] in current:
            del current[self.segments[-1]]
            return True
        return False


def dereference_pointer(document: Any, pointer: str) -> Optional[Any]:
    """Resolve a "/"-separated pointer against a declaration.

    Empty segments are skipped, so "/Common/vlan" and "Common/vlan" resolve
    alike. Returns None when the pointer leads nowhere.
    """
    value = document
    for key in pointer.split("/"):
        if not key:
            continue
        if isinstance(value, dict):
            value = value.get(key)
        elif isinstance(value, list) and key.isdigit() and int(key) < len(value):
            value = value[int(key)]
        else:
            return None
        if value is None:
            return None
    return value
