from __future__ import annotations

import threading
from types import MappingProxyType
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Hashable, Mapping


class BindingRegistry:
    """Maps a type to the single instance bound to it.

    A later `put` for the same key replaces the earlier instance. `snapshot`
    returns an immutable copy that can be iterated while other threads keep
    registering.
    """

    def __init__(self) -> None:
        self._instances: dict[Hashable, object] = {}
        self._lock = threading.Lock()

    def put(self, key: Hashable, value: object) -> None:
        if value is None:
            msg = f"Cannot bind {key!r} to None."
            raise ValueError(msg)

        with self._lock:
            self._instances[key] = value

    def get(self, key: Hashable) -> Any:
        with self._lock:
            return self._instances.get(key)

    def snapshot(self) -> Mapping[Hashable, object]:
        with self._lock:
            return MappingProxyType(dict(self._instances))

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._instances

    def __len__(self) -> int:
        with self._lock:
            return len(self._instances)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self)} bindings)"
