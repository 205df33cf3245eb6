"""Workflow scope: the shared key-value state of one session.

Steps read from and write to a single Scope. Parallel blocks run each branch
against a copy-on-branch child scope that records which keys it wrote, so the
branches never race on the parent and can be merged back deterministically.
"""

import copy
import threading
from typing import Any, Callable, Iterator, Mapping

_MISSING = object()


class Scope:
    """Thread-safe workflow state store.

    Example:
        scope = Scope({"topic": "dragons"})

        scope.write("story", "Once upon a time...")
        story = scope.read("story")

        branch = scope.branch()
        branch.write("score", 0.8)
        scope.merge(branch)
    """

    def __init__(
        self,
        initial_data: Mapping[str, Any] | None = None,
        on_change: Callable[[str, Any, Any], None] | None = None,
    ):
        """Initialize the scope.

        Args:
            initial_data: Initial state data.
            on_change: Callback on each write (key, old_value, new_value).
        """
        self._data: dict[str, Any] = dict(initial_data or {})
        self._written: list[str] = []
        self._version = 0
        self._on_change = on_change
        self._lock = threading.RLock()

    @property
    def version(self) -> int:
        """Number of writes applied so far."""
        with self._lock:
            return self._version

    def read(self, key: str, default: Any = None) -> Any:
        """Read a value, returning default when the key is absent."""
        with self._lock:
            return self._data.get(key, default)

    def write(self, key: str, value: Any) -> None:
        """Write a single value."""
        with self._lock:
            old_value = self._data.get(key)
            self._data[key] = value
            self._version += 1
            if key not in self._written:
                self._written.append(key)
        if self._on_change:
            self._on_change(key, old_value, value)

    def write_all(self, values: Mapping[str, Any]) -> None:
        """Write several values, in mapping order."""
        for key, value in values.items():
            self.write(key, value)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.contains(key)

    def __getitem__(self, key: str) -> Any:
        value = self.read(key, _MISSING)
        if value is _MISSING:
            raise KeyError(key)
        return value

    def get(self, key: str, default: Any = None) -> Any:
        return self.read(key, default)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data.keys())

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def state(self) -> dict[str, Any]:
        """Deep-copied snapshot of the current state."""
        with self._lock:
            return safe_deepcopy(self._data)

    def delta(self) -> dict[str, Any]:
        """Values written through this scope, in first-write order."""
        with self._lock:
            return {key: self._data[key] for key in self._written if key in self._data}

    def branch(self) -> "Scope":
        """Create an isolated child scope seeded with a copy of this state."""
        with self._lock:
            return Scope(safe_deepcopy(self._data))

    def merge(self, child: "Scope") -> list[str]:
        """Apply the values a child branch wrote.

        Args:
            child: A scope produced by branch().

        Returns:
            Keys that were merged.
        """
        changes = child.delta()
        self.write_all(changes)
        return list(changes.keys())

    def to_dict(self) -> dict[str, Any]:
        """Shallow copy of the current state."""
        with self._lock:
            return dict(self._data)

    def __repr__(self) -> str:
        return f"Scope(keys={self.keys()!r}, version={self.version})"


def safe_deepcopy(data: dict[str, Any]) -> dict[str, Any]:
    """Deep copy values where possible; share values that refuse to be copied."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        try:
            result[key] = copy.deepcopy(value)
        except Exception:
            result[key] = value
    return result
