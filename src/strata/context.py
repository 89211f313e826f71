"""Per-request execution context.

The context is created fresh for every request, seeded with caller values
and extended by ON_CONTEXT_BUILDING hooks in plugin order. Once context
building finishes the orchestrator seals it: top-level keys can no longer
be added, replaced or removed. Values stored under a key stay mutable, so a
plugin may keep updating a nested structure it owns.

Resolvers may read the context concurrently while sibling fields resolve;
all writes to top-level keys happen before execution starts.

Example:
    ctx = ExecutionContext({"request_id": "abc"})
    ctx.extend({"user": user})

    ctx.get("user")        # user
    ctx.get("missing")     # ABSENT
    ctx.seal()
    ctx["user"] = None     # raises ContractViolation
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any

from strata.errors import ContractViolation


class _Absent:
    """Marker for keys that were never set."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT: Any = _Absent()


class ExecutionContext(MutableMapping[str, Any]):
    """Mapping of string keys to request-scoped values."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = {}
        self._sealed = False
        if initial:
            self.extend(initial)

    @property
    def sealed(self) -> bool:
        """True once context building has completed."""
        return self._sealed

    def seal(self) -> None:
        """Make top-level keys read-only for the rest of the request."""
        self._sealed = True

    def extend(self, values: Mapping[str, Any]) -> None:
        """Merge values into the context. Later writers win.

        Raises:
            ContractViolation: If the context is sealed
        """
        self._check_writable()
        for key, value in values.items():
            if not isinstance(key, str):
                raise ContractViolation(f"Context keys must be strings, got {key!r}")
            self._values[key] = value

    def get(self, key: str, default: Any = ABSENT) -> Any:
        """Get a value, returning ABSENT when the key was never set."""
        return self._values.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        """Shallow copy of the current values."""
        return dict(self._values)

    def _check_writable(self) -> None:
        if self._sealed:
            raise ContractViolation(
                "Execution context is sealed after context building; "
                "top-level keys cannot change"
            )

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.extend({key: value})

    def __delitem__(self, key: str) -> None:
        self._check_writable()
        del self._values[key]

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __getattr__(self, name: str) -> Any:
        # Only reached for names that are not real attributes
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._values[name]
        except KeyError:
            raise AttributeError(name) from None

    def __repr__(self) -> str:
        state = "sealed" if self._sealed else "open"
        return f"ExecutionContext({self._values!r}, {state})"
