"""Key/value persistence protocol."""
from typing import Any, Protocol


class KeyValueStore(Protocol):
    """Durable storage that survives process restarts."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...
