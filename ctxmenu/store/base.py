"""The Store Accessor contract.

Handles are context managers so every acquisition is released on every
exit path. ``subpath`` is a child path relative to a handle, ``""`` being
the handle itself; ``value_name`` ``""`` is the unnamed default value.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence


class StoreHandle(ABC):
    """An open collection or entry in the store."""

    @abstractmethod
    def close(self) -> None:
        """Release the handle. Safe to call more than once."""

    def __enter__(self) -> "StoreHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class StoreAccessor(ABC):
    """Raw read/enumerate/create/delete operations on the store."""

    @abstractmethod
    def open_root(self, writable: bool = False) -> StoreHandle:
        """Open the root collection. Raises StoreUnavailable if absent."""

    @abstractmethod
    def list_children(self, handle: StoreHandle) -> Sequence[str]:
        """Names of the direct children of ``handle``."""

    @abstractmethod
    def open_child(self, handle: StoreHandle, name: str) -> StoreHandle:
        """Open a direct child. Raises NotFound."""

    @abstractmethod
    def create_child(self, handle: StoreHandle, name: str) -> StoreHandle:
        """Create a direct child, or open it if it already exists."""

    @abstractmethod
    def delete_child_tree(self, handle: StoreHandle, name: str) -> None:
        """Delete a direct child and its whole subtree. Raises NotFound."""

    @abstractmethod
    def get_string_value(self, handle: StoreHandle, subpath: str, value_name: str) -> str:
        """Read a string value. Raises NotFound or WrongType."""

    @abstractmethod
    def set_string_value(
        self, handle: StoreHandle, subpath: str, value_name: str, value: str
    ) -> None:
        """Write a string value, creating ``subpath`` if needed."""

    @abstractmethod
    def has_attribute(self, handle: StoreHandle, attribute_name: str) -> bool:
        """Whether ``handle`` carries a value named ``attribute_name``."""
