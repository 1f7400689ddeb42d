"""In-memory store with registry semantics, and a JSON-file-backed variant.

Child names are matched case-insensitively and stored with their original
case, as the registry does. Every mutating call is appended to ``ops`` so
callers can see exactly which creates and deletes were issued.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Optional

from ctxmenu.errors import NotFound, PermissionDenied, StoreUnavailable, WrongType
from ctxmenu.store.base import StoreAccessor, StoreHandle

logger = logging.getLogger(__name__)

STRING = "string"


class _Node:
    """One key: typed values plus named children."""

    def __init__(self) -> None:
        self.values: dict[str, tuple[str, Any]] = {}
        self.children: dict[str, _Node] = {}

    def find(self, name: str) -> tuple[str, "_Node"] | None:
        folded = name.casefold()
        for child_name, child in self.children.items():
            if child_name.casefold() == folded:
                return child_name, child
        return None

    def to_dict(self) -> dict:
        return {
            "values": {k: {"kind": kind, "data": data} for k, (kind, data) in self.values.items()},
            "children": {k: c.to_dict() for k, c in self.children.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "_Node":
        """Rebuild a tree; raises ValueError if ``data`` has the wrong shape."""
        values = data.get("values", {}) if isinstance(data, dict) else None
        children = data.get("children", {}) if isinstance(data, dict) else None
        if not isinstance(values, dict) or not isinstance(children, dict):
            raise ValueError("key must be a mapping with 'values' and 'children' mappings")
        node = cls()
        for name, value in values.items():
            if not isinstance(value, dict):
                raise ValueError(f"value {name!r} must be a mapping")
            node.values[name] = (value.get("kind", STRING), value.get("data"))
        for name, child in children.items():
            node.children[name] = cls.from_dict(child)
        return node


class MemoryHandle(StoreHandle):
    def __init__(self, node: _Node, path: str, writable: bool, on_close=None) -> None:
        self.node = node
        self.path = path
        self.writable = writable
        self.closed = False
        self._on_close = on_close

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._on_close is not None:
            self._on_close(self)


class MemoryStore(StoreAccessor):
    """A StoreAccessor over an in-process tree.

    Args:
        root_exists: Whether the root collection is present.
        deny_writes: Reject every write with PermissionDenied, as a store
            opened without sufficient rights would.
    """

    def __init__(self, root_exists: bool = True, deny_writes: bool = False) -> None:
        self.root: Optional[_Node] = _Node() if root_exists else None
        self.deny_writes = deny_writes
        self.ops: list[tuple[str, ...]] = []
        self.open_handles = 0

    # ------------------------------------------------------------------
    # Seeding and inspection
    # ------------------------------------------------------------------

    def put(self, path: str, value_name: str, value: Any, kind: str = STRING) -> None:
        """Write a value at ``path`` (backslash-separated), creating keys.

        Bypasses the journal; meant for seeding state.
        """
        node = self._require_root()
        for part in _split(path):
            found = node.find(part)
            if found is None:
                node.children[part] = _Node()
                node = node.children[part]
            else:
                node = found[1]
        node.values[value_name] = (kind, value)

    def add_key(self, path: str) -> None:
        """Create an empty key at ``path`` without journaling."""
        node = self._require_root()
        for part in _split(path):
            found = node.find(part)
            node = found[1] if found else node.children.setdefault(part, _Node())

    def remove_key(self, path: str) -> None:
        """Delete the key at ``path`` without journaling."""
        parts = _split(path)
        parent = self._walk(parts[:-1])
        found = parent.find(parts[-1])
        if found is None:
            raise NotFound(path)
        del parent.children[found[0]]

    def to_dict(self) -> Optional[dict]:
        return self.root.to_dict() if self.root is not None else None

    def load_dict(self, data: Optional[dict]) -> None:
        self.root = _Node.from_dict(data) if data is not None else None

    def subtree(self, path: str) -> dict:
        """A deep copy of the key at ``path``, for comparisons."""
        return copy.deepcopy(self._walk(_split(path)).to_dict())

    # ------------------------------------------------------------------
    # StoreAccessor
    # ------------------------------------------------------------------

    def open_root(self, writable: bool = False) -> MemoryHandle:
        root = self._require_root()
        self.open_handles += 1
        return MemoryHandle(root, "", writable, on_close=self._released)

    def list_children(self, handle: MemoryHandle) -> list[str]:
        self._check_open(handle)
        return list(handle.node.children)

    def open_child(self, handle: MemoryHandle, name: str) -> MemoryHandle:
        self._check_open(handle)
        found = handle.node.find(name)
        if found is None:
            raise NotFound(_join(handle.path, name))
        self.open_handles += 1
        return MemoryHandle(
            found[1], _join(handle.path, found[0]), False, on_close=self._released
        )

    def create_child(self, handle: MemoryHandle, name: str) -> MemoryHandle:
        self._check_writable(handle)
        found = handle.node.find(name)
        if found is None:
            handle.node.children[name] = _Node()
            found = (name, handle.node.children[name])
            self.ops.append(("create", _join(handle.path, name)))
        self.open_handles += 1
        return MemoryHandle(found[1], _join(handle.path, found[0]), True, on_close=self._released)

    def delete_child_tree(self, handle: MemoryHandle, name: str) -> None:
        self._check_writable(handle)
        found = handle.node.find(name)
        if found is None:
            raise NotFound(_join(handle.path, name))
        del handle.node.children[found[0]]
        self.ops.append(("delete", _join(handle.path, found[0])))

    def get_string_value(self, handle: MemoryHandle, subpath: str, value_name: str) -> str:
        self._check_open(handle)
        node = _descend(handle.node, subpath, handle.path)
        if value_name not in node.values:
            raise NotFound(f"{_join(handle.path, subpath)}:{value_name!r}")
        kind, data = node.values[value_name]
        if kind != STRING or not isinstance(data, str):
            raise WrongType(f"{_join(handle.path, subpath)}:{value_name!r} is {kind}")
        return data

    def set_string_value(
        self, handle: MemoryHandle, subpath: str, value_name: str, value: str
    ) -> None:
        self._check_writable(handle)
        node = handle.node
        path = handle.path
        for part in _split(subpath):
            found = node.find(part)
            if found is None:
                node.children[part] = _Node()
                found = (part, node.children[part])
                self.ops.append(("create", _join(path, part)))
            path = _join(path, found[0])
            node = found[1]
        node.values[value_name] = (STRING, value)
        self.ops.append(("set", path, value_name))

    def has_attribute(self, handle: MemoryHandle, attribute_name: str) -> bool:
        self._check_open(handle)
        return attribute_name in handle.node.values

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_root(self) -> _Node:
        if self.root is None:
            raise StoreUnavailable("Root collection does not exist")
        return self.root

    def _walk(self, parts: list[str]) -> _Node:
        node = self._require_root()
        for part in parts:
            found = node.find(part)
            if found is None:
                raise NotFound("\\".join(parts))
            node = found[1]
        return node

    def _released(self, handle: MemoryHandle) -> None:
        self.open_handles -= 1

    def _check_open(self, handle: MemoryHandle) -> None:
        if handle.closed:
            raise ValueError(f"Handle {handle.path!r} is closed")

    def _check_writable(self, handle: MemoryHandle) -> None:
        self._check_open(handle)
        if self.deny_writes or not handle.writable:
            raise PermissionDenied(f"Write access denied: {handle.path or '<root>'}")


class JsonFileStore(MemoryStore):
    """A MemoryStore loaded from and saved to a JSON file.

    The tree is reloaded every time the root is opened and written back
    when a writable root handle closes, so separate processes see each
    other's changes between operations.
    """

    def __init__(self, path: str | Path, create: bool = False) -> None:
        super().__init__(root_exists=False)
        self.path = Path(path)
        if create and not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.root = _Node()
            self._save()

    def open_root(self, writable: bool = False) -> MemoryHandle:
        self._load()
        handle = super().open_root(writable)
        if writable:
            handle._on_close = self._released_and_saved
        return handle

    def _released_and_saved(self, handle: MemoryHandle) -> None:
        self._released(handle)
        self._save()

    def _load(self) -> None:
        if not self.path.exists():
            raise StoreUnavailable(f"Store file not found: {self.path}")
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StoreUnavailable(f"Store file {self.path} is corrupt: {e}") from e
        except PermissionError as e:
            raise PermissionDenied(str(e)) from e
        if not isinstance(data, dict):
            raise StoreUnavailable(f"Store file {self.path} is corrupt")
        try:
            self.load_dict(data.get("root"))
        except ValueError as e:
            raise StoreUnavailable(f"Store file {self.path} is corrupt: {e}") from e

    def _save(self) -> None:
        try:
            self.path.write_text(json.dumps({"root": self.to_dict()}, indent=2), encoding="utf-8")
        except PermissionError as e:
            raise PermissionDenied(str(e)) from e
        logger.debug("Saved store to %s", self.path)


def _split(path: str) -> list[str]:
    return [p for p in path.split("\\") if p]


def _join(*parts: str) -> str:
    return "\\".join(p for p in parts if p)


def _descend(node: _Node, subpath: str, base: str) -> _Node:
    for part in _split(subpath):
        found = node.find(part)
        if found is None:
            raise NotFound(_join(base, subpath))
        node = found[1]
    return node
