"""Store accessors — raw bindings to the hierarchical key-value store.

The engine only talks to the ``StoreAccessor`` contract:
- RegistryStore: the Windows registry (HKEY_CLASSES_ROOT)
- MemoryStore: an in-process tree with the same semantics
- JsonFileStore: a MemoryStore persisted to a JSON file
"""

from ctxmenu.store.base import StoreAccessor, StoreHandle
from ctxmenu.store.memory import JsonFileStore, MemoryStore

__all__ = ["StoreAccessor", "StoreHandle", "MemoryStore", "JsonFileStore"]
