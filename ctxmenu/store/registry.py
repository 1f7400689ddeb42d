"""Windows registry binding for the Store Accessor contract.

The root collection lives under HKEY_CLASSES_ROOT and is created by the
shell, never by this module. ``winreg`` is imported lazily so the package
imports on every platform.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from ctxmenu.errors import NotFound, PermissionDenied, StoreUnavailable, WrongType
from ctxmenu.store.base import StoreAccessor, StoreHandle

logger = logging.getLogger(__name__)

DEFAULT_ROOT_PATH = r"Directory\background\shell"
ERROR_NO_MORE_ITEMS = 259


@contextmanager
def translate_errors(path: str) -> Iterator[None]:
    """Map OS errors raised by winreg onto the ctxmenu taxonomy."""
    try:
        yield
    except FileNotFoundError as e:
        raise NotFound(path) from e
    except PermissionError as e:
        raise PermissionDenied(f"Access denied: {path}") from e
    except OSError as e:
        raise StoreUnavailable(f"Registry error on {path}: {e}") from e


class RegistryHandle(StoreHandle):
    def __init__(self, hkey, path: str, writable: bool) -> None:
        self.hkey = hkey
        self.path = path
        self.writable = writable

    def close(self) -> None:
        if self.hkey is not None:
            self.hkey.Close()
            self.hkey = None


class RegistryStore(StoreAccessor):
    """A StoreAccessor over ``HKEY_CLASSES_ROOT\\<root_path>``."""

    def __init__(self, root_path: str = DEFAULT_ROOT_PATH) -> None:
        try:
            import winreg
        except ImportError as e:
            raise StoreUnavailable("The Windows registry is not available on this platform") from e
        self._winreg = winreg
        self.root_path = root_path

    def _access(self, writable: bool) -> int:
        access = self._winreg.KEY_READ
        if writable:
            access |= self._winreg.KEY_WRITE
        return access

    def open_root(self, writable: bool = False) -> RegistryHandle:
        try:
            with translate_errors(self.root_path):
                hkey = self._winreg.OpenKey(
                    self._winreg.HKEY_CLASSES_ROOT, self.root_path, 0, self._access(writable)
                )
        except NotFound as e:
            raise StoreUnavailable(f"Registry key HKCR\\{self.root_path} does not exist") from e
        logger.debug("Opened HKCR\\%s (writable=%s)", self.root_path, writable)
        return RegistryHandle(hkey, self.root_path, writable)

    def list_children(self, handle: RegistryHandle) -> list[str]:
        names = []
        with translate_errors(handle.path):
            while True:
                try:
                    names.append(self._winreg.EnumKey(handle.hkey, len(names)))
                except OSError as e:
                    # Keys removed by another program just shorten the listing
                    if getattr(e, "winerror", None) != ERROR_NO_MORE_ITEMS:
                        raise
                    break
        return names

    def open_child(self, handle: RegistryHandle, name: str) -> RegistryHandle:
        """Open a child for reading; entry writes go through create_child."""
        return self._open(handle, name, writable=False)

    def _open(self, handle: RegistryHandle, name: str, writable: bool) -> RegistryHandle:
        path = f"{handle.path}\\{name}"
        with translate_errors(path):
            hkey = self._winreg.OpenKey(handle.hkey, name, 0, self._access(writable))
        return RegistryHandle(hkey, path, writable)

    def create_child(self, handle: RegistryHandle, name: str) -> RegistryHandle:
        path = f"{handle.path}\\{name}"
        with translate_errors(path):
            hkey = self._winreg.CreateKeyEx(handle.hkey, name, 0, self._access(True))
        return RegistryHandle(hkey, path, True)

    def delete_child_tree(self, handle: RegistryHandle, name: str) -> None:
        # DeleteKey refuses keys that still have subkeys
        with self._open(handle, name, writable=True) as child:
            for sub in self.list_children(child):
                self.delete_child_tree(child, sub)
        with translate_errors(f"{handle.path}\\{name}"):
            self._winreg.DeleteKey(handle.hkey, name)

    def get_string_value(self, handle: RegistryHandle, subpath: str, value_name: str) -> str:
        path = f"{handle.path}\\{subpath}" if subpath else handle.path
        with translate_errors(path):
            if subpath:
                with self._winreg.OpenKey(handle.hkey, subpath, 0, self._winreg.KEY_READ) as key:
                    value, kind = self._winreg.QueryValueEx(key, value_name)
            else:
                value, kind = self._winreg.QueryValueEx(handle.hkey, value_name)
        if kind != self._winreg.REG_SZ:
            raise WrongType(f"{path}:{value_name!r} is not REG_SZ")
        return value

    def set_string_value(
        self, handle: RegistryHandle, subpath: str, value_name: str, value: str
    ) -> None:
        path = f"{handle.path}\\{subpath}" if subpath else handle.path
        with translate_errors(path):
            if subpath:
                with self._winreg.CreateKeyEx(handle.hkey, subpath, 0, self._access(True)) as key:
                    self._winreg.SetValueEx(key, value_name, 0, self._winreg.REG_SZ, value)
            else:
                self._winreg.SetValueEx(handle.hkey, value_name, 0, self._winreg.REG_SZ, value)

    def has_attribute(self, handle: RegistryHandle, attribute_name: str) -> bool:
        try:
            with translate_errors(handle.path):
                self._winreg.QueryValueEx(handle.hkey, attribute_name)
        except NotFound:
            return False
        return True
