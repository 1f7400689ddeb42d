"""Error taxonomy for ctxmenu.

Root-level and permission errors abort an operation and reach the caller
unmodified. Malformed individual entries are never raised; the engine
skips them on read.
"""

from __future__ import annotations


class ContextMenuError(Exception):
    """Base class for every error raised by ctxmenu."""


class StoreUnavailable(ContextMenuError):
    """The root collection is missing or unreadable."""


class PermissionDenied(ContextMenuError):
    """Store access rights are insufficient for the requested operation."""


class NotFound(ContextMenuError):
    """A child entry or value does not exist."""


class WrongType(ContextMenuError):
    """A value exists but is not a string."""


class NameConflict(ContextMenuError):
    """Desired names are occupied by foreign (untagged) entries."""

    def __init__(self, names: list[str]):
        self.names = sorted(names)
        super().__init__(
            "Name(s) already used by entries not managed by ctxmenu: "
            + ", ".join(repr(n) for n in self.names)
        )


class InvalidName(ContextMenuError, ValueError):
    """A managed item name cannot be used as a store key."""


class EditorError(ContextMenuError):
    """The edited document could not be turned into a managed set."""


class ConfigError(ContextMenuError):
    """The configuration file is malformed or holds an invalid value."""
