"""Data models — managed sets, reconcile plans, and store snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field

from ctxmenu.errors import InvalidName

# name -> command line, stored verbatim
ManagedSet = dict[str, str]

MAX_NAME_LENGTH = 255  # Registry key name limit
PATH_SEPARATOR = "\\"


def validate_name(name: object) -> str:
    """Check that ``name`` can be used as a child key and return it."""
    if not isinstance(name, str):
        raise InvalidName(f"Item name must be a string, got {type(name).__name__}")
    if not name:
        raise InvalidName("Item name must not be empty")
    if name != name.strip():
        raise InvalidName(f"Item name {name!r} has leading or trailing whitespace")
    if PATH_SEPARATOR in name:
        raise InvalidName(f"Item name {name!r} must not contain {PATH_SEPARATOR!r}")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidName(f"Item name is longer than {MAX_NAME_LENGTH} characters")
    return name


def validate_set(items: ManagedSet) -> ManagedSet:
    """Validate every name and command of a desired set."""
    for name, command in items.items():
        validate_name(name)
        if not isinstance(command, str):
            raise InvalidName(f"Command for {name!r} must be a string")
    return items


@dataclass
class ReconcilePlan:
    """The create/delete diff between the current and desired managed sets.

    A changed command shows up in both ``to_remove`` (old pair) and
    ``to_create`` (new pair).
    """

    to_remove: ManagedSet = field(default_factory=dict)
    to_create: ManagedSet = field(default_factory=dict)
    conflicts: list[str] = field(default_factory=list)

    # Filled in while applying
    removed: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_remove and not self.to_create

    @property
    def changed(self) -> list[str]:
        """Names whose command differs between current and desired."""
        return sorted(set(self.to_remove) & set(self.to_create))

    def summary(self) -> str:
        if self.is_empty:
            return "No changes"
        parts = []
        changed = set(self.changed)
        added = [n for n in self.to_create if n not in changed]
        dropped = [n for n in self.to_remove if n not in changed]
        if added:
            parts.append(f"{len(added)} to create")
        if changed:
            parts.append(f"{len(changed)} to update")
        if dropped:
            parts.append(f"{len(dropped)} to remove")
        if self.conflicts:
            parts.append(f"{len(self.conflicts)} conflicting")
        return ", ".join(parts)


@dataclass
class StoreSnapshot:
    """Classification of every child under the root collection."""

    managed: ManagedSet = field(default_factory=dict)
    corrupted: list[str] = field(default_factory=list)  # Tagged, no readable command
    foreign: list[str] = field(default_factory=list)  # Untagged

    @property
    def total(self) -> int:
        return len(self.managed) + len(self.corrupted) + len(self.foreign)
