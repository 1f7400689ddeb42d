"""Reconciliation engine — owns the notion of a managed item.

An entry under the root collection is *managed* exactly when it carries a
value named by the ownership tag. Everything else is foreign and is never
altered. Reconciling computes the set difference of ``(name, command)``
pairs between the store and a desired set, then issues only the deletes
and creates needed to close it.

The store is shared with other programs, so nothing is cached: every
operation re-reads, and every delete re-checks ownership right before it
is issued. This is check-then-act, not locking; the store offers no
transactions, and a failed reconcile leaves whatever state it reached.
"""

from __future__ import annotations

import logging
from enum import Enum

from ctxmenu.errors import InvalidName, NameConflict, NotFound, WrongType
from ctxmenu.models import (
    PATH_SEPARATOR,
    ManagedSet,
    ReconcilePlan,
    StoreSnapshot,
    validate_set,
)
from ctxmenu.store.base import StoreAccessor, StoreHandle

logger = logging.getLogger(__name__)

COMMAND_KEY = "command"  # Sub-key the shell reads the invocation target from
COMMAND_VALUE = ""  # Unnamed default value


class EntryState(Enum):
    """How a single child of the root collection looks to the engine."""

    ABSENT = "absent"
    FOREIGN = "foreign"  # No ownership tag
    CORRUPTED = "corrupted"  # Tagged, but no readable string command
    MANAGED = "managed"


class ReconciliationEngine:
    """Reads and reconciles the managed subset of a store.

    Args:
        store: Accessor for the external store.
        ownership_tag: Marker value identifying entries created by this
            installation. Written as an empty string value on each entry.
    """

    def __init__(self, store: StoreAccessor, ownership_tag: str):
        if not isinstance(ownership_tag, str) or not ownership_tag:
            raise ValueError("Ownership tag must be a non-empty string")
        if PATH_SEPARATOR in ownership_tag:
            raise ValueError(f"Ownership tag must not contain {PATH_SEPARATOR!r}")
        self.store = store
        self.ownership_tag = ownership_tag

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read_current(self) -> ManagedSet:
        """Return every managed entry as ``{name: command}``.

        Raises StoreUnavailable if the root collection is missing, so an
        empty result always means "nothing managed".
        """
        return self.inspect().managed

    def inspect(self) -> StoreSnapshot:
        """Classify every child of the root as managed, corrupted or foreign."""
        with self.store.open_root(writable=False) as root:
            return self._scan(root)

    def _scan(self, root: StoreHandle) -> StoreSnapshot:
        snapshot = StoreSnapshot()
        for name in self.store.list_children(root):
            state, command = self._entry_state(root, name)
            if state is EntryState.MANAGED:
                snapshot.managed[name] = command
            elif state is EntryState.CORRUPTED:
                logger.warning("Skipping managed entry %r: no readable command", name)
                snapshot.corrupted.append(name)
            elif state is EntryState.FOREIGN:
                snapshot.foreign.append(name)
        return snapshot

    def _entry_state(self, root: StoreHandle, name: str) -> tuple[EntryState, str | None]:
        try:
            with self.store.open_child(root, name) as entry:
                if not self.store.has_attribute(entry, self.ownership_tag):
                    return EntryState.FOREIGN, None
                try:
                    command = self.store.get_string_value(entry, COMMAND_KEY, COMMAND_VALUE)
                except (NotFound, WrongType):
                    return EntryState.CORRUPTED, None
                return EntryState.MANAGED, command
        except NotFound:
            return EntryState.ABSENT, None

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(self, desired: ManagedSet) -> ReconcilePlan:
        """Compute the diff against ``desired`` without touching the store."""
        _check_desired(desired)
        with self.store.open_root(writable=False) as root:
            current = self._scan(root).managed
            plan = ReconcilePlan(
                to_remove={n: c for n, c in current.items() if desired.get(n) != c},
                to_create={n: c for n, c in desired.items() if current.get(n) != c},
            )
            for name in plan.to_create:
                state, _ = self._entry_state(root, name)
                if state is EntryState.FOREIGN:
                    plan.conflicts.append(name)
        return plan

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    def reconcile(self, desired: ManagedSet) -> ReconcilePlan:
        """Make the managed subset of the store equal ``desired``.

        ``desired`` is the complete target state, not a delta. A changed
        command is applied as delete-then-create. Raises NameConflict,
        before any mutation, if a desired name is held by a foreign entry.

        Returns the applied plan.
        """
        plan = self.plan(desired)
        if plan.is_empty:
            logger.debug("Managed items already up to date")
            return plan
        if plan.conflicts:
            raise NameConflict(plan.conflicts)

        with self.store.open_root(writable=True) as root:
            for name in plan.to_remove:
                self._remove(root, name, plan)
            for name, command in plan.to_create.items():
                self._create(root, name, command)
                plan.created.append(name)

        logger.info("Reconciled managed items: %s", plan.summary())
        return plan

    def _remove(self, root: StoreHandle, name: str, plan: ReconcilePlan) -> None:
        state, _ = self._entry_state(root, name)
        if state not in (EntryState.MANAGED, EntryState.CORRUPTED):
            logger.warning("Not deleting %r: entry is %s", name, state.value)
            plan.skipped.append(name)
            return
        try:
            self.store.delete_child_tree(root, name)
        except NotFound:
            logger.warning("Not deleting %r: entry vanished", name)
            plan.skipped.append(name)
            return
        logger.info("Deleted %r", name)
        plan.removed.append(name)

    def _create(self, root: StoreHandle, name: str, command: str) -> None:
        state, _ = self._entry_state(root, name)
        if state is EntryState.FOREIGN:
            raise NameConflict([name])
        if state is not EntryState.ABSENT:
            logger.warning("Replacing existing %s entry %r", state.value, name)
            self.store.delete_child_tree(root, name)

        # Tag first: a failure past this point leaves a detectable entry
        with self.store.create_child(root, name) as entry:
            self.store.set_string_value(entry, "", self.ownership_tag, "")
            self.store.set_string_value(entry, COMMAND_KEY, COMMAND_VALUE, command)
        logger.info("Created %r", name)


def _check_desired(desired: ManagedSet) -> None:
    validate_set(desired)
    seen: dict[str, str] = {}
    for name in desired:
        folded = name.casefold()
        if folded in seen:
            raise InvalidName(f"Item names {seen[folded]!r} and {name!r} differ only by case")
        seen[folded] = name
