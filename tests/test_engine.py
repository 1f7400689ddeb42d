"""Tests for the reconciliation engine."""

import pytest

from ctxmenu.engine import COMMAND_KEY, ReconciliationEngine
from ctxmenu.errors import InvalidName, NameConflict, PermissionDenied, StoreUnavailable
from ctxmenu.store.memory import MemoryStore

TAG = "5f0c1c8e-2a43-4d7e-9d7a-0c6b8f1e9a11"


def _engine(store=None):
    store = store or MemoryStore()
    return store, ReconciliationEngine(store, TAG)


def _seed_managed(store, name, command):
    store.put(name, TAG, "")
    store.put(f"{name}\\{COMMAND_KEY}", "", command)


def _ops_for(store, kind, name):
    return [op for op in store.ops if op[0] == kind and op[1] == name]


# --- Reading ---


def test_read_empty_store():
    _, engine = _engine()
    assert engine.read_current() == {}


def test_read_ignores_foreign_entries():
    store, engine = _engine()
    _seed_managed(store, "Mine", "mine.exe")
    store.put("Theirs\\command", "", "theirs.exe")
    assert engine.read_current() == {"Mine": "mine.exe"}


def test_read_skips_corrupted_entries():
    store, engine = _engine()
    _seed_managed(store, "Good", "good.exe")
    store.put("NoCommand", TAG, "")
    store.put("WrongType", TAG, "")
    store.put("WrongType\\command", "", 42, kind="dword")

    snapshot = engine.inspect()
    assert snapshot.managed == {"Good": "good.exe"}
    assert sorted(snapshot.corrupted) == ["NoCommand", "WrongType"]
    assert engine.read_current() == {"Good": "good.exe"}


def test_read_missing_root_raises():
    _, engine = _engine(MemoryStore(root_exists=False))
    with pytest.raises(StoreUnavailable):
        engine.read_current()


def test_other_tag_is_foreign():
    store, engine = _engine()
    store.put("Other", "some-other-installation", "")
    store.put("Other\\command", "", "x.exe")
    snapshot = engine.inspect()
    assert snapshot.managed == {}
    assert snapshot.foreign == ["Other"]


def test_handles_are_released():
    store, engine = _engine()
    _seed_managed(store, "A", "a.exe")
    engine.read_current()
    engine.reconcile({"B": "b.exe"})
    assert store.open_handles == 0


# --- Reconcile ---


def test_scenario_a_create_into_empty_store():
    store, engine = _engine()
    desired = {"Open with Foo": '"C:\\foo.exe" "%1"'}

    engine.reconcile(desired)

    assert engine.read_current() == desired
    tree = store.subtree("Open with Foo")
    assert TAG in tree["values"]
    assert tree["children"]["command"]["values"][""]["data"] == '"C:\\foo.exe" "%1"'


def test_scenario_b_minimal_diff():
    store, engine = _engine()
    _seed_managed(store, "A", "cmd1")
    _seed_managed(store, "B", "cmd2")

    plan = engine.reconcile({"B": "cmd2", "C": "cmd3"})

    assert plan.to_remove == {"A": "cmd1"}
    assert plan.to_create == {"C": "cmd3"}
    assert not _ops_for(store, "delete", "B")
    assert not _ops_for(store, "create", "B")
    assert engine.read_current() == {"B": "cmd2", "C": "cmd3"}


def test_scenario_c_conflict_before_mutation():
    store, engine = _engine()
    _seed_managed(store, "Mine", "mine.exe")
    store.put("Shell Extension\\command", "", "ext.exe")
    before = store.to_dict()

    with pytest.raises(NameConflict) as info:
        engine.reconcile({"Shell Extension": "other.exe"})

    assert info.value.names == ["Shell Extension"]
    assert store.ops == []
    assert store.to_dict() == before


def test_idempotent_second_apply():
    store, engine = _engine()
    desired = {"A": "a.exe", "B": "b.exe"}

    engine.reconcile(desired)
    ops_after_first = list(store.ops)
    plan = engine.reconcile(desired)

    assert plan.is_empty
    assert store.ops == ops_after_first
    assert engine.read_current() == desired


def test_foreign_entry_left_untouched():
    store, engine = _engine()
    store.put("X", "Icon", "x.ico")
    store.put("X\\command", "", "x.exe")
    before = store.subtree("X")

    engine.reconcile({"A": "a.exe"})
    engine.reconcile({})

    assert store.subtree("X") == before


def test_conflict_is_case_insensitive():
    store, engine = _engine()
    store.put("Foreign\\command", "", "f.exe")
    with pytest.raises(NameConflict):
        engine.reconcile({"FOREIGN": "mine.exe"})


def test_changed_command_is_delete_then_create():
    store, engine = _engine()
    _seed_managed(store, "Tool", "A")

    plan = engine.reconcile({"Tool": "B"})

    assert plan.changed == ["Tool"]
    assert len(_ops_for(store, "delete", "Tool")) == 1
    assert len(_ops_for(store, "create", "Tool")) == 1
    assert [op[0] for op in store.ops if op[1] == "Tool"][:2] == ["delete", "create"]
    assert engine.read_current() == {"Tool": "B"}


def test_reconcile_to_empty_removes_only_managed():
    store, engine = _engine()
    _seed_managed(store, "A", "a.exe")
    store.put("Foreign\\command", "", "f.exe")

    engine.reconcile({})

    assert engine.read_current() == {}
    assert engine.inspect().foreign == ["Foreign"]


def test_skip_delete_when_ownership_vanishes():
    store, engine = _engine()
    _seed_managed(store, "A", "a.exe")

    plan = engine.plan({})
    # Another program replaces the entry between planning and applying
    store.remove_key("A")
    store.put("A\\command", "", "theirs.exe")

    with store.open_root(writable=True) as root:
        engine._remove(root, "A", plan)

    assert plan.skipped == ["A"]
    assert store.subtree("A")["children"]["command"]["values"][""]["data"] == "theirs.exe"


def test_create_raises_when_foreign_appears_late():
    store, engine = _engine()
    store.put("Late\\command", "", "theirs.exe")
    with store.open_root(writable=True) as root:
        with pytest.raises(NameConflict):
            engine._create(root, "Late", "mine.exe")
    assert store.subtree("Late")["children"]["command"]["values"][""]["data"] == "theirs.exe"


def test_corrupted_entry_is_replaced():
    store, engine = _engine()
    store.put("Broken", TAG, "")

    engine.reconcile({"Broken": "fixed.exe"})

    assert engine.read_current() == {"Broken": "fixed.exe"}
    assert engine.inspect().corrupted == []


def test_case_only_rename():
    store, engine = _engine()
    _seed_managed(store, "notepad", "notepad.exe")
    engine.reconcile({"Notepad": "notepad.exe"})
    assert engine.read_current() == {"Notepad": "notepad.exe"}


def test_permission_denied_surfaces():
    store = MemoryStore(deny_writes=True)
    _, engine = _engine(store)
    with pytest.raises(PermissionDenied):
        engine.reconcile({"A": "a.exe"})
    assert store.open_handles == 0


def test_noop_does_not_need_write_access():
    store = MemoryStore(deny_writes=True)
    _, engine = _engine(store)
    assert engine.reconcile({}).is_empty


def test_missing_root_on_reconcile():
    _, engine = _engine(MemoryStore(root_exists=False))
    with pytest.raises(StoreUnavailable):
        engine.reconcile({"A": "a.exe"})


def test_partial_create_leaves_tagged_entry():
    class FailingStore(MemoryStore):
        def set_string_value(self, handle, subpath, value_name, value):
            if subpath == COMMAND_KEY:
                raise PermissionDenied("command key is locked")
            super().set_string_value(handle, subpath, value_name, value)

    store = FailingStore()
    _, engine = _engine(store)
    with pytest.raises(PermissionDenied):
        engine.reconcile({"A": "a.exe"})

    assert engine.inspect().corrupted == ["A"]
    assert store.open_handles == 0


# --- Validation ---


@pytest.mark.parametrize("name", ["", "a\\b", " padded", "x" * 256])
def test_invalid_names_rejected(name):
    store, engine = _engine()
    with pytest.raises(InvalidName):
        engine.reconcile({name: "cmd"})
    assert store.ops == []


def test_case_duplicates_rejected():
    _, engine = _engine()
    with pytest.raises(InvalidName):
        engine.plan({"Foo": "a", "foo": "b"})


def test_invalid_ownership_tag():
    with pytest.raises(ValueError):
        ReconciliationEngine(MemoryStore(), "")
    with pytest.raises(ValueError):
        ReconciliationEngine(MemoryStore(), "a\\b")


def test_round_trip_with_unusual_commands():
    _, engine = _engine()
    desired = {
        "Quoted": '"C:\\Program Files\\App\\app.exe" "%V"',
        "Empty command": "",
        "Unicode ✓": "cmd.exe /k echo héllo",
    }
    engine.reconcile(desired)
    assert engine.read_current() == desired


def test_plan_summary():
    store, engine = _engine()
    _seed_managed(store, "A", "1")
    _seed_managed(store, "B", "2")
    plan = engine.plan({"B": "3", "C": "4"})
    assert plan.summary() == "1 to create, 1 to update, 1 to remove"
    assert engine.plan({"A": "1", "B": "2"}).summary() == "No changes"
