"""Editor boundary — managed sets as an editable YAML document.

The document is a list of rows so order is kept for presentation and
duplicate names can be reported instead of silently collapsing::

    items:
      - name: Open with Foo
        command: '"C:\\foo.exe" "%1"'
"""

from __future__ import annotations

import yaml

from ctxmenu.errors import EditorError
from ctxmenu.models import ManagedSet

HEADER = (
    "# Managed context menu items. Each row needs a name and a command.\n"
    "# Removing a row deletes the item; entries added by other programs are not listed.\n"
)


def load_initial(items: ManagedSet) -> str:
    """Render ``items`` as the document shown to the user."""
    rows = [{"name": name, "command": items[name]} for name in sorted(items, key=str.casefold)]
    body = yaml.safe_dump({"items": rows}, sort_keys=False, allow_unicode=True, width=1000)
    return HEADER + body


def commit(text: str) -> ManagedSet:
    """Parse an edited document into the desired managed set."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise EditorError(f"Invalid YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict) or not isinstance(data.get("items", []), (list, type(None))):
        raise EditorError("Document must have a top-level 'items' list")

    result: ManagedSet = {}
    for i, row in enumerate(data.get("items") or [], start=1):
        if not isinstance(row, dict):
            raise EditorError(f"Row {i} must be a mapping with 'name' and 'command'")
        name = row.get("name")
        command = row.get("command")
        name = "" if name is None else name
        command = "" if command is None else command
        if not isinstance(name, str) or not isinstance(command, str):
            raise EditorError(f"Row {i}: name and command must be strings (quote them)")
        if not name.strip() and not command.strip():
            continue  # Blank row
        if not name.strip():
            raise EditorError(f"Row {i} has a command but no name")
        if name in result:
            raise EditorError(f"Duplicate name {name!r} (row {i})")
        result[name] = command
    return result


def quote_target(path: str) -> str:
    """Wrap a picked file path in double quotes for use as a command."""
    return f'"{path}"'
