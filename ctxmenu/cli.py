"""ctxmenu CLI — list, edit and apply managed context menu items."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ctxmenu import __version__
from ctxmenu.errors import ContextMenuError, NameConflict

console = Console()


class AppContext:
    """Lazily built settings, store and engine for one invocation."""

    def __init__(self, config_dir: str | None, verbose: int = 0):
        self.config_dir = config_dir
        self.verbose = verbose
        self._settings = None
        self._engine = None

    @property
    def settings(self):
        from ctxmenu.config import load_settings

        if self._settings is None:
            self._settings = load_settings(self.config_dir)
            if not self.verbose:
                logging.getLogger().setLevel(self._settings.log_level.upper())
        return self._settings

    @property
    def engine(self):
        from ctxmenu.engine import ReconciliationEngine

        if self._engine is None:
            self._engine = ReconciliationEngine(build_store(self.settings), self.settings.ownership_tag)
        return self._engine


def build_store(settings, create: bool = False):
    """Construct the StoreAccessor selected by ``settings.backend``."""
    if settings.backend == "registry":
        from ctxmenu.store.registry import RegistryStore

        return RegistryStore(settings.root_path)

    from ctxmenu.store.memory import JsonFileStore

    return JsonFileStore(settings.store_file, create=create)


def _fail(error: ContextMenuError):
    console.print(f"[red]Error:[/] {escape(str(error))}")
    if isinstance(error, NameConflict):
        console.print("  Rename these items and try again:")
        for name in error.names:
            console.print(f"    - {escape(name)}")
    sys.exit(1)


def _print_plan(plan, dry_run: bool = False) -> None:
    if plan.is_empty:
        console.print("[green]Up to date.[/] No changes needed.")
        return

    changed = set(plan.changed)
    for name in sorted(plan.to_remove):
        if name not in changed:
            console.print(f"  [red]-[/] {escape(name)}")
    for name in sorted(plan.to_create):
        marker = "[yellow]~[/]" if name in changed else "[green]+[/]"
        console.print(f"  {marker} {escape(name)}: {escape(plan.to_create[name])}")
    for name in plan.skipped:
        console.print(f"  [yellow]![/] {escape(name)} skipped (no longer managed)")

    verb = "Would apply" if dry_run else "Applied"
    console.print(f"\n{verb}: {plan.summary()}")


def _reconcile(app: AppContext, desired: dict, dry_run: bool = False) -> None:
    try:
        engine = app.engine
        if dry_run:
            plan = engine.plan(desired)
            if plan.conflicts:
                raise NameConflict(plan.conflicts)
        else:
            plan = engine.reconcile(desired)
    except ContextMenuError as e:
        _fail(e)
    _print_plan(plan, dry_run=dry_run)


def _find_item(items: dict, name: str) -> str | None:
    """The stored spelling of ``name``; store names ignore case."""
    folded = name.casefold()
    for existing in items:
        if existing.casefold() == folded:
            return existing
    return None

@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_dir", default=None, help="Config directory (default: ~/.ctxmenu)")
@click.option("--verbose", "-v", count=True, help="Increase log verbosity")
@click.pass_context
def main(ctx, config_dir: str | None, verbose: int):
    """ctxmenu — manage your own desktop background context menu items.

    Items created by ctxmenu are tagged with this installation's
    ownership tag. Entries added by other programs are never changed.
    """
    ctx.obj = AppContext(config_dir, verbose)

    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


# ── Init ─────────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def init(app: AppContext):
    """Create the config (and an empty store for the file backend)."""
    try:
        settings = app.settings
        if settings.backend == "file":
            build_store(settings, create=True)
    except ContextMenuError as e:
        _fail(e)

    console.print(f"  Ownership tag: [cyan]{settings.ownership_tag}[/]")
    console.print(f"  Backend:       {settings.backend}")
    if settings.backend == "file":
        console.print(f"  Store file:    {settings.store_file}")


# ── List / Status ────────────────────────────────────────────────────


@main.command(name="list")
@click.pass_obj
def list_items(app: AppContext):
    """List managed context menu items."""
    try:
        items = app.engine.read_current()
    except ContextMenuError as e:
        _fail(e)

    if not items:
        console.print("[yellow]No managed items.[/]")
        return

    table = Table(title=f"Managed items ({len(items)})")
    table.add_column("Name", style="cyan")
    table.add_column("Command")
    for name in sorted(items, key=str.casefold):
        table.add_row(escape(name), escape(items[name]))
    console.print(table)


@main.command()
@click.pass_obj
def status(app: AppContext):
    """Show managed, corrupted and foreign entries under the root."""
    try:
        snapshot = app.engine.inspect()
    except ContextMenuError as e:
        _fail(e)

    console.print(f"  [green]Managed[/]:   {len(snapshot.managed)}")
    console.print(f"  [red]Corrupted[/]: {len(snapshot.corrupted)}")
    for name in snapshot.corrupted:
        console.print(f"    - {escape(name)}")
    console.print(f"  [dim]Foreign[/]:   {len(snapshot.foreign)}")
    for name in snapshot.foreign:
        console.print(f"    - {escape(name)}")


# ── Export / Apply / Edit ────────────────────────────────────────────


@main.command()
@click.option("--output", "-o", default=None, help="Write to a file instead of stdout")
@click.pass_obj
def export(app: AppContext, output: str | None):
    """Export managed items as an editable YAML document."""
    from ctxmenu.editor import load_initial

    try:
        text = load_initial(app.engine.read_current())
    except ContextMenuError as e:
        _fail(e)

    if output:
        Path(output).write_text(text, encoding="utf-8")
        console.print(f"[green]Exported to:[/] {output}")
    else:
        click.echo(text, nl=False)


@main.command()
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@click.option("--dry-run", is_flag=True, help="Show the changes without applying them")
@click.pass_obj
def apply(app: AppContext, document: str, dry_run: bool):
    """Make the managed items match DOCUMENT exactly.

    Items missing from DOCUMENT are deleted.
    """
    from ctxmenu.editor import commit

    try:
        desired = commit(Path(document).read_text(encoding="utf-8"))
    except ContextMenuError as e:
        _fail(e)
    _reconcile(app, desired, dry_run=dry_run)


@main.command()
@click.pass_obj
def edit(app: AppContext):
    """Edit managed items in $EDITOR and apply on save."""
    from ctxmenu.editor import commit, load_initial

    try:
        original = load_initial(app.engine.read_current())
    except ContextMenuError as e:
        _fail(e)

    edited = click.edit(original, extension=".yaml", require_save=True)
    if edited is None:
        console.print("[yellow]No changes saved.[/]")
        return

    try:
        desired = commit(edited)
    except ContextMenuError as e:
        _fail(e)
    _reconcile(app, desired)


# ── Add / Remove ─────────────────────────────────────────────────────


@main.command()
@click.argument("name")
@click.argument("command")
@click.option("--quote", is_flag=True, help="Treat COMMAND as a file path and quote it")
@click.pass_obj
def add(app: AppContext, name: str, command: str, quote: bool):
    """Add or update a single managed item."""
    from ctxmenu.editor import quote_target

    if quote:
        command = quote_target(command)
    try:
        desired = dict(app.engine.read_current())
    except ContextMenuError as e:
        _fail(e)
    existing = _find_item(desired, name)
    if existing is not None:
        del desired[existing]
    desired[name] = command
    _reconcile(app, desired)


@main.command()
@click.argument("name")
@click.pass_obj
def remove(app: AppContext, name: str):
    """Remove a single managed item."""
    try:
        desired = dict(app.engine.read_current())
    except ContextMenuError as e:
        _fail(e)

    existing = _find_item(desired, name)
    if existing is None:
        console.print(f"[yellow]{escape(repr(name))} is not a managed item.[/]")
        sys.exit(1)
    del desired[existing]
    _reconcile(app, desired)


if __name__ == "__main__":
    main()
