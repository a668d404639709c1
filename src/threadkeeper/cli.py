"""tk CLI: track threads of work with durable IDs and attached context.

Commands:
    tk init                        create the workspace and a default config
    tk add TITLE...                start a new thread
    tk list                        open threads (or --all / --status)
    tk show ID                     one thread with its current attachments
    tk describe ID                 edit the description in $EDITOR
    tk update ID... [+tag -tag]    change title, due date, project, tags
    tk done|archive ID...          close threads (drops their short id)
    tk reopen ID...                reopen by durable ID
    tk remove --force ID...        delete threads from disk
    tk reindex                     renumber short ids 1..K
    tk path ID                     print a thread's directory
    tk attach note|link            attach a note or a link
    tk detach / rename / open      work with an attachment by --att N or --att-id

ID is a durable ID or the short id shown by ``tk list``.
"""

from __future__ import annotations

import logging
import mimetypes
from typing import TYPE_CHECKING, Any

import click

from threadkeeper.blobs import blob_path
from threadkeeper.config import TKConfig, init_workspace, load_config
from threadkeeper.dates import parse_date, to_due_at
from threadkeeper.editor import capture_note, edit_description
from threadkeeper.errors import ThreadkeeperError
from threadkeeper.ledger import compute_current, load_events
from threadkeeper.models import (
    KIND_LINK,
    STATUS_ARCHIVED,
    STATUS_DONE,
    STATUS_OPEN,
    STATUSES,
    format_ts,
    normalize_tags,
    utcnow,
)
from threadkeeper.paths import ledger_path
from threadkeeper.store import ThreadStore

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from threadkeeper.models import AttachmentEvent, ThreadRecord

logger = logging.getLogger("threadkeeper.cli")

_STATUS_FLAGS = {STATUS_OPEN: " ", STATUS_DONE: "x", STATUS_ARCHIVED: "-"}


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


class TKGroup(click.Group):
    """Group that resolves [alias] entries and reports core errors cleanly."""

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        cmd = super().get_command(ctx, cmd_name)
        if cmd is not None:
            return cmd
        target = self._aliases(ctx).get(cmd_name)
        if target is None:
            return None
        logger.debug("alias %r -> %r", cmd_name, target)
        return super().get_command(ctx, target)

    def _aliases(self, ctx: click.Context) -> dict[str, str]:
        # Command resolution runs before the group callback, so ctx.obj may be unset.
        if isinstance(ctx.obj, TKConfig):
            return ctx.obj.aliases
        try:
            return load_config(ctx.params.get("path"), builtins=self.commands).aliases
        except ThreadkeeperError as exc:
            raise click.ClickException(str(exc)) from exc

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except ThreadkeeperError as exc:
            raise click.ClickException(str(exc)) from exc


pass_config = click.make_pass_decorator(TKConfig)


def _setup_logging(verbose: bool, debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("threadkeeper").setLevel(level)


@click.group(
    cls=TKGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--path", "path", default=None, metavar="DIR", help="Workspace directory")
@click.option("-v", "--verbose", is_flag=True, help="Log progress to stderr")
@click.option("--debug", is_flag=True, help="Log everything to stderr")
@click.version_option(package_name="threadkeeper", prog_name="tk")
@click.pass_context
def cli(ctx: click.Context, path: str | None, verbose: bool, debug: bool) -> None:
    """tk: track threads of work."""
    _setup_logging(verbose, debug)
    ctx.obj = load_config(path, builtins=cli.commands)
    if ctx.invoked_subcommand is None:
        if ctx.obj.initialized:
            ctx.invoke(list_threads)
        else:
            click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _open_store(cfg: TKConfig) -> ThreadStore:
    if not cfg.initialized:
        msg = f"threads directory does not exist at {cfg.threads_dir}. Run 'tk init' first."
        raise click.ClickException(msg)
    return ThreadStore(cfg.threads_dir)


def _label(record: ThreadRecord) -> str:
    if record.short_id is not None:
        return f"{record.short_id} ({record.id})"
    return record.id


def _parse_due(cfg: TKConfig, text: str) -> datetime:
    return to_due_at(parse_date(text, cfg.date_locale))


def _format_date(dt: datetime | None) -> str:
    return dt.strftime("%Y-%m-%d") if dt is not None else ""


def _format_line(record: ThreadRecord) -> str:
    alias = str(record.short_id) if record.short_id is not None else ""
    flag = _STATUS_FLAGS.get(record.status, "?")
    parts = [f"{alias:>4} [{flag}] {record.title}", f"  {record.id}"]
    if record.project:
        parts.append(f"  @{record.project}")
    if record.due_at is not None:
        parts.append(f"  due:{_format_date(record.due_at)}")
    if record.tags:
        parts.append("  " + " ".join(f"#{t}" for t in record.tags))
    return "".join(parts)


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def _resolve_all(store: ThreadStore, tokens: tuple[str, ...]) -> list[ThreadRecord]:
    """Resolve every token before touching anything, so one bad ID aborts the batch."""
    return [store.resolve(token) for token in tokens]


def _pick_attachment(
    store: ThreadStore, record: ThreadRecord, att: int | None, att_id: str | None
) -> AttachmentEvent:
    if (att is None) == (att_id is None):
        raise click.UsageError("pass exactly one of --att or --att-id")
    return store.find_attachment(record.id, index=att, att_id=att_id)


def _warn_malformed(path: Path, count: int) -> None:
    if count:
        click.echo(f"Warning: skipped {count} malformed line(s) in {path}", err=True)


# ---------------------------------------------------------------------------
# tk init
# ---------------------------------------------------------------------------


@cli.command()
@pass_config
def init(cfg: TKConfig) -> None:
    """Create the workspace directory and a default config file."""
    if init_workspace(cfg):
        click.echo(f"Initialized threadkeeper workspace at {cfg.workspace}")
    else:
        click.echo(f"Workspace already initialized at {cfg.workspace}")
    click.echo(f"Config    : {cfg.config_path}")


# ---------------------------------------------------------------------------
# tk add / list / show
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("title", nargs=-1, required=True)
@click.option("-d", "--description", default="", help="Longer description")
@click.option("-p", "--project", default="", help="Project name")
@click.option("--due", default=None, help="today, +N, YYYY-MM-DD, or a date in date_locale order")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@pass_config
def add(
    cfg: TKConfig,
    title: tuple[str, ...],
    description: str,
    project: str,
    due: str | None,
    tags: tuple[str, ...],
) -> None:
    """Start a new thread."""
    store = _open_store(cfg)
    text = " ".join(title).strip()
    if not text:
        raise click.BadParameter("title must not be empty", param_hint="TITLE")
    due_at = _parse_due(cfg, due) if due else None
    record = store.create(
        text,
        description=description.strip(),
        project=project.strip(),
        tags=tags,
        due_at=due_at,
    )
    click.echo(f"Added thread {record.short_id} ({record.id}): {record.title}")


@cli.command("list")
@click.option("-a", "--all", "show_all", is_flag=True, help="Include done and archived threads")
@click.option("--status", type=click.Choice(STATUSES), default=None, help="Only this status")
@click.option("-p", "--project", default=None, help="Only this project")
@click.option("--tag", default=None, help="Only threads with this tag")
@click.option("-n", "--limit", type=click.IntRange(min=1), default=None, help="Show at most N")
@pass_config
def list_threads(
    cfg: TKConfig,
    show_all: bool = False,
    status: str | None = None,
    project: str | None = None,
    tag: str | None = None,
    limit: int | None = None,
) -> None:
    """List threads, open ones by default."""
    store = _open_store(cfg)
    records = store.load_all()
    if status:
        records = [r for r in records if r.status == status]
    elif not show_all:
        records = [r for r in records if r.is_active]
    if project:
        records = [r for r in records if r.project == project]
    if tag:
        wanted = tag.strip().lower()
        records = [r for r in records if wanted in r.tags]
    if limit:
        records = records[:limit]

    if not records:
        click.echo("No threads.")
        return
    for record in records:
        store.ensure_short_id(record)
        click.echo(_format_line(record))


@cli.command()
@click.argument("token", metavar="ID")
@click.option("--full", is_flag=True, help="Every field and the full attachment history")
@pass_config
def show(cfg: TKConfig, token: str, full: bool) -> None:
    """Show one thread and its current attachments."""
    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    store = _open_store(cfg)
    record = store.resolve(token)
    thread_dir = store.thread_dir(record.id)
    loaded = load_events(thread_dir)
    current = compute_current(loaded.events)

    click.echo(f"{_label(record)}: {record.title}")
    click.echo(f"Status : {record.status}")
    if record.project:
        click.echo(f"Project: {record.project}")
    if record.due_at is not None:
        click.echo(f"Due    : {_format_date(record.due_at)}")
    if record.tags:
        click.echo(f"Tags   : {', '.join(record.tags)}")
    if full:
        click.echo(f"Created: {format_ts(record.created_at)}")
        click.echo(f"Updated: {format_ts(record.updated_at)}")
        click.echo(f"Path   : {thread_dir}")
        for key, value in sorted(record.extra.items()):
            click.echo(f"{key}: {value}")
    if record.description:
        click.echo("")
        click.echo(record.description)
    click.echo("")

    console = Console()
    if current:
        table = Table(title="Attachments", show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Kind")
        table.add_column("Name")
        table.add_column("Detail")
        table.add_column("Added", no_wrap=True)
        for i, event in enumerate(current, start=1):
            att = event.att
            detail = att.url if att.kind == KIND_LINK else _format_size(att.size)
            table.add_row(str(i), att.kind, escape(att.name), escape(detail), event.ts)
        console.print(table)
    else:
        click.echo("No attachments.")

    if full and loaded.events:
        history = Table(title="History", show_header=True, header_style="bold")
        history.add_column("When", no_wrap=True)
        history.add_column("Op")
        history.add_column("Attachment ID")
        history.add_column("Name")
        for event in loaded.events:
            history.add_row(event.ts, event.op, event.att.att_id, escape(event.att.name))
        console.print(history)

    _warn_malformed(ledger_path(thread_dir), loaded.malformed)


# ---------------------------------------------------------------------------
# tk describe / update
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("token", metavar="ID")
@pass_config
def describe(cfg: TKConfig, token: str) -> None:
    """Edit a thread's description in your editor."""
    store = _open_store(cfg)
    record = store.resolve(token)
    edited = edit_description(record.description, cfg.editor)
    if edited is None or edited == record.description:
        click.echo("Description unchanged.")
        return
    record.description = edited
    record.updated_at = utcnow()
    store.save(record)
    click.echo(f"Updated description of {_label(record)}")


@cli.command(
    context_settings={"ignore_unknown_options": True, "help_option_names": ["--help"]},
)
@click.argument("args", nargs=-1, required=True, metavar="ID... [+TAG] [-TAG]")
@click.option("--title", default=None, help="New title")
@click.option("--due", default=None, help="New due date")
@click.option("--clear-due", is_flag=True, help="Remove the due date")
@click.option("--project", default=None, help="New project (empty string clears it)")
@click.option("--add-tag", "add_tags", multiple=True, help="Add a tag (repeatable)")
@click.option("--remove-tag", "remove_tags", multiple=True, help="Remove a tag (repeatable)")
@pass_config
def update(
    cfg: TKConfig,
    args: tuple[str, ...],
    title: str | None,
    due: str | None,
    clear_due: bool,
    project: str | None,
    add_tags: tuple[str, ...],
    remove_tags: tuple[str, ...],
) -> None:
    """Change fields on one or more threads.

    \b
    tk update 3 --title "Ship it" +release -draft
    """
    tokens: list[str] = []
    plus = list(add_tags)
    minus = list(remove_tags)
    for arg in args:
        if arg.startswith("+") and len(arg) > 1:
            plus.append(arg[1:])
        elif arg.startswith("-") and len(arg) > 1:
            minus.append(arg[1:])
        else:
            tokens.append(arg)
    if not tokens:
        raise click.UsageError("at least one thread ID is required")
    if title is not None and not title.strip():
        raise click.BadParameter("title must not be empty", param_hint="--title")
    if due and clear_due:
        raise click.UsageError("--due and --clear-due are mutually exclusive")

    store = _open_store(cfg)
    due_at = _parse_due(cfg, due) if due else None
    add_set = normalize_tags(plus)
    remove_set = set(normalize_tags(minus))

    for record in _resolve_all(store, tuple(tokens)):
        before = record.to_dict()
        if title is not None:
            record.title = title.strip()
        if due_at is not None:
            record.due_at = due_at
        elif clear_due:
            record.due_at = None
        if project is not None:
            record.project = project.strip()
        tags = [t for t in record.tags if t not in remove_set]
        record.tags = normalize_tags(tags + add_set)
        if record.to_dict() == before:
            click.echo(f"No changes for {_label(record)}")
            continue
        record.updated_at = utcnow()
        store.save(record)
        click.echo(f"Updated {_label(record)}")


# ---------------------------------------------------------------------------
# tk done / archive / reopen / remove
# ---------------------------------------------------------------------------


def _close(cfg: TKConfig, tokens: tuple[str, ...], status: str) -> None:
    store = _open_store(cfg)
    for record in _resolve_all(store, tokens):
        if record.status == status:
            click.echo(f"{record.id} is already {status}")
            continue
        label = _label(record)
        record.status = status
        record.short_id = None
        record.updated_at = utcnow()
        store.save(record)
        click.echo(f"Marked {label} as {status}")


@cli.command()
@click.argument("tokens", nargs=-1, required=True, metavar="ID...")
@pass_config
def done(cfg: TKConfig, tokens: tuple[str, ...]) -> None:
    """Mark threads as done."""
    _close(cfg, tokens, STATUS_DONE)


@cli.command()
@click.argument("tokens", nargs=-1, required=True, metavar="ID...")
@pass_config
def archive(cfg: TKConfig, tokens: tuple[str, ...]) -> None:
    """Archive threads."""
    _close(cfg, tokens, STATUS_ARCHIVED)


@cli.command()
@click.argument("ids", nargs=-1, required=True, metavar="DURABLE_ID...")
@pass_config
def reopen(cfg: TKConfig, ids: tuple[str, ...]) -> None:
    """Reopen done or archived threads by durable ID.

    Short ids only name open threads, so closed ones need the durable ID
    (see ``tk list --all``). Nothing changes unless every ID is found.
    """
    store = _open_store(cfg)
    records: list[ThreadRecord] = []
    missing: list[str] = []
    for thread_id in ids:
        record = store.get(thread_id.strip())
        if record is None:
            missing.append(thread_id)
        else:
            records.append(record)
    if missing:
        raise click.ClickException(f"thread(s) not found: {', '.join(missing)}")

    for record in records:
        if record.is_active:
            click.echo(f"{_label(store.ensure_short_id(record))} is already open")
            continue
        record.status = STATUS_OPEN
        record.short_id = None
        record.updated_at = utcnow()
        store.save(record)
        store.ensure_short_id(record)
        click.echo(f"Reopened {_label(record)}")


@cli.command()
@click.argument("tokens", nargs=-1, required=True, metavar="ID...")
@click.option("--force", is_flag=True, help="Required: removal cannot be undone")
@pass_config
def remove(cfg: TKConfig, tokens: tuple[str, ...], force: bool) -> None:
    """Delete threads and everything attached to them."""
    if not force:
        raise click.ClickException("refusing to remove threads without --force")
    store = _open_store(cfg)
    for record in _resolve_all(store, tokens):
        store.delete(record.id)
        click.echo(f"Removed {record.id}: {record.title}")


# ---------------------------------------------------------------------------
# tk reindex / path
# ---------------------------------------------------------------------------


@cli.command()
@pass_config
def reindex(cfg: TKConfig) -> None:
    """Renumber open threads 1..K by creation time."""
    store = _open_store(cfg)
    count = store.reindex()
    if count:
        click.echo(f"Reindexed {count} active threads with short IDs 1..{count}")
    else:
        click.echo("No active threads to reindex.")


@cli.command()
@click.argument("token", metavar="ID")
@pass_config
def path(cfg: TKConfig, token: str) -> None:
    """Print the directory holding a thread."""
    store = _open_store(cfg)
    record = store.resolve(token)
    click.echo(str(store.thread_dir(record.id)))


# ---------------------------------------------------------------------------
# tk attach / detach / rename / open
# ---------------------------------------------------------------------------


@cli.group()
def attach() -> None:
    """Attach a note or a link to a thread."""


@attach.command("note")
@click.option("--id", "token", required=True, metavar="ID", help="Thread to attach to")
@click.option(
    "--file", "source", type=click.File("rb"), default=None,
    help="Read the note from a file ('-' for stdin) instead of the editor",
)
@click.option("--name", default=None, help="Attachment name (default note-YYYYMMDD-HHMMSS)")
@pass_config
def attach_note(cfg: TKConfig, token: str, source: Any, name: str | None) -> None:
    """Attach a note, written in your editor or read from a file."""
    store = _open_store(cfg)
    record = store.resolve(token)

    if source is None:
        text = capture_note(record.title, cfg.editor)
        content = text.encode("utf-8") if text else b""
        media_type = "text/markdown"
    else:
        content = source.read()
        guessed, _ = mimetypes.guess_type(getattr(source, "name", "") or "")
        media_type = guessed or "text/plain"

    if not content.strip():
        click.echo("Note content is empty; attachment cancelled", err=True)
        return

    event = store.attach_note(record.id, content, name=name, media_type=media_type)
    digest = event.att.blob.hash  # type: ignore[union-attr]
    click.echo(f"Attached note {event.att.att_id} to {record.id} (sha256:{digest})")


@attach.command("link")
@click.option("--id", "token", required=True, metavar="ID", help="Thread to attach to")
@click.option("--url", required=True, help="Link target")
@click.option("--label", default="", help="Short label, also used as the name")
@pass_config
def attach_link(cfg: TKConfig, token: str, url: str, label: str) -> None:
    """Attach a link."""
    store = _open_store(cfg)
    record = store.resolve(token)
    event = store.attach_link(record.id, url=url.strip(), label=label.strip())
    att = event.att
    if att.label:
        click.echo(f"Attached link {att.att_id} to {record.id}: [{att.label}] {att.url}")
    else:
        click.echo(f"Attached link {att.att_id} to {record.id}: {att.url}")


@cli.command()
@click.option("--id", "token", required=True, metavar="ID", help="Thread")
@click.option("--att", type=int, default=None, help="Attachment index as shown by `tk show`")
@click.option("--att-id", default=None, help="Attachment ID")
@pass_config
def detach(cfg: TKConfig, token: str, att: int | None, att_id: str | None) -> None:
    """Hide an attachment. Its history stays in the ledger."""
    store = _open_store(cfg)
    record = store.resolve(token)
    target = _pick_attachment(store, record, att, att_id)
    store.detach(record.id, target.att)
    click.echo(f"Detached {target.att.att_id} ({target.att.name}) from {record.id}")


@cli.command()
@click.option("--id", "token", required=True, metavar="ID", help="Thread")
@click.option("--att", type=int, default=None, help="Attachment index as shown by `tk show`")
@click.option("--att-id", default=None, help="Attachment ID")
@click.argument("name")
@pass_config
def rename(cfg: TKConfig, token: str, att: int | None, att_id: str | None, name: str) -> None:
    """Give an attachment a new name."""
    store = _open_store(cfg)
    record = store.resolve(token)
    target = _pick_attachment(store, record, att, att_id)
    event = store.rename_attachment(record.id, target.att, name)
    click.echo(f"Renamed {event.att.att_id}: {target.att.name} -> {event.att.name}")


@cli.command("open")
@click.argument("token", metavar="ID")
@click.option("--att", type=int, default=None, help="Attachment index as shown by `tk show`")
@click.option("--att-id", default=None, help="Attachment ID")
@click.option("--print-path", is_flag=True, help="Print the URL or file path instead of opening it")
@pass_config
def open_attachment(
    cfg: TKConfig, token: str, att: int | None, att_id: str | None, print_path: bool
) -> None:
    """Open an attachment: links in the browser, notes in the default app."""
    store = _open_store(cfg)
    record = store.resolve(token)
    target = _pick_attachment(store, record, att, att_id).att

    if target.kind == KIND_LINK:
        if not target.url:
            raise click.ClickException("link attachment has no URL")
        location = target.url
    else:
        if target.blob is None:
            raise click.ClickException("note attachment has no blob reference")
        resolved = blob_path(store.thread_dir(record.id), target.blob)
        if resolved is None:
            msg = f"cannot resolve blob {target.blob.algo}:{target.blob.hash}"
            raise click.ClickException(msg)
        if not resolved.is_file():
            raise click.ClickException(f"blob file not found at {resolved}")
        location = str(resolved)

    if print_path:
        click.echo(location)
        return
    if click.launch(location) != 0:
        raise click.ClickException(f"failed to open {location}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
