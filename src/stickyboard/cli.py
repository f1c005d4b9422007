"""CLI entry point using Typer."""

import json
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer

from stickyboard.board import Board
from stickyboard.config import default_config_path
from stickyboard.editing import todo_progress
from stickyboard.exporting import export_json
from stickyboard.logging_utils import setup_logging
from stickyboard.notes import NoteType, TimerType, display_title
from stickyboard.scheduling import NullScheduler
from stickyboard.search import SearchFilters
from stickyboard.utils import get_fs_and_path

R = TypeVar("R")

app = typer.Typer(help="StickyBoard CLI - Sticky notes across workspaces")
note_app = typer.Typer(help="Note management commands")
todo_app = typer.Typer(help="Todo list items")
folder_app = typer.Typer(help="Folder membership")
timer_app = typer.Typer(help="Countdown timers")
reminder_app = typer.Typer(help="One-shot reminders")
workspace_app = typer.Typer(help="Workspace selection")
export_app = typer.Typer(help="Export notes")
import_app = typer.Typer(help="Import notes")
config_app = typer.Typer(help="Application settings")

app.add_typer(note_app, name="note")
app.add_typer(todo_app, name="todo")
app.add_typer(folder_app, name="folder")
app.add_typer(timer_app, name="timer")
app.add_typer(reminder_app, name="reminder")
app.add_typer(workspace_app, name="workspace")
app.add_typer(export_app, name="export")
app.add_typer(import_app, name="import")
app.add_typer(config_app, name="config")

SetOption = Annotated[
    list[str] | None,
    typer.Option("--set", help="Field assignment as key=value (JSON values allowed)"),
]
OutputOption = Annotated[
    str | None,
    typer.Option("--output", "-o", help="Write to this path instead of stdout"),
]


def _message(error: Exception) -> str:
    if isinstance(error, KeyError) and error.args:
        return str(error.args[0])
    return str(error)


def handle_cli_errors(func: Callable[..., R]) -> Callable[..., R]:
    """Handle common CLI errors."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> R:  # noqa: ANN401
        try:
            return func(*args, **kwargs)
        except (typer.Exit, typer.Abort):
            raise
        except Exception as e:
            typer.echo(f"Error: {_message(e)}", err=True)
            raise typer.Exit(code=1) from e

    return wrapper


@app.callback()
def cmd_root(
    ctx: typer.Context,
    config: Annotated[
        str | None,
        typer.Option("--config", help="Path to config.json"),
    ] = None,
) -> None:
    """StickyBoard CLI - Sticky notes across workspaces."""
    ctx.obj = {"config_path": config or str(default_config_path())}


def _open_board(ctx: typer.Context) -> Board:
    config_path = (ctx.obj or {}).get("config_path") or str(default_config_path())
    board = Board(config_path=config_path, scheduler=NullScheduler())
    return board.open(background=False)


def _parse_value(raw: str) -> Any:  # noqa: ANN401
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _parse_assignments(assignments: list[str] | None) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for item in assignments or []:
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            msg = f"Expected key=value, got {item!r}"
            raise typer.BadParameter(msg)
        changes[key.strip()] = _parse_value(raw)
    return changes


def _emit(text: str, output: str | None) -> None:
    if output is None:
        typer.echo(text)
        return
    fs, path = get_fs_and_path(output)
    with fs.open(path, "w", encoding="utf-8") as handle:
        handle.write(text)
    typer.echo(f"Written to '{output}'.")


def _read_text(path: str) -> str:
    fs, fs_path = get_fs_and_path(path)
    with fs.open(fs_path, "r", encoding="utf-8") as handle:
        return handle.read()


# --- note --------------------------------------------------------------------


@note_app.command("create")
@handle_cli_errors
def cmd_note_create(
    ctx: typer.Context,
    note_type: Annotated[NoteType, typer.Argument(help="Type of the note")],
    title: Annotated[str | None, typer.Option(help="Title of the note")] = None,
    content: Annotated[str | None, typer.Option(help="Body of a text note")] = None,
    tag: Annotated[list[str] | None, typer.Option(help="Tag (repeatable)")] = None,
    x: Annotated[float, typer.Option(help="Canvas x coordinate")] = 0,
    y: Annotated[float, typer.Option(help="Canvas y coordinate")] = 0,
    assignments: SetOption = None,
) -> None:
    """Create a new note in the current workspace."""
    setup_logging()
    fields = _parse_assignments(assignments)
    if title is not None:
        fields["title"] = title
    if content is not None:
        fields["content"] = content
    if tag:
        fields["tags"] = tag
    board = _open_board(ctx)
    note = board.create_note(note_type, x, y, **fields)
    typer.echo(f"Note '{note.id}' created successfully.")


@note_app.command("list")
@handle_cli_errors
def cmd_note_list(
    ctx: typer.Context,
    note_type: Annotated[
        NoteType | None,
        typer.Option("--type", help="Only notes of this type"),
    ] = None,
    tag: Annotated[str | None, typer.Option(help="Only notes with this tag")] = None,
) -> None:
    """List the active notes of the current workspace."""
    setup_logging()
    board = _open_board(ctx)
    notes = [
        note
        for note in board.notes
        if (note_type is None or note.type is note_type)
        and (tag is None or tag in note.tags)
    ]
    if not notes:
        typer.echo("No notes found.")
        return
    for note in notes:
        typer.echo(f"- {note.id} [{note.type}] {display_title(note)}")


@note_app.command("archived")
@handle_cli_errors
def cmd_note_archived(ctx: typer.Context) -> None:
    """List the archived notes of the current workspace."""
    setup_logging()
    board = _open_board(ctx)
    if not board.archived_notes:
        typer.echo("No archived notes.")
        return
    for note in board.archived_notes:
        typer.echo(f"- {note.id} [{note.type}] {display_title(note)} ({note.archived_at})")


@note_app.command("show")
@handle_cli_errors
def cmd_note_show(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the note")],
) -> None:
    """Print a note's record as JSON."""
    setup_logging()
    board = _open_board(ctx)
    typer.echo(json.dumps(export_json(board.get_note(note_id)), indent=2))


@note_app.command("update")
@handle_cli_errors
def cmd_note_update(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the note")],
    title: Annotated[str | None, typer.Option(help="New title")] = None,
    tag: Annotated[list[str] | None, typer.Option(help="Replace tags (repeatable)")] = None,
    assignments: SetOption = None,
) -> None:
    """Update fields of a note."""
    setup_logging()
    changes = _parse_assignments(assignments)
    if title is not None:
        changes["title"] = title
    if tag:
        changes["tags"] = tag
    if not changes:
        typer.echo("Nothing to update.")
        return
    board = _open_board(ctx)
    board.update_note(note_id, **changes)
    typer.echo(f"Note '{note_id}' updated.")


@note_app.command("delete")
@handle_cli_errors
def cmd_note_delete(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the note")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask")] = False,
) -> None:
    """Delete a note permanently."""
    setup_logging()
    board = _open_board(ctx)
    note = board.get_note(note_id)
    if not yes and board.config.confirm_delete:
        typer.confirm(f"Delete '{display_title(note)}'?", abort=True)
    board.delete_note(note_id, confirm=True)
    typer.echo(f"Note '{note_id}' deleted.")


@note_app.command("archive")
@handle_cli_errors
def cmd_note_archive(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the note")],
) -> None:
    """Move a note to the archive."""
    setup_logging()
    _open_board(ctx).archive_note(note_id)
    typer.echo(f"Note '{note_id}' archived.")


@note_app.command("restore")
@handle_cli_errors
def cmd_note_restore(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the note")],
) -> None:
    """Bring an archived note back."""
    setup_logging()
    _open_board(ctx).restore_note(note_id)
    typer.echo(f"Note '{note_id}' restored.")


# --- todo --------------------------------------------------------------------


@todo_app.command("add")
@handle_cli_errors
def cmd_todo_add(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the todo note")],
    text: Annotated[str, typer.Argument(help="Item text")],
) -> None:
    """Append an item to a todo list."""
    setup_logging()
    board = _open_board(ctx)
    item = board.add_todo_item(note_id, text)
    typer.echo(f"Item '{item.id}' added. Progress: {board.todo_progress(note_id)}")


@todo_app.command("toggle")
@handle_cli_errors
def cmd_todo_toggle(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the todo note")],
    item_id: Annotated[str, typer.Argument(help="ID of the item")],
) -> None:
    """Check or uncheck an item."""
    setup_logging()
    board = _open_board(ctx)
    board.toggle_todo_item(note_id, item_id)
    typer.echo(f"Progress: {todo_progress(board.get_note(note_id))}")


# --- folder ------------------------------------------------------------------


@folder_app.command("add")
@handle_cli_errors
def cmd_folder_add(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the note to move")],
    folder_id: Annotated[str, typer.Argument(help="ID of the target folder")],
) -> None:
    """Put a note into a folder."""
    setup_logging()
    if not _open_board(ctx).add_to_folder(note_id, folder_id):
        typer.echo(f"Error: cannot put '{note_id}' into '{folder_id}'", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Note '{note_id}' added to folder '{folder_id}'.")


@folder_app.command("remove")
@handle_cli_errors
def cmd_folder_remove(
    ctx: typer.Context,
    folder_id: Annotated[str, typer.Argument(help="ID of the folder")],
    note_id: Annotated[str, typer.Argument(help="ID of the note to take out")],
) -> None:
    """Take a note out of a folder."""
    setup_logging()
    if not _open_board(ctx).remove_from_folder(folder_id, note_id):
        typer.echo(f"Note '{note_id}' is not in folder '{folder_id}'.")
        return
    typer.echo(f"Note '{note_id}' removed from folder '{folder_id}'.")


# --- timer -------------------------------------------------------------------


@timer_app.command("start")
@handle_cli_errors
def cmd_timer_start(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the timer note")],
) -> None:
    """Start a timer; it counts down while the app runs."""
    setup_logging()
    if not _open_board(ctx).start_timer(note_id):
        typer.echo("Error: timer has expired; reset it first", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Timer '{note_id}' started.")


@timer_app.command("pause")
@handle_cli_errors
def cmd_timer_pause(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the timer note")],
) -> None:
    """Pause a running timer."""
    setup_logging()
    _open_board(ctx).pause_timer(note_id)
    typer.echo(f"Timer '{note_id}' paused.")


@timer_app.command("reset")
@handle_cli_errors
def cmd_timer_reset(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the timer note")],
) -> None:
    """Stop a timer and restore its full duration."""
    setup_logging()
    _open_board(ctx).reset_timer(note_id)
    typer.echo(f"Timer '{note_id}' reset.")


@timer_app.command("preset")
@handle_cli_errors
def cmd_timer_preset(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the timer note")],
    timer_type: Annotated[TimerType, typer.Argument(help="Preset to apply")],
    minutes: Annotated[
        int | None,
        typer.Option(help="Duration in minutes for a custom timer"),
    ] = None,
) -> None:
    """Switch a timer to a preset or custom duration."""
    setup_logging()
    board = _open_board(ctx)
    if timer_type is TimerType.CUSTOM:
        seconds = board.set_custom_timer(note_id, minutes or 1)
    else:
        seconds = board.set_timer_preset(note_id, timer_type)
    typer.echo(f"Timer '{note_id}' set to {seconds // 60} min.")


# --- reminder ----------------------------------------------------------------


@reminder_app.command("set")
@handle_cli_errors
def cmd_reminder_set(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the reminder note")],
    when: Annotated[str, typer.Argument(help="Local time, e.g. 2026-01-31T09:00")],
    message: Annotated[str | None, typer.Option(help="Reminder message")] = None,
) -> None:
    """Schedule a reminder."""
    setup_logging()
    _open_board(ctx).set_reminder(note_id, when, message)
    typer.echo(f"Reminder '{note_id}' set for {when}.")


@reminder_app.command("check")
@handle_cli_errors
def cmd_reminder_check(ctx: typer.Context) -> None:
    """Fire reminders that are due now."""
    setup_logging()
    fired = _open_board(ctx).check_reminders()
    if not fired:
        typer.echo("No reminders due.")
    for note in fired:
        typer.echo(f"- {note.id}: {display_title(note)}")


@reminder_app.command("reset")
@handle_cli_errors
def cmd_reminder_reset(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the reminder note")],
) -> None:
    """Re-arm a reminder that already fired."""
    setup_logging()
    _open_board(ctx).reset_reminder(note_id)
    typer.echo(f"Reminder '{note_id}' re-armed.")


# --- search / workspace ------------------------------------------------------


@app.command("search")
@handle_cli_errors
def cmd_search(  # noqa: PLR0913
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Text to look for")],
    archived: Annotated[bool, typer.Option(help="Include archived notes")] = False,
    titles: Annotated[bool, typer.Option(help="Match titles")] = True,
    content: Annotated[bool, typer.Option(help="Match content")] = True,
    tags: Annotated[bool, typer.Option(help="Match tags")] = True,
) -> None:
    """Search notes in the current workspace."""
    setup_logging()
    filters = SearchFilters(titles=titles, content=content, tags=tags, archived=archived)
    results = _open_board(ctx).search(query, filters)
    if not results:
        typer.echo("No results found.")
        return
    for result in results:
        marker = " (archived)" if result.archived else ""
        line = f"- {result.note.id} [{result.note.type}] {display_title(result.note)}{marker}"
        if result.excerpt:
            line += f": ...{result.excerpt}..."
        typer.echo(line)


@workspace_app.command("show")
@handle_cli_errors
def cmd_workspace_show(ctx: typer.Context) -> None:
    """Print the current workspace."""
    setup_logging()
    board = _open_board(ctx)
    typer.echo(
        f"{board.workspace}: {len(board.notes)} notes, "
        f"{len(board.archived_notes)} archived",
    )


@workspace_app.command("switch")
@handle_cli_errors
def cmd_workspace_switch(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Workspace to switch to")],
) -> None:
    """Make another workspace current."""
    setup_logging()
    if _open_board(ctx).switch_workspace(name):
        typer.echo(f"Switched to workspace '{name}'.")
    else:
        typer.echo(f"Already in workspace '{name}'.")


# --- export / import ---------------------------------------------------------


@export_app.command("markdown")
@handle_cli_errors
def cmd_export_markdown(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the note")],
    output: OutputOption = None,
) -> None:
    """Export a note as Markdown."""
    setup_logging()
    board = _open_board(ctx)
    _emit(board.export_markdown(note_id), output)


@export_app.command("json")
@handle_cli_errors
def cmd_export_json(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the note")],
    output: OutputOption = None,
) -> None:
    """Export a note as JSON."""
    setup_logging()
    board = _open_board(ctx)
    _emit(json.dumps(export_json(board.get_note(note_id)), indent=2), output)


@export_app.command("html")
@handle_cli_errors
def cmd_export_html(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the note")],
    output: OutputOption = None,
) -> None:
    """Export a note as a standalone HTML page."""
    setup_logging()
    board = _open_board(ctx)
    _emit(board.export_html(note_id), output)


@export_app.command("share")
@handle_cli_errors
def cmd_export_share(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of the note")],
    output: OutputOption = None,
) -> None:
    """Print a note as shareable plain text."""
    setup_logging()
    board = _open_board(ctx)
    _emit(board.share_text(note_id), output)


@export_app.command("backup")
@handle_cli_errors
def cmd_export_backup(
    ctx: typer.Context,
    output: OutputOption = None,
) -> None:
    """Export every note of the current workspace."""
    setup_logging()
    board = _open_board(ctx)
    _emit(json.dumps(board.export_backup(), indent=2), output)


@export_app.command("png")
@handle_cli_errors
def cmd_export_png(
    ctx: typer.Context,
    note_id: Annotated[str, typer.Argument(help="ID of a paint, image or table note")],
    output: OutputOption = None,
) -> None:
    """Export a visual note as a PNG image."""
    setup_logging()
    board = _open_board(ctx)
    written = board.export_png(note_id, output)
    typer.echo(f"Written to '{written}'.")


@import_app.command("json")
@handle_cli_errors
def cmd_import_json(
    ctx: typer.Context,
    paths: Annotated[list[str], typer.Argument(help="JSON exports or backups")],
) -> None:
    """Import notes from JSON files; existing ids are skipped."""
    setup_logging()
    board = _open_board(ctx)
    imported = skipped = 0
    for path in paths:
        result = board.import_json(_read_text(path))
        imported += result.imported
        skipped += result.skipped
    typer.echo(f"Import complete! Imported: {imported} notes, skipped: {skipped} duplicates")


@import_app.command("markdown")
@handle_cli_errors
def cmd_import_markdown(
    ctx: typer.Context,
    paths: Annotated[list[str], typer.Argument(help="Markdown or text files")],
) -> None:
    """Import Markdown files as text notes."""
    setup_logging()
    board = _open_board(ctx)
    for path in paths:
        note = board.import_markdown(Path(path).name, _read_text(path))
        typer.echo(f"- {note.id}: {note.title}")
    typer.echo(f"Imported {len(paths)} markdown files as text notes.")


# --- config ------------------------------------------------------------------


@config_app.command("show")
@handle_cli_errors
def cmd_config_show(ctx: typer.Context) -> None:
    """Print the effective settings."""
    setup_logging()
    board = _open_board(ctx)
    typer.echo(json.dumps(board.config.to_json(), indent=2))


@config_app.command("set")
@handle_cli_errors
def cmd_config_set(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Setting, e.g. confirmDelete or hotkeys.search")],
    value: Annotated[str, typer.Argument(help="New value (JSON values allowed)")],
) -> None:
    """Change a setting and save it."""
    setup_logging()
    board = _open_board(ctx)
    parsed = _parse_value(value)
    section, _, name = key.partition(".")
    if name:
        board.update_config(**{section: {name: parsed}})
    else:
        board.update_config(**{key: parsed})
    typer.echo(f"Saved setting '{key}'.")


def main() -> None:
    """Entry point for the StickyBoard CLI."""
    app()


if __name__ == "__main__":
    main()
