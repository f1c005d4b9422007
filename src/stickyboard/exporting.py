"""Export notes to Markdown, JSON, HTML, share text and PNG; import them back."""

from __future__ import annotations

import base64
import binascii
import html
import io
import json
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

import yaml
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError
from pydantic import ValidationError

from .notes import (
    CalculatorPayload,
    CodePayload,
    FilePayload,
    FolderPayload,
    ImagePayload,
    LocationPayload,
    Note,
    NoteType,
    PaintPayload,
    ReminderPayload,
    TablePayload,
    TextPayload,
    TimerPayload,
    TodoPayload,
    WebPayload,
    create_note,
    display_title,
    normalize_tags,
    note_from_record,
    note_to_record,
    parse_local_datetime,
)
from .utils import fs_makedirs, get_fs_and_path, utc_now_iso

if TYPE_CHECKING:
    import fsspec

    from .notes import NoteResolver

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"
APP_NAME = "StickyBoard"
MARKDOWN_SUFFIXES = (".md", ".markdown", ".txt")
FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)
UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9]")

TABLE_PNG_BACKGROUND = "white"
TABLE_PNG_INK = "#333333"
TABLE_PNG_MARGIN = 10
TABLE_PNG_TITLE_HEIGHT = 30
TABLE_PNG_ROW_HEIGHT = 20


class ExportError(ValueError):
    """Raised when a note cannot be exported in the requested format."""


@dataclass
class ImportResult:
    """Outcome of a JSON import.

    Attributes:
        notes: Notes to add to the active collection.
        archived: Notes to add to the archive.
        skipped: Records whose id is already in use.
        invalid: Records without an id or type.

    """

    notes: list[Note] = field(default_factory=list)
    archived: list[Note] = field(default_factory=list)
    skipped: int = 0
    invalid: int = 0

    @property
    def imported(self) -> int:
        return len(self.notes) + len(self.archived)


def export_filename(note: Note, extension: str, suffix: str = "") -> str:
    """Download name for ``note``: the title with unsafe characters replaced."""
    stem = UNSAFE_FILENAME_CHARS.sub("_", note.title or note.type.value)
    return f"{stem}{suffix}.{extension}"


def _format_when(value: str) -> str:
    when = parse_local_datetime(value)
    return when.strftime("%Y-%m-%d %H:%M") if when else value


def _folder_lines(payload: FolderPayload, resolve: NoteResolver | None) -> list[Note]:
    if resolve is None:
        return []
    members = (resolve(item_id) for item_id in payload.folder_items)
    return [member for member in members if member is not None]


# --- markdown ---------------------------------------------------------------


def _markdown_table(rows: list[list[str]]) -> str:
    width = max(len(row) for row in rows)
    padded = [row + [""] * (width - len(row)) for row in rows]
    lines = ["| " + " | ".join(padded[0]) + " |", "|" + " --- |" * width]
    lines.extend("| " + " | ".join(row) + " |" for row in padded[1:])
    return "\n".join(lines)


def _markdown_body(note: Note, resolve: NoteResolver | None) -> str:  # noqa: C901, PLR0911
    payload = note.payload
    match payload:
        case TextPayload():
            return payload.content
        case CodePayload():
            return (
                f"## Code ({payload.code_language})\n\n"
                f"```{payload.code_language}\n{payload.code_content}\n```"
            )
        case TodoPayload():
            items = "".join(
                f"- [{'x' if item.completed else ' '}] {item.text}\n"
                for item in payload.todo_items
            )
            return f"## Tasks\n\n{items}"
        case WebPayload():
            parts = []
            if payload.web_url:
                label = payload.web_title or payload.web_url
                parts.append(f"**URL:** [{label}]({payload.web_url})")
            if payload.web_description:
                parts.append(payload.web_description)
            return "\n\n".join(parts)
        case LocationPayload():
            parts = []
            if payload.location_name:
                parts.append(f"**Location:** {payload.location_name}")
            if payload.location_address:
                parts.append(f"**Address:** {payload.location_address}")
            if payload.location_notes:
                parts.append(payload.location_notes)
            return "\n\n".join(parts)
        case ReminderPayload():
            parts = []
            if payload.reminder_date_time:
                parts.append(f"**Reminder:** {_format_when(payload.reminder_date_time)}")
            if payload.reminder_message:
                parts.append(payload.reminder_message)
            return "\n\n".join(parts)
        case FolderPayload():
            items = "".join(
                f"- {member.title or 'Untitled'} ({member.type})\n"
                for member in _folder_lines(payload, resolve)
            )
            return f"## Folder Contents\n\n{items}"
        case TablePayload() if payload.table_data:
            return _markdown_table(payload.table_data)
        case CalculatorPayload() if payload.calculator_history:
            return "## History\n\n" + "".join(
                f"- {entry}\n" for entry in payload.calculator_history
            )
        case TimerPayload():
            remaining = payload.timer_remaining // 60
            return f"**Timer:** {remaining} of {payload.timer_duration // 60} min left"
        case FilePayload() if payload.file_path:
            return f"**File:** {payload.file_path}"
        case ImagePayload() if payload.image_path.startswith(("/", "file:", "http")):
            return f"![{note.title or 'image'}]({payload.image_path})"
    return ""


def export_markdown(note: Note, resolve: NoteResolver | None = None) -> str:
    """Render ``note`` as a Markdown document.

    Args:
        note: Note to render.
        resolve: Looks up folder members; without it folders list nothing.

    Returns:
        Markdown text: title heading, tags line, then a type-specific body.

    """
    markdown = ""
    if note.title:
        markdown += f"# {note.title}\n\n"
    if note.tags:
        markdown += f"**Tags:** {', '.join(note.tags)}\n\n"
    return markdown + _markdown_body(note, resolve)


# --- json -------------------------------------------------------------------


def export_json(note: Note) -> dict[str, Any]:
    """Return the note's full record, importable with ``import_json``."""
    return note_to_record(note)


def export_backup(
    notes: Iterable[Note],
    archived_notes: Iterable[Note],
    exported_at: str | None = None,
) -> dict[str, Any]:
    """Return a full backup document of both collections."""
    return {
        "notes": [note_to_record(note) for note in notes],
        "archivedNotes": [note_to_record(note) for note in archived_notes],
        "exportedAt": exported_at or utc_now_iso(),
        "version": BACKUP_VERSION,
    }


def _records(value: Any) -> list[Any]:  # noqa: ANN401
    return value if isinstance(value, list) else []


def import_json(
    payload: str | bytes | Mapping[str, Any] | list[Any],
    existing_ids: Iterable[str] = (),
) -> ImportResult:
    """Parse a backup, a list of notes or a single note.

    Records whose id is already taken, in ``existing_ids`` or earlier in the
    same payload, are skipped. Records lacking an id or a type are invalid.

    Raises:
        ExportError: If ``payload`` is not valid JSON.

    """
    if isinstance(payload, str | bytes):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            msg = f"Not a valid JSON export: {e}"
            raise ExportError(msg) from e

    if isinstance(payload, Mapping) and isinstance(payload.get("notes"), list):
        active, archived = payload["notes"], _records(payload.get("archivedNotes"))
    elif isinstance(payload, list):
        active, archived = payload, []
    else:
        active, archived = [payload], []

    result = ImportResult()
    taken = set(existing_ids)
    for records, target, is_archived in (
        (active, result.notes, False),
        (archived, result.archived, True),
    ):
        for record in records:
            if not (
                isinstance(record, Mapping) and record.get("id") and record.get("type")
            ):
                result.invalid += 1
                continue
            if str(record["id"]) in taken:
                result.skipped += 1
                continue
            try:
                note = note_from_record(record)
            except ValidationError as e:
                logger.warning("Skipping unreadable import record %s: %s", record["id"], e)
                result.invalid += 1
                continue
            note.created_at = note.created_at or utc_now_iso()
            if isinstance(note.payload, TimerPayload):
                note.payload.detached = False
                if is_archived:
                    note.payload.timer_running = False
            taken.add(note.id)
            target.append(note)
    logger.info(
        "Import parsed: %d notes, %d skipped, %d invalid",
        result.imported,
        result.skipped,
        result.invalid,
    )
    return result


def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split YAML front matter from a Markdown body.

    Returns:
        ``(frontmatter, body)``; an empty dict when there is none or it does
        not parse to a mapping.

    """
    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        return {}, content
    try:
        parsed = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        logger.warning("Failed to parse frontmatter: %s", exc)
        return {}, content
    if not isinstance(parsed, dict):
        return {}, content
    return parsed, content[match.end() :]


def import_markdown(name: str, content: str, x: float = 0, y: float = 0) -> Note:
    """Create a text note from a Markdown file.

    The title comes from front matter ``title`` or else the file name
    without its extension; front matter ``tags`` become the note's tags.
    """
    frontmatter, body = parse_frontmatter(content)
    stem = name.rsplit("/", 1)[-1]
    for suffix in MARKDOWN_SUFFIXES:
        if stem.lower().endswith(suffix):
            stem = stem[: -len(suffix)]
            break
    note = create_note(NoteType.TEXT, x, y)
    note.title = str(frontmatter.get("title") or stem)
    tags = frontmatter.get("tags") or []
    note.tags = normalize_tags(tags if isinstance(tags, list | str) else [str(tags)])
    assert isinstance(note.payload, TextPayload)  # noqa: S101
    note.payload.content = body if frontmatter else content
    return note


# --- html / share text ------------------------------------------------------


def plain_text_content(note: Note, resolve: NoteResolver | None = None) -> str:
    """Type-specific body as plain text."""
    payload = note.payload
    match payload:
        case CodePayload():
            return f"Code ({payload.code_language or 'Plain text'}):\n\n{payload.code_content}"
        case TodoPayload():
            if not payload.todo_items:
                return "No tasks"
            return "\n".join(
                f"{'[x]' if item.completed else '[ ]'} {item.text}"
                for item in payload.todo_items
            )
        case WebPayload():
            return f"Website: {payload.web_url}\n\n{payload.web_description}".rstrip()
        case LocationPayload():
            lines = []
            if payload.location_name:
                lines.append(f"Location: {payload.location_name}")
            if payload.location_address:
                lines.append(f"Address: {payload.location_address}")
            text = "\n".join(lines)
            if payload.location_notes:
                text += f"\n\n{payload.location_notes}"
            return text
        case ReminderPayload():
            text = payload.reminder_message
            if payload.reminder_date_time:
                text += f"\n\nReminder: {_format_when(payload.reminder_date_time)}"
            return text.strip()
        case TablePayload():
            return "\n".join(" | ".join(row) for row in payload.table_data)
        case FolderPayload():
            return "\n".join(
                f"- {display_title(member)}" for member in _folder_lines(payload, resolve)
            )
    return _markdown_body(note, resolve)


def _created(note: Note) -> str:
    if not note.created_at:
        return "Unknown"
    try:
        return datetime.fromisoformat(note.created_at).strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return note.created_at


def share_text(note: Note, resolve: NoteResolver | None = None) -> str:
    """Plain text suitable for pasting into a chat or an email."""
    text = ""
    if note.title:
        text += f"{note.title}\n{'=' * len(note.title)}\n\n"
    text += plain_text_content(note, resolve)
    if note.tags:
        text += f"\n\nTags: {', '.join(note.tags)}"
    text += f"\n\n---\nCreated: {_created(note)}"
    text += f"\nShared from {APP_NAME}"
    return text


HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{page_title}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            line-height: 1.6;
            max-width: 800px;
            margin: 0 auto;
            padding: 20px;
            background: #f8f9fa;
        }}
        .note-container {{
            background: white;
            padding: 30px;
            border-radius: 12px;
            border-top: 6px solid {color};
            box-shadow: 0 2px 10px rgba(0,0,0,0.1);
        }}
        .note-title {{
            font-size: 28px;
            margin: 0 0 20px 0;
            color: #2c3e50;
        }}
        .note-meta {{ color: #7f8c8d; font-size: 14px; margin-bottom: 20px; }}
        .tag {{
            background: #3498db;
            color: white;
            padding: 4px 8px;
            border-radius: 4px;
            font-size: 12px;
            margin-right: 8px;
        }}
        .note-content {{ white-space: pre-wrap; color: #2c3e50; }}
        .code-content {{
            background: #f1f2f6;
            padding: 20px;
            border-left: 4px solid #3498db;
            font-family: 'Courier New', monospace;
        }}
        .footer {{
            margin-top: 30px;
            border-top: 1px solid #eee;
            color: #95a5a6;
            font-size: 12px;
            text-align: center;
        }}
    </style>
</head>
<body>
    <div class="note-container">
        {title}
        <div class="note-meta">Created: {created}{tag_count}</div>
        {tags}
        <div class="note-content{content_class}">{content}</div>
        <div class="footer">Shared from {app_name}</div>
    </div>
</body>
</html>
"""


def export_html(note: Note, resolve: NoteResolver | None = None) -> str:
    """Self-contained styled HTML page for ``note``; all text is escaped."""
    tag_count = ""
    if note.tags:
        tag_count = f" &middot; {len(note.tags)} tag{'s' if len(note.tags) > 1 else ''}"
    tags = "".join(f'<span class="tag">{html.escape(tag)}</span>' for tag in note.tags)
    return HTML_TEMPLATE.format(
        page_title=html.escape(note.title or f"{APP_NAME} Note"),
        color=note.color,
        title=f'<h1 class="note-title">{html.escape(note.title)}</h1>' if note.title else "",
        created=html.escape(_created(note)),
        tag_count=tag_count,
        tags=f'<div class="note-tags">{tags}</div>' if tags else "",
        content_class=" code-content" if note.type is NoteType.CODE else "",
        content=html.escape(plain_text_content(note, resolve)),
        app_name=APP_NAME,
    )


# --- png --------------------------------------------------------------------


def _decode_data_url(data_url: str) -> bytes:
    header, _, encoded = data_url.partition(",")
    if not header.startswith("data:") or ";base64" not in header:
        msg = "Image data is not a base64 data URL"
        raise ExportError(msg)
    try:
        return base64.b64decode(encoded, validate=True)
    except binascii.Error as e:
        msg = f"Image data is not valid base64: {e}"
        raise ExportError(msg) from e


def _open_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        msg = f"Could not decode image: {e}"
        raise ExportError(msg) from e
    return image


def _render_table(note: Note) -> Image.Image:
    assert isinstance(note.payload, TablePayload)  # noqa: S101
    rows = note.payload.table_data
    height = TABLE_PNG_MARGIN * 2 + TABLE_PNG_TITLE_HEIGHT + TABLE_PNG_ROW_HEIGHT * len(rows)
    image = Image.new(
        "RGB",
        (int(note.width), max(int(note.height), height)),
        TABLE_PNG_BACKGROUND,
    )
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default()
    y = TABLE_PNG_MARGIN
    if note.title:
        draw.text((TABLE_PNG_MARGIN, y), note.title, fill=TABLE_PNG_INK, font=font)
        y += TABLE_PNG_TITLE_HEIGHT
    for index, row in enumerate(rows, start=1):
        draw.text(
            (TABLE_PNG_MARGIN, y),
            f"{index}. {' | '.join(row)}",
            fill=TABLE_PNG_INK,
            font=font,
        )
        y += TABLE_PNG_ROW_HEIGHT
    return image


def _load_image_path(image_path: str) -> bytes:
    if image_path.startswith("data:"):
        return _decode_data_url(image_path)
    fs, path = get_fs_and_path(image_path)
    try:
        with fs.open(path, "rb") as handle:
            return handle.read()
    except OSError as e:
        msg = f"Could not read image {image_path}: {e}"
        raise ExportError(msg) from e


def render_png(note: Note) -> Image.Image:
    """Rasterize a paint, image or table note.

    Raises:
        ExportError: For other note types, or when there is nothing to export.

    """
    payload = note.payload
    match payload:
        case PaintPayload():
            if not payload.paint_data:
                msg = "No drawing data found to export."
                raise ExportError(msg)
            return _open_image(_decode_data_url(payload.paint_data))
        case ImagePayload():
            if not payload.image_path:
                msg = "No image data found to export."
                raise ExportError(msg)
            return _open_image(_load_image_path(payload.image_path))
        case TablePayload():
            return _render_table(note)
    msg = f"PNG export is not available for {note.type} notes."
    raise ExportError(msg)


def export_png(
    note: Note,
    path: str,
    fs: fsspec.AbstractFileSystem | None = None,
) -> str:
    """Write ``note`` as a PNG file and return the path written."""
    image = render_png(note)
    fs_obj, target = get_fs_and_path(path, fs)
    parent = target.rsplit("/", 1)[0]
    if parent and parent != target:
        fs_makedirs(fs_obj, parent)
    with fs_obj.open(target, "wb") as handle:
        image.save(handle, format="PNG")
    logger.info("Exported note %s as PNG to %s", note.id, target)
    return target
