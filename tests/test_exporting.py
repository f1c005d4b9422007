"""Tests for export formats and imports."""

import base64
import io
import json

import fsspec
import pytest
from PIL import Image

from stickyboard.editing import add_todo_item, toggle_todo, update_todo_text
from stickyboard.exporting import (
    BACKUP_VERSION,
    ExportError,
    export_backup,
    export_filename,
    export_html,
    export_json,
    export_markdown,
    export_png,
    import_json,
    import_markdown,
    parse_frontmatter,
    render_png,
    share_text,
)
from stickyboard.notes import Note, NoteType, create_note
from stickyboard.utils import fs_join


def _todo() -> Note:
    note = create_note("todo", note_id="todo-1")
    note.title = "Chores"
    first = note.payload.todo_items[0]
    update_todo_text(note, first.id, "a")
    toggle_todo(note, first.id)
    add_todo_item(note, "b")
    return note


def _png_data_url(size: tuple[int, int] = (4, 3)) -> str:
    buffer = io.BytesIO()
    Image.new("RGBA", size, "red").save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()


def test_markdown_todo() -> None:
    note = _todo()
    note.tags = ["home", "weekly"]
    assert export_markdown(note) == (
        "# Chores\n\n**Tags:** home, weekly\n\n## Tasks\n\n- [x] a\n- [ ] b\n"
    )


def test_markdown_code_and_table() -> None:
    code = create_note("code")
    code.payload.code_language = "python"
    code.payload.code_content = "print('hi')"
    assert export_markdown(code) == "## Code (python)\n\n```python\nprint('hi')\n```"

    table = create_note("table")
    table.payload.table_data = [["h1", "h2"], ["a"]]
    assert export_markdown(table) == "| h1 | h2 |\n| --- | --- |\n| a |  |"


def test_markdown_folder_lists_members() -> None:
    member = create_note("text", note_id="m")
    member.title = "Inside"
    folder = create_note("folder")
    folder.payload.folder_items = ["m", "gone"]
    markdown = export_markdown(folder, {"m": member}.get)
    assert markdown == "## Folder Contents\n\n- Inside (text)\n"


def test_export_filename_replaces_unsafe_characters() -> None:
    note = create_note("text")
    note.title = "My notes: v2"
    assert export_filename(note, "md") == "My_notes__v2.md"
    assert export_filename(create_note("paint"), "png", "_drawing") == "paint_drawing.png"


def test_share_text_footer() -> None:
    text = share_text(_todo())
    assert text.startswith("Chores\n======\n\n[x] a\n[ ] b")
    assert text.endswith("Shared from StickyBoard")


def test_html_escapes_content() -> None:
    note = create_note("text")
    note.title = "<b>Bold</b>"
    note.payload.content = "a < b & c"
    page = export_html(note)
    assert "&lt;b&gt;Bold&lt;/b&gt;" in page
    assert "a &lt; b &amp; c" in page
    assert "<b>Bold</b>" not in page


def test_backup_round_trip_skips_existing_ids() -> None:
    keep = create_note("text", note_id="keep")
    old = create_note("text", note_id="old")
    backup = export_backup([keep], [old], exported_at="2026-01-01T00:00:00+00:00")
    assert backup["version"] == BACKUP_VERSION

    result = import_json(json.dumps(backup), existing_ids={"keep"})
    assert result.skipped == 1
    assert [n.id for n in result.archived] == ["old"]
    assert result.imported == 1


def test_import_single_note_and_list() -> None:
    record = export_json(_todo())
    single = import_json(record)
    assert [n.id for n in single.notes] == ["todo-1"]
    assert single.notes[0].payload.todo_items[0].completed is True

    listed = import_json([record, record, {"title": "no id"}])
    assert len(listed.notes) == 1
    assert listed.skipped == 1
    assert listed.invalid == 1


def test_import_rejects_malformed_json() -> None:
    with pytest.raises(ExportError):
        import_json("{nope")


def test_frontmatter() -> None:
    meta, body = parse_frontmatter("---\ntitle: Plan\ntags: [a, b]\n---\nBody\n")
    assert meta == {"title": "Plan", "tags": ["a", "b"]}
    assert body == "Body\n"
    assert parse_frontmatter("no front matter") == ({}, "no front matter")


def test_import_markdown() -> None:
    note = import_markdown("notes/ideas.md", "---\ntags: idea\n---\n# Big\n")
    assert note.type is NoteType.TEXT
    assert note.title == "ideas"
    assert note.tags == ["idea"]
    assert note.payload.content == "# Big\n"

    plain = import_markdown("todo.txt", "just text")
    assert plain.title == "todo"
    assert plain.payload.content == "just text"


def test_render_png_paint() -> None:
    note = create_note("paint")
    note.payload.paint_data = _png_data_url()
    assert render_png(note).size == (4, 3)


def test_render_png_table_and_errors() -> None:
    table = create_note("table")
    table.title = "Scores"
    image = render_png(table)
    assert image.size[0] == int(table.width)

    with pytest.raises(ExportError, match="No drawing data"):
        render_png(create_note("paint"))
    with pytest.raises(ExportError, match="not available"):
        render_png(create_note("text"))


def test_export_png_writes_file(fs_impl: tuple[fsspec.AbstractFileSystem, str]) -> None:
    fs, root = fs_impl
    note = create_note("image")
    note.payload.image_path = _png_data_url((2, 2))

    target = export_png(note, fs_join(root, "out", "image.png"), fs=fs)

    with fs.open(target, "rb") as handle:
        assert Image.open(handle).size == (2, 2)
