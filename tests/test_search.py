"""Tests for note search."""

from stickyboard.notes import Note, apply_changes, create_note
from stickyboard.search import SearchFilters, search_notes, searchable_content


def _note(note_type: str, note_id: str, **changes: object) -> Note:
    note = create_note(note_type, note_id=note_id)
    if changes:
        apply_changes(note, **changes)
    return note


def test_blank_query_matches_nothing() -> None:
    notes = [_note("text", "n1", content="anything")]
    assert search_notes(notes, [], "   ") == []


def test_matches_title_content_and_tags_case_insensitively() -> None:
    notes = [
        _note("text", "by-title", title="Groceries"),
        _note("text", "by-content", content="buy more GROCERIES today"),
        _note("text", "by-tag", tags=["groceries"]),
        _note("text", "miss", content="nothing here"),
    ]
    results = search_notes(notes, [], "groceries")

    assert [r.note.id for r in results] == ["by-title", "by-content", "by-tag"]
    assert results[0].title_match is True
    assert results[1].content_match is True
    assert results[1].excerpt == "buy more GROCERIES today"
    assert results[2].tags_match is True


def test_filters_disable_categories() -> None:
    notes = [_note("text", "n1", title="Plan", content="plan b")]
    only_content = SearchFilters(titles=False, tags=False)

    results = search_notes(notes, [], "plan", only_content)
    assert results[0].title_match is False
    assert results[0].content_match is True

    assert search_notes(notes, [], "plan", SearchFilters(content=False, titles=False)) == []


def test_archived_only_when_requested() -> None:
    active = [_note("text", "a", title="report")]
    archived = [_note("text", "z", title="old report")]

    assert [r.note.id for r in search_notes(active, archived, "report")] == ["a"]
    results = search_notes(active, archived, "report", SearchFilters(archived=True))
    assert [(r.note.id, r.archived) for r in results] == [("a", False), ("z", True)]


def test_excerpt_is_windowed() -> None:
    text = "x" * 100 + "needle" + "y" * 100
    results = search_notes([_note("text", "n1", content=text)], [], "needle")
    assert results[0].excerpt == "x" * 30 + "needle" + "y" * 30


def test_type_specific_content() -> None:
    todo = create_note("todo")
    todo.payload.todo_items[0].text = "water plants"
    table = create_note("table")
    web = _note("web", "w", webUrl="https://example.org", webDescription="docs")

    assert "water plants" in searchable_content(todo)
    assert "Row 2, Col 3" in searchable_content(table)
    assert "example.org" in searchable_content(web)
    assert searchable_content(create_note("calculator")) == ""


def test_folder_matches_member_titles() -> None:
    member = _note("text", "m", title="Quarterly numbers")
    folder = _note("folder", "f")
    folder.payload.folder_items = ["m"]
    lookup = {"m": member}.get

    results = search_notes([folder], [], "quarterly", resolve=lookup)
    assert [r.note.id for r in results] == ["f"]
