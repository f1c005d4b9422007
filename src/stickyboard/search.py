"""Ad hoc search: a case-insensitive substring scan run per query."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .notes import (
    CodePayload,
    FilePayload,
    FolderPayload,
    LocationPayload,
    Note,
    ReminderPayload,
    TablePayload,
    TextPayload,
    TodoPayload,
    WebPayload,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .notes import NoteResolver

EXCERPT_CONTEXT = 30


@dataclass(frozen=True)
class SearchFilters:
    """Field categories a query is matched against."""

    titles: bool = True
    content: bool = True
    tags: bool = True
    archived: bool = False


@dataclass(frozen=True)
class SearchResult:
    note: Note
    title_match: bool
    content_match: bool
    tags_match: bool
    excerpt: str
    archived: bool


def searchable_content(note: Note, resolve: NoteResolver | None = None) -> str:
    """Type-specific text of ``note`` that content search looks at."""
    payload = note.payload
    match payload:
        case TextPayload():
            return payload.content
        case WebPayload():
            return f"{payload.web_url} {payload.web_title} {payload.web_description}"
        case LocationPayload():
            return (
                f"{payload.location_name} {payload.location_address}"
                f" {payload.location_notes}"
            )
        case ReminderPayload():
            return payload.reminder_message
        case TodoPayload():
            return " ".join(item.text for item in payload.todo_items)
        case TablePayload():
            return " ".join(cell for row in payload.table_data for cell in row)
        case FilePayload():
            return payload.file_path
        case CodePayload():
            return payload.code_content
        case FolderPayload() if resolve is not None:
            members = (resolve(item_id) for item_id in payload.folder_items)
            return " ".join(m.title for m in members if m is not None and m.title)
    return ""


def _excerpt(text: str, index: int, length: int) -> str:
    start = max(0, index - EXCERPT_CONTEXT)
    end = min(len(text), index + length + EXCERPT_CONTEXT)
    return text[start:end]


def _match(
    note: Note,
    needle: str,
    filters: SearchFilters,
    resolve: NoteResolver | None,
    *,
    archived: bool,
) -> SearchResult | None:
    title_match = filters.titles and needle in note.title.lower()
    tags_match = filters.tags and needle in " ".join(note.tags).lower()
    content_match = False
    excerpt = ""
    if filters.content:
        text = searchable_content(note, resolve)
        index = text.lower().find(needle)
        if index >= 0:
            content_match = True
            excerpt = _excerpt(text, index, len(needle))
    if not (title_match or content_match or tags_match):
        return None
    return SearchResult(
        note=note,
        title_match=title_match,
        content_match=content_match,
        tags_match=tags_match,
        excerpt=excerpt,
        archived=archived,
    )


def search_notes(
    notes: Sequence[Note],
    archived_notes: Sequence[Note],
    query: str,
    filters: SearchFilters | None = None,
    *,
    resolve: NoteResolver | None = None,
) -> list[SearchResult]:
    """Scan the notes for ``query``.

    Args:
        notes: Active notes, searched first.
        archived_notes: Archived notes, searched when ``filters.archived``.
        query: Case-insensitive substring; blank queries match nothing.
        filters: Enabled field categories. Defaults to everything but archived.
        resolve: Looks up folder members so folders match on member titles.

    Returns:
        Matches in discovery order, active notes before archived ones.

    """
    needle = query.strip().lower()
    if not needle:
        return []
    filters = filters or SearchFilters()

    results = []
    for note in notes:
        result = _match(note, needle, filters, resolve, archived=False)
        if result is not None:
            results.append(result)
    if filters.archived:
        for note in archived_notes:
            result = _match(note, needle, filters, resolve, archived=True)
            if result is not None:
                results.append(result)
    return results
