"""Note entity model.

A note is a common envelope (identity, geometry, tags, folder membership)
plus a payload whose shape is fixed by the note's type. On disk a note is a
flat camelCase record holding the envelope and the payload fields of its own
type; loading a record heals missing or broken fields with defaults.
"""

import logging
import re
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from enum import StrEnum
from pathlib import PurePath
from typing import Annotated, Any, Literal, Self, TypeVar
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .utils import new_note_id, utc_now_iso

logger = logging.getLogger(__name__)


class NoteType(StrEnum):
    """The closed set of note types."""

    TEXT = "text"
    FILE = "file"
    IMAGE = "image"
    PAINT = "paint"
    TODO = "todo"
    REMINDER = "reminder"
    WEB = "web"
    TABLE = "table"
    LOCATION = "location"
    CALCULATOR = "calculator"
    TIMER = "timer"
    FOLDER = "folder"
    CODE = "code"


class TimerType(StrEnum):
    """Timer presets; ``custom`` covers any user-chosen duration."""

    POMODORO = "pomodoro"
    SHORT_BREAK = "short-break"
    LONG_BREAK = "long-break"
    CUSTOM = "custom"


class NoteTypeError(TypeError):
    """Raised when an operation is applied to a note of the wrong type."""


class ProtectedFieldError(ValueError):
    """Raised when a generic update targets a field owned by a subsystem."""


class UnknownFieldError(ValueError):
    """Raised when a generic update names a field the note does not have."""


NOTE_PALETTE = (
    "#ffd700",
    "#ff69b4",
    "#90ee90",
    "#87ceeb",
    "#dda0dd",
    "#ffa500",
    "#ffffff",
    "#d3d3d3",
)
DEFAULT_COLOR = NOTE_PALETTE[0]
FOLDER_COLOR = "#FFA726"
HEX_COLOR_PATTERN = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")

DEFAULT_SIZES: dict[NoteType, tuple[int, int]] = {
    NoteType.TEXT: (280, 200),
    NoteType.FILE: (300, 180),
    NoteType.IMAGE: (320, 250),
    NoteType.PAINT: (400, 320),
    NoteType.TODO: (320, 250),
    NoteType.REMINDER: (350, 280),
    NoteType.WEB: (420, 400),
    NoteType.TABLE: (450, 300),
    NoteType.LOCATION: (380, 320),
    NoteType.CALCULATOR: (300, 380),
    NoteType.TIMER: (350, 360),
    NoteType.FOLDER: (320, 280),
    NoteType.CODE: (450, 320),
}

# A new note is centred roughly under the point it was created at.
NEW_NOTE_OFFSET_X = 125
NEW_NOTE_OFFSET_Y = 90

DEFAULT_TIMER_SECONDS = 25 * 60
DEFAULT_CODE_LANGUAGE = "javascript"
AUTO_TITLE_LENGTH = 30

TIMER_LABELS = {
    TimerType.POMODORO: "Pomodoro Timer",
    TimerType.SHORT_BREAK: "Short Break",
    TimerType.LONG_BREAK: "Long Break",
}

# Record keys that may legitimately hold ``null`` on disk.
NULLABLE_KEYS = frozenset({"parentFolder", "canvasWidth", "canvasHeight"})

# Fields owned by the folder, timer, reminder and archive machinery.
PROTECTED_FIELDS = frozenset(
    {
        "id",
        "type",
        "payload",
        "parent_folder",
        "archived_at",
        "created_at",
        "folder_items",
        "timer_running",
        "timer_remaining",
        "timer_duration",
        "timer_type",
        "detached",
        "reminder_triggered",
    },
)

CODE_DEFINITION_PATTERN = re.compile(
    r"(?:function|def|class|const|let|var)\s+([a-zA-Z_$][a-zA-Z0-9_$]*)",
)


def _loose_str(value: Any) -> Any:  # noqa: ANN401
    """Coerce numbers and ``None`` to strings; older files store numeric ids."""
    if value is None:
        return ""
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    return value


LooseStr = Annotated[str, BeforeValidator(_loose_str)]

_CAMEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    validate_assignment=True,
)


def _short_id() -> str:
    return uuid.uuid4().hex[:12]


class TodoItem(BaseModel):
    """A single checklist entry."""

    model_config = _CAMEL_CONFIG

    id: LooseStr = Field(default_factory=_short_id)
    text: LooseStr = ""
    completed: bool = False


class TextPayload(BaseModel):
    model_config = _CAMEL_CONFIG

    type: Literal["text"] = "text"
    content: LooseStr = ""


class FilePayload(BaseModel):
    model_config = _CAMEL_CONFIG

    type: Literal["file"] = "file"
    file_path: LooseStr = ""


class ImagePayload(BaseModel):
    model_config = _CAMEL_CONFIG

    type: Literal["image"] = "image"
    image_path: LooseStr = ""


class PaintPayload(BaseModel):
    """Raster drawing stored as a data URL."""

    model_config = _CAMEL_CONFIG

    type: Literal["paint"] = "paint"
    paint_data: LooseStr = ""
    canvas_width: int | None = None
    canvas_height: int | None = None


class TodoPayload(BaseModel):
    model_config = _CAMEL_CONFIG

    type: Literal["todo"] = "todo"
    todo_items: list[TodoItem] = Field(default_factory=list)


class ReminderPayload(BaseModel):
    """One-shot reminder; ``reminder_date_time`` is a local ISO timestamp."""

    model_config = _CAMEL_CONFIG

    type: Literal["reminder"] = "reminder"
    reminder_date_time: LooseStr = ""
    reminder_message: LooseStr = ""
    reminder_triggered: bool = False


class WebPayload(BaseModel):
    model_config = _CAMEL_CONFIG

    type: Literal["web"] = "web"
    web_url: LooseStr = ""
    web_title: LooseStr = ""
    web_description: LooseStr = ""


class TablePayload(BaseModel):
    """Grid of strings; row 0 is the header by convention."""

    model_config = _CAMEL_CONFIG

    type: Literal["table"] = "table"
    table_data: list[list[LooseStr]] = Field(default_factory=list)


class LocationPayload(BaseModel):
    model_config = _CAMEL_CONFIG

    type: Literal["location"] = "location"
    location_name: LooseStr = ""
    location_address: LooseStr = ""
    location_notes: LooseStr = ""


class CalculatorPayload(BaseModel):
    """Calculator display and history.

    The pending operand/operator live in private attributes and are never
    written to disk.
    """

    model_config = _CAMEL_CONFIG

    type: Literal["calculator"] = "calculator"
    calculator_display: LooseStr = "0"
    calculator_history: list[LooseStr] = Field(default_factory=list)

    _pending_value: float | None = PrivateAttr(default=None)
    _pending_operator: str | None = PrivateAttr(default=None)
    _waiting_for_operand: bool = PrivateAttr(default=False)


class TimerPayload(BaseModel):
    """Countdown state; ``timer_remaining`` never exceeds ``timer_duration``."""

    model_config = _CAMEL_CONFIG

    type: Literal["timer"] = "timer"
    timer_duration: int = Field(default=DEFAULT_TIMER_SECONDS, ge=1)
    timer_remaining: int = Field(default=DEFAULT_TIMER_SECONDS, ge=0)
    timer_running: bool = False
    timer_type: TimerType = TimerType.POMODORO
    detached: bool = False

    @model_validator(mode="after")
    def _clamp_remaining(self) -> Self:
        if self.timer_remaining > self.timer_duration:
            self.timer_remaining = self.timer_duration
        if self.timer_remaining == 0 and self.timer_running:
            self.timer_running = False
        return self


class FolderPayload(BaseModel):
    model_config = _CAMEL_CONFIG

    type: Literal["folder"] = "folder"
    folder_items: list[LooseStr] = Field(default_factory=list)


class CodePayload(BaseModel):
    model_config = _CAMEL_CONFIG

    type: Literal["code"] = "code"
    code_content: LooseStr = ""
    code_language: LooseStr = DEFAULT_CODE_LANGUAGE


Payload = Annotated[
    TextPayload
    | FilePayload
    | ImagePayload
    | PaintPayload
    | TodoPayload
    | ReminderPayload
    | WebPayload
    | TablePayload
    | LocationPayload
    | CalculatorPayload
    | TimerPayload
    | FolderPayload
    | CodePayload,
    Field(discriminator="type"),
]

PAYLOAD_MODELS: dict[NoteType, type[BaseModel]] = {
    NoteType.TEXT: TextPayload,
    NoteType.FILE: FilePayload,
    NoteType.IMAGE: ImagePayload,
    NoteType.PAINT: PaintPayload,
    NoteType.TODO: TodoPayload,
    NoteType.REMINDER: ReminderPayload,
    NoteType.WEB: WebPayload,
    NoteType.TABLE: TablePayload,
    NoteType.LOCATION: LocationPayload,
    NoteType.CALCULATOR: CalculatorPayload,
    NoteType.TIMER: TimerPayload,
    NoteType.FOLDER: FolderPayload,
    NoteType.CODE: CodePayload,
}


class Note(BaseModel):
    """A note on the canvas: common envelope plus a type-specific payload."""

    model_config = _CAMEL_CONFIG

    id: str
    title: LooseStr = ""
    x: float = 0.0
    y: float = 0.0
    width: float = DEFAULT_SIZES[NoteType.TEXT][0]
    height: float = DEFAULT_SIZES[NoteType.TEXT][1]
    color: str = DEFAULT_COLOR
    tags: list[LooseStr] = Field(default_factory=list)
    parent_folder: str | None = None
    collapsed: bool = False
    created_at: str | None = None
    archived_at: str | None = None
    payload: Payload

    @field_validator("color")
    @classmethod
    def _check_color(cls, value: str) -> str:
        if not HEX_COLOR_PATTERN.match(value):
            msg = f"Invalid color: {value}. Must be a hex color such as #ffd700."
            raise ValueError(msg)
        return value

    @property
    def type(self) -> NoteType:
        """The note type, fixed by the payload variant."""
        return NoteType(self.payload.type)


_ENVELOPE_KEYS = frozenset(
    info.alias or name for name, info in Note.model_fields.items() if name != "payload"
)

ModelT = TypeVar("ModelT", bound=BaseModel)


def default_color(note_type: NoteType) -> str:
    """Return the initial color for a note of ``note_type``."""
    return FOLDER_COLOR if note_type is NoteType.FOLDER else DEFAULT_COLOR


def coerce_note_type(value: Any) -> NoteType:  # noqa: ANN401
    """Return ``value`` as a ``NoteType``, falling back to ``text``."""
    try:
        return NoteType(value)
    except ValueError:
        return NoteType.TEXT


def table_placeholder() -> list[list[str]]:
    """Return the 3x3 grid a new table note starts with."""
    header = [f"Header {col}" for col in range(1, 4)]
    rows = [[f"Row {row}, Col {col}" for col in range(1, 4)] for row in range(1, 3)]
    return [header, *rows]


def create_note(
    note_type: NoteType | str,
    x: float = 0,
    y: float = 0,
    *,
    note_id: str | None = None,
    created_at: str | None = None,
) -> Note:
    """Create a note of ``note_type`` with type-appropriate defaults.

    Args:
        note_type: One of the ``NoteType`` values.
        x: Horizontal canvas coordinate the note was requested at.
        y: Vertical canvas coordinate the note was requested at.
        note_id: Optional identifier; a fresh one is generated otherwise.
        created_at: Optional creation timestamp; defaults to now (UTC).

    Returns:
        The new note. It is not added to any store.

    Raises:
        ValueError: If ``note_type`` is not a known note type.

    """
    try:
        kind = NoteType(note_type)
    except ValueError as e:
        msg = f"Unknown note type: {note_type}"
        raise ValueError(msg) from e

    payload = PAYLOAD_MODELS[kind]()
    if isinstance(payload, TodoPayload):
        payload.todo_items = [TodoItem()]
    elif isinstance(payload, TablePayload):
        payload.table_data = table_placeholder()

    width, height = DEFAULT_SIZES[kind]
    return Note(
        id=note_id or new_note_id(),
        x=x - NEW_NOTE_OFFSET_X,
        y=y - NEW_NOTE_OFFSET_Y,
        width=width,
        height=height,
        color=default_color(kind),
        created_at=created_at or utc_now_iso(),
        payload=payload,
    )


def _validate_healing(model: type[ModelT], data: dict[str, Any], note_id: str) -> ModelT:
    """Validate ``data``; on failure drop the offending keys and retry once."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        broken = {str(err["loc"][0]) for err in exc.errors() if err["loc"]}
        logger.warning(
            "Note %s: resetting invalid fields to defaults: %s",
            note_id,
            ", ".join(sorted(broken)),
        )
        healed = {key: value for key, value in data.items() if key not in broken}
        return model.model_validate(healed)


def note_from_record(record: Mapping[str, Any]) -> Note:
    """Build a note from a persisted (possibly older or partial) record.

    Missing fields are back-filled with their defaults, an unknown type falls
    back to ``text``, and fields holding invalid values are reset.

    Args:
        record: Flat camelCase note record as stored on disk.

    Returns:
        The normalized note.

    Raises:
        pydantic.ValidationError: If the record cannot be healed.

    """
    data = {
        key: value
        for key, value in record.items()
        if value is not None or key in NULLABLE_KEYS
    }
    note_type = coerce_note_type(data.get("type"))
    data["type"] = note_type.value

    if not data.get("id"):
        data["id"] = new_note_id()
        logger.warning("Record without id loaded; assigned %s", data["id"])
    data["id"] = str(data["id"])

    width, height = DEFAULT_SIZES[note_type]
    data.setdefault("width", width)
    data.setdefault("height", height)
    data.setdefault("color", default_color(note_type))

    payload = _validate_healing(PAYLOAD_MODELS[note_type], data, data["id"])
    envelope = {key: value for key, value in data.items() if key in _ENVELOPE_KEYS}
    envelope["payload"] = payload
    return _validate_healing(Note, envelope, data["id"])


def note_to_record(note: Note) -> dict[str, Any]:
    """Return the flat camelCase record persisted for ``note``."""
    envelope = note.model_dump(mode="json", by_alias=True, exclude={"payload"})
    for key in ("createdAt", "archivedAt"):
        if envelope.get(key) is None:
            envelope.pop(key, None)
    record: dict[str, Any] = {"id": envelope.pop("id"), "type": note.type.value}
    record.update(envelope)
    payload = note.payload.model_dump(mode="json", by_alias=True)
    payload.pop("type")
    record.update(payload)
    return record


def require_type(note: Note, *types: NoteType) -> None:
    """Raise ``NoteTypeError`` unless ``note`` is one of ``types``."""
    if note.type not in types:
        expected = ", ".join(t.value for t in types)
        msg = f"Note {note.id} is a {note.type} note; expected {expected}"
        raise NoteTypeError(msg)


def normalize_tags(tags: Iterable[str] | str) -> list[str]:
    """Strip, drop empty and deduplicate tags, keeping first-seen order.

    A single string is treated as a comma-separated list.
    """
    if isinstance(tags, str):
        tags = tags.split(",")
    cleaned: list[str] = []
    for tag in tags:
        value = str(tag).strip()
        if value and value not in cleaned:
            cleaned.append(value)
    return cleaned


def _field_name(model: type[BaseModel], key: str) -> str | None:
    for name, info in model.model_fields.items():
        if key in (name, info.alias):
            return name
    return None


def apply_changes(note: Note, **changes: Any) -> Note:  # noqa: ANN401
    """Apply a generic update to the envelope and payload of ``note``.

    Keys may be given in snake_case or in their camelCase record form. All
    values are validated before anything on ``note`` changes.

    Returns:
        The same note, updated in place.

    Raises:
        ProtectedFieldError: If a key is owned by a subsystem.
        UnknownFieldError: If a key is not a field of this note's type.
        pydantic.ValidationError: If a value is invalid.

    """
    envelope: dict[str, Any] = {}
    payload: dict[str, Any] = {}
    for key, value in changes.items():
        name = _field_name(Note, key)
        target = envelope
        if name is None:
            name = _field_name(type(note.payload), key)
            target = payload
        if name is None:
            msg = f"Field {key!r} does not apply to {note.type} notes"
            raise UnknownFieldError(msg)
        if name in PROTECTED_FIELDS:
            msg = f"Field {key!r} cannot be changed with a generic update"
            raise ProtectedFieldError(msg)
        target[name] = normalize_tags(value) if name == "tags" else value

    candidate = note.model_copy(deep=True)
    for name, value in envelope.items():
        setattr(candidate, name, value)
    for name, value in payload.items():
        setattr(candidate.payload, name, value)

    for name in envelope:
        setattr(note, name, getattr(candidate, name))
    for name in payload:
        setattr(note.payload, name, getattr(candidate.payload, name))
    return note


def _truncate(text: str, limit: int = AUTO_TITLE_LENGTH) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def parse_local_datetime(value: str) -> datetime | None:
    """Parse a reminder timestamp; ``None`` when empty or malformed."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def timer_label(payload: TimerPayload) -> str:
    """Human label for a timer's preset or custom duration."""
    if payload.timer_type is TimerType.CUSTOM:
        return f"{payload.timer_duration // 60} min Timer"
    return TIMER_LABELS.get(payload.timer_type, "Timer")


def _code_title(payload: CodePayload) -> str:
    language = payload.code_language.upper()
    lines = [line for line in payload.code_content.splitlines() if line.strip()]
    if not lines:
        return f"{language} Code"
    first = lines[0].strip()
    match = CODE_DEFINITION_PATTERN.search(first)
    if match:
        return f"{language}: {match.group(1)}"
    return f"{language}: {first[:25]}{'...' if len(first) > 25 else ''}"  # noqa: PLR2004


def auto_title(note: Note) -> str:  # noqa: C901, PLR0911, PLR0912
    """Compute a title from the note's content; empty when nothing fits."""
    payload = note.payload
    match payload:
        case TextPayload() if payload.content.strip():
            content = payload.content.strip()
            first = content.splitlines()[0][:AUTO_TITLE_LENGTH]
            return first + ("..." if len(content) > AUTO_TITLE_LENGTH else "")
        case WebPayload():
            if payload.web_title.strip():
                return payload.web_title.strip()
            if payload.web_url:
                host = urlparse(payload.web_url).hostname
                return host.removeprefix("www.") if host else payload.web_url[:30]
        case LocationPayload():
            if payload.location_name.strip():
                return payload.location_name.strip()
            if payload.location_address.strip():
                return payload.location_address.strip().split(",")[0]
        case FilePayload() if payload.file_path:
            return PurePath(payload.file_path).name
        case ImagePayload() if payload.image_path:
            return PurePath(payload.image_path).name
        case TodoPayload() if payload.todo_items:
            done = sum(1 for item in payload.todo_items if item.completed)
            return f"Todo List ({done}/{len(payload.todo_items)})"
        case ReminderPayload():
            if payload.reminder_message.strip():
                return _truncate(payload.reminder_message.strip())
            when = parse_local_datetime(payload.reminder_date_time)
            if when is not None:
                return f"Reminder for {when.date().isoformat()}"
        case TablePayload() if payload.table_data:
            first_row = payload.table_data[0]
            if first_row and first_row[0].strip():
                return _truncate(first_row[0].strip())
            return f"Table ({len(payload.table_data)} rows)"
        case CalculatorPayload() if payload.calculator_history:
            return "Calculator"
        case PaintPayload():
            return "Drawing"
        case TimerPayload():
            return timer_label(payload)
        case CodePayload() if payload.code_content.strip():
            return _code_title(payload)
        case FolderPayload():
            return f"Folder ({len(payload.folder_items)} items)"
    return ""


def display_title(note: Note) -> str:
    """The user's title, else the computed one, else ``Untitled``."""
    return note.title.strip() or auto_title(note) or "Untitled"


NoteResolver = Callable[[str], Note | None]
