"""Type-specific content edits for todo, table, calculator and reminder notes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from .notes import (
    AUTO_TITLE_LENGTH,
    CalculatorPayload,
    NoteType,
    ReminderPayload,
    TablePayload,
    TodoItem,
    TodoPayload,
    normalize_tags,
    parse_local_datetime,
    require_type,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .notes import Note

logger = logging.getLogger(__name__)

CALCULATOR_OPERATORS = frozenset({"+", "-", "*", "/"})
CALCULATOR_HISTORY_LIMIT = 10
CALCULATOR_PRECISION = 7
CALCULATOR_ERROR = "Error"
DEFAULT_TABLE_COLUMNS = 3


class TodoItemNotFoundError(KeyError):
    """Raised when a todo item id is not present on the note."""


@dataclass(frozen=True)
class TodoProgress:
    """Completed/total counts for a todo note."""

    completed: int
    total: int

    @property
    def percent(self) -> float:
        """Completion percentage; 0 for an empty list."""
        return self.completed / self.total * 100 if self.total else 0.0

    def __str__(self) -> str:
        return f"{self.completed}/{self.total} ({round(self.percent)}%)"


def set_tags(note: Note, tags: Iterable[str] | str) -> list[str]:
    """Replace the note's tags with a cleaned, deduplicated list."""
    note.tags = normalize_tags(tags)
    return note.tags


# --- todo -------------------------------------------------------------------


def _todo_payload(note: Note) -> TodoPayload:
    require_type(note, NoteType.TODO)
    assert isinstance(note.payload, TodoPayload)  # noqa: S101
    return note.payload


def _find_todo(note: Note, item_id: str) -> TodoItem:
    for item in _todo_payload(note).todo_items:
        if item.id == str(item_id):
            return item
    msg = f"Todo item {item_id} not found on note {note.id}"
    raise TodoItemNotFoundError(msg)


def add_todo_item(note: Note, text: str = "") -> TodoItem:
    """Append a new, unchecked item and return it."""
    item = TodoItem(text=text)
    _todo_payload(note).todo_items.append(item)
    return item


def update_todo_text(note: Note, item_id: str, text: str) -> TodoItem:
    item = _find_todo(note, item_id)
    item.text = text
    return item


def toggle_todo(note: Note, item_id: str) -> bool:
    """Flip an item's completed flag and return the new value."""
    item = _find_todo(note, item_id)
    item.completed = not item.completed
    return item.completed


def delete_todo_item(note: Note, item_id: str) -> None:
    payload = _todo_payload(note)
    item = _find_todo(note, item_id)
    payload.todo_items = [i for i in payload.todo_items if i is not item]


def todo_progress(note: Note) -> TodoProgress:
    items = _todo_payload(note).todo_items
    return TodoProgress(
        completed=sum(1 for item in items if item.completed),
        total=len(items),
    )


# --- table ------------------------------------------------------------------


def _table_data(note: Note) -> list[list[str]]:
    require_type(note, NoteType.TABLE)
    assert isinstance(note.payload, TablePayload)  # noqa: S101
    return note.payload.table_data


def update_table_cell(note: Note, row: int, col: int, value: str) -> None:
    """Set one cell, padding missing rows and cells with empty strings.

    Raises:
        IndexError: If ``row`` or ``col`` is negative.

    """
    if row < 0 or col < 0:
        msg = f"Table cell ({row}, {col}) is out of range"
        raise IndexError(msg)
    data = _table_data(note)
    while len(data) <= row:
        data.append([])
    cells = data[row]
    while len(cells) <= col:
        cells.append("")
    cells[col] = str(value)


def add_table_row(note: Note) -> None:
    """Append an empty row as wide as the header row."""
    data = _table_data(note)
    width = len(data[0]) if data else DEFAULT_TABLE_COLUMNS
    data.append([""] * width)


def add_table_column(note: Note) -> None:
    for row in _table_data(note):
        row.append("")


def remove_table_row(note: Note) -> bool:
    """Drop the last row; the table always keeps at least one."""
    data = _table_data(note)
    if len(data) <= 1:
        return False
    data.pop()
    return True


def remove_table_column(note: Note) -> bool:
    """Drop the last column; the table always keeps at least one."""
    data = _table_data(note)
    if not data or len(data[0]) <= 1:
        return False
    for row in data:
        if row:
            row.pop()
    return True


# --- calculator -------------------------------------------------------------


def _calculator(note: Note) -> CalculatorPayload:
    require_type(note, NoteType.CALCULATOR)
    assert isinstance(note.payload, CalculatorPayload)  # noqa: S101
    return note.payload


def format_number(value: float) -> str:
    """Render a result rounded to 7 decimals, without a trailing ``.0``."""
    rounded = round(value, CALCULATOR_PRECISION)
    if rounded.is_integer():
        return str(int(rounded))
    return str(rounded)


def _display_value(calc: CalculatorPayload) -> float:
    try:
        return float(calc.calculator_display)
    except ValueError:
        return 0.0


def _calculate(first: float, second: float, operator: str) -> float:
    if operator == "+":
        return first + second
    if operator == "-":
        return first - second
    if operator == "*":
        return first * second
    if operator == "/":
        return first / second
    return second


def _reset_pending(calc: CalculatorPayload, *, waiting: bool) -> None:
    calc._pending_value = None  # noqa: SLF001
    calc._pending_operator = None  # noqa: SLF001
    calc._waiting_for_operand = waiting  # noqa: SLF001


def _handle_digit(calc: CalculatorPayload, key: str) -> None:
    if calc._waiting_for_operand:  # noqa: SLF001
        calc.calculator_display = "0." if key == "." else key
        calc._waiting_for_operand = False  # noqa: SLF001
        return
    display = calc.calculator_display
    if display == CALCULATOR_ERROR:
        display = "0"
    if key == "." and "." in display:
        return
    if display == "0" and key != ".":
        calc.calculator_display = key
    else:
        calc.calculator_display = display + key


def _handle_operator(calc: CalculatorPayload, operator: str) -> None:
    value = _display_value(calc)
    pending = calc._pending_value  # noqa: SLF001
    if pending is None:
        calc._pending_value = value  # noqa: SLF001
    elif calc._pending_operator and not calc._waiting_for_operand:  # noqa: SLF001
        try:
            result = _calculate(pending, value, calc._pending_operator)  # noqa: SLF001
        except ZeroDivisionError:
            calc.calculator_display = CALCULATOR_ERROR
            _reset_pending(calc, waiting=True)
            return
        calc.calculator_display = format_number(result)
        calc._pending_value = result  # noqa: SLF001
    calc._waiting_for_operand = True  # noqa: SLF001
    calc._pending_operator = operator  # noqa: SLF001


def calculator_input(note: Note, key: str) -> str:
    """Feed a digit, ``.`` or an operator; return the new display.

    Raises:
        ValueError: If ``key`` is not a digit, ``.`` or ``+ - * /``.

    """
    calc = _calculator(note)
    if key in CALCULATOR_OPERATORS:
        _handle_operator(calc, key)
    elif key == "." or (len(key) == 1 and key.isdigit()):
        _handle_digit(calc, key)
    else:
        msg = f"Unsupported calculator key: {key!r}"
        raise ValueError(msg)
    return calc.calculator_display


def calculator_equals(note: Note) -> str:
    """Complete the pending operation and record it in the history."""
    calc = _calculator(note)
    pending = calc._pending_value  # noqa: SLF001
    operator = calc._pending_operator  # noqa: SLF001
    if pending is None or not operator or calc._waiting_for_operand:  # noqa: SLF001
        return calc.calculator_display

    value = _display_value(calc)
    try:
        result = _calculate(pending, value, operator)
    except ZeroDivisionError:
        calc.calculator_display = CALCULATOR_ERROR
        _reset_pending(calc, waiting=True)
        return calc.calculator_display

    entry = (
        f"{format_number(pending)} {operator} {format_number(value)}"
        f" = {format_number(result)}"
    )
    history = [*calc.calculator_history, entry]
    calc.calculator_history = history[-CALCULATOR_HISTORY_LIMIT:]
    calc.calculator_display = format_number(result)
    _reset_pending(calc, waiting=True)
    return calc.calculator_display


def calculator_clear(note: Note) -> str:
    calc = _calculator(note)
    calc.calculator_display = "0"
    _reset_pending(calc, waiting=False)
    return calc.calculator_display


def calculator_backspace(note: Note) -> str:
    calc = _calculator(note)
    display = calc.calculator_display
    calc.calculator_display = display[:-1] if len(display) > 1 else "0"
    return calc.calculator_display


# --- reminder ---------------------------------------------------------------


def _reminder(note: Note) -> ReminderPayload:
    require_type(note, NoteType.REMINDER)
    assert isinstance(note.payload, ReminderPayload)  # noqa: S101
    return note.payload


def set_reminder_datetime(note: Note, when: datetime | str) -> str:
    """Schedule the reminder; a new time re-arms it.

    Args:
        note: Reminder note.
        when: Local datetime (aware values are converted to local time), or its
            ISO string; ``""`` clears the schedule.

    Returns:
        The stored ISO string.

    Raises:
        ValueError: If ``when`` is a string that is not an ISO timestamp.

    """
    payload = _reminder(note)
    if isinstance(when, datetime):
        local = when.astimezone().replace(tzinfo=None) if when.tzinfo else when
        value = local.isoformat(timespec="minutes")
    else:
        value = when.strip()
        if value and parse_local_datetime(value) is None:
            msg = f"Invalid reminder time: {when}"
            raise ValueError(msg)
    payload.reminder_date_time = value
    payload.reminder_triggered = False
    return value


def set_reminder_message(note: Note, message: str) -> None:
    """Set the message; an untitled note takes its title from it."""
    payload = _reminder(note)
    payload.reminder_message = message
    if not note.title and message:
        note.title = message[:AUTO_TITLE_LENGTH] + (
            "..." if len(message) > AUTO_TITLE_LENGTH else ""
        )
