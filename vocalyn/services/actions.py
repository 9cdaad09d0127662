"""Projections of note action items onto calendar days.

Two views with deliberately different orderings:

- today: incomplete items only; items without a time first, then by time
- any selected day: every item; incomplete before completed, then items
  without a time first, then by time
"""

from collections.abc import Iterable
from datetime import date
from functools import cmp_to_key

from ..models import DueActionItem, Note


def _compare_by_time(a: DueActionItem, b: DueActionItem) -> int:
    a_time, b_time = a.item.time, b.item.time
    if a_time and b_time:
        return (a_time > b_time) - (a_time < b_time)
    if a_time:
        return 1
    if b_time:
        return -1
    return 0


def compare_today(a: DueActionItem, b: DueActionItem) -> int:
    """Order for the today view."""
    return _compare_by_time(a, b)


def compare_selected_day(a: DueActionItem, b: DueActionItem) -> int:
    """Order for a selected calendar day: open items first, then by time."""
    if a.item.completed != b.item.completed:
        return 1 if a.item.completed else -1
    return _compare_by_time(a, b)


def _due_on(notes: Iterable[Note], day: str, include_completed: bool) -> list[DueActionItem]:
    due = []
    for note in notes:
        for index, item in enumerate(note.action_items):
            if item.due_date != day:
                continue
            if item.completed and not include_completed:
                continue
            due.append(
                DueActionItem(note_id=note.id, item_index=index, item=item, note_title=note.title)
            )
    return due


def todays_action_items(notes: Iterable[Note], today: date | None = None) -> list[DueActionItem]:
    """Incomplete action items due today.

    Args:
        notes: Notes to scan
        today: The caller's local date; defaults to the local calendar date
    """
    day = (today or date.today()).isoformat()
    return sorted(_due_on(notes, day, include_completed=False), key=cmp_to_key(compare_today))


def action_items_for_date(notes: Iterable[Note], day: date) -> list[DueActionItem]:
    """All action items due on ``day``, completed ones last."""
    return sorted(
        _due_on(notes, day.isoformat(), include_completed=True),
        key=cmp_to_key(compare_selected_day),
    )
