"""Action item projection models."""

from pydantic import Field

from .base import CamelModel
from .notes import ActionItem


class DueActionItem(CamelModel):
    """An action item due on a given day, with a pointer back to its note."""

    note_id: str
    item_index: int = Field(..., ge=0)
    item: ActionItem
    note_title: str
