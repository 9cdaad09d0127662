"""Calendar action item endpoints."""

from datetime import date

import structlog
from fastapi import APIRouter, Depends

from ..auth import get_current_user_id
from ..dependencies import get_note_store
from ..models import DueActionItem, ManualTaskCreate, Note
from ..services import MongoNoteStore, action_items_for_date, todays_action_items

# Initialize logger
logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/actions", tags=["actions"])


@router.get("/today", response_model=list[DueActionItem])
async def get_todays_actions(
    today: date | None = None,
    user_id: str = Depends(get_current_user_id),
    note_store: MongoNoteStore = Depends(get_note_store),
):
    """
    Incomplete action items due today.

    Pass ``today`` as the caller's local date; the server's local date is
    used otherwise.
    """
    items = todays_action_items(await note_store.list_notes(), today)
    logger.info("todays_actions_listed", user_id=user_id, count=len(items))
    return items


@router.get("/{day}", response_model=list[DueActionItem])
async def get_actions_for_day(
    day: date,
    user_id: str = Depends(get_current_user_id),
    note_store: MongoNoteStore = Depends(get_note_store),
):
    """All action items due on ``day``, open ones first."""
    items = action_items_for_date(await note_store.list_notes(), day)
    logger.info("day_actions_listed", user_id=user_id, day=day.isoformat(), count=len(items))
    return items


@router.post("", response_model=Note, status_code=201)
async def add_task(
    task: ManualTaskCreate,
    user_id: str = Depends(get_current_user_id),
    note_store: MongoNoteStore = Depends(get_note_store),
):
    """Add a task for a calendar day; it is saved as a one-item to-do note."""
    note = await note_store.save_manual_task(task.text, task.due_date.isoformat(), task.time)
    logger.info("manual_task_added", user_id=user_id, note_id=note.id)
    return note
