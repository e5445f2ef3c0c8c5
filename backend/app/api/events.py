import logging

from fastapi import APIRouter, Depends, HTTPException

from app.api.auth import get_current_user_id
from app.core.config import get_settings
from app.core.deps import get_store
from app.core.errors import StoreError
from app.models.curriculum import QuestionProgressEvent
from app.services.mastery_store import (
    get_mastery_store,
    parse_curriculum_category,
    points_for_answer,
    record_graded_event,
)
from app.services.telemetry import instrument

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["events"])


def get_mastery_backend(store=Depends(get_store)):
    return get_mastery_store(get_settings().mastery_backend, store)


@router.post("/events")
@instrument(route="/api/events")
async def post_event(
    event: QuestionProgressEvent,
    user_id: str = Depends(get_current_user_id),
    mastery=Depends(get_mastery_backend),
):
    """Apply one graded answer event to the learner's curriculum mastery."""
    if event.type != "question_progress":
        raise HTTPException(status_code=400, detail="Missing or invalid 'type' in body (question_progress)")
    if not event.app_id or (event.is_correct is None and event.points is None):
        raise HTTPException(status_code=400, detail="appId and isCorrect are required")

    node_id = event.node_id if event.node_id is not None else parse_curriculum_category(event.category)
    if node_id is None:
        # not a curriculum exercise; nothing to track
        return {"success": True, "mastery": None}

    points = event.points if event.points is not None else points_for_answer(bool(event.is_correct))
    try:
        record = record_graded_event(mastery, user_id, node_id, points)
    except StoreError as exc:
        logger.error("[events.post_event] mastery update failed for user=%s node=%s: %s", user_id, node_id, exc)
        raise HTTPException(status_code=500, detail="Failed to update mastery")
    return {"success": True, "mastery": record.to_dict()}
