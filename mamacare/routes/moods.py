from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..deps import get_controller
from ..schemas import MoodCheckIn, MoodType
from ..session import SessionController

router = APIRouter(prefix="/api/v1", tags=["moods"])


class CreateMoodPayload(BaseModel):
    mood_type: MoodType
    notes: Optional[str] = Field(default=None, max_length=2000)


@router.get("/moods", response_model=List[MoodCheckIn])
async def list_moods_endpoint(
    refresh: bool = Query(False, description="Re-fetch from the authoritative backend"),
    controller: SessionController = Depends(get_controller),
) -> List[MoodCheckIn]:
    if refresh:
        return await controller.refresh_moods()
    return controller.moods


@router.post("/moods", response_model=MoodCheckIn)
async def create_mood_endpoint(
    payload: CreateMoodPayload,
    controller: SessionController = Depends(get_controller),
) -> MoodCheckIn:
    notes = (payload.notes or "").strip() or None
    return await controller.add_mood_check_in(payload.mood_type, notes)


@router.delete("/moods/{mood_id}")
async def delete_mood_endpoint(
    mood_id: str,
    controller: SessionController = Depends(get_controller),
) -> dict:
    await controller.delete_mood(mood_id)
    return {"deleted": mood_id}
