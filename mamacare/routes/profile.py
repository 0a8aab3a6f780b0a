from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..deps import get_controller, http_error
from ..errors import StorageError
from ..schemas import EmergencyContact, StorageMode, UserProfile, UserType
from ..session import SessionController

router = APIRouter(prefix="/api/v1/profile", tags=["profile"])


class UpdateProfilePayload(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    country: Optional[str] = None
    mobile_number: Optional[str] = None
    user_type: Optional[UserType] = None
    expected_delivery_date: Optional[date] = None
    birth_date: Optional[date] = None
    emergency_contacts: Optional[List[EmergencyContact]] = None


class StorageModePayload(BaseModel):
    storage_mode: StorageMode


class NotificationsPayload(BaseModel):
    notifications_wanted: bool


def _current_user(controller: SessionController) -> UserProfile:
    if controller.current_user is None:
        raise HTTPException(status_code=404, detail="No profile on this device.")
    return controller.current_user


@router.get("", response_model=UserProfile)
async def get_profile_endpoint(
    controller: SessionController = Depends(get_controller),
) -> UserProfile:
    return _current_user(controller)


@router.patch("", response_model=UserProfile)
async def update_profile_endpoint(
    payload: UpdateProfilePayload,
    controller: SessionController = Depends(get_controller),
) -> UserProfile:
    user = _current_user(controller)
    updates = {field: getattr(payload, field) for field in payload.model_fields_set}
    if "country" in updates and not (updates["country"] or "").strip():
        raise HTTPException(status_code=400, detail="country cannot be empty")
    if not updates:
        return user
    try:
        return await controller.update_profile(user.model_copy(update=updates))
    except StorageError as exc:
        raise http_error(exc) from exc


@router.put("/storage-mode", response_model=UserProfile)
async def change_storage_mode_endpoint(
    payload: StorageModePayload,
    controller: SessionController = Depends(get_controller),
) -> UserProfile:
    try:
        return await controller.change_storage_mode(payload.storage_mode)
    except StorageError as exc:
        raise http_error(exc) from exc


@router.put("/notifications", response_model=UserProfile)
async def update_notifications_endpoint(
    payload: NotificationsPayload,
    controller: SessionController = Depends(get_controller),
) -> UserProfile:
    try:
        return await controller.update_notifications(payload.notifications_wanted)
    except StorageError as exc:
        raise http_error(exc) from exc
