from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..deps import get_controller, http_error
from ..errors import StorageError
from ..schemas import VaccineItem, VaccineStatus
from ..session import SessionController

router = APIRouter(prefix="/api/v1", tags=["vaccines"])


@router.get("/vaccines", response_model=List[VaccineItem])
async def list_vaccines_endpoint(
    status: Optional[VaccineStatus] = Query(None, description="Optional status filter"),
    controller: SessionController = Depends(get_controller),
) -> List[VaccineItem]:
    # statuses are never stored; recompute against today on every read
    items = controller.refresh_vaccine_statuses()
    if status is not None:
        items = [item for item in items if item.status == status]
    return items


@router.post("/vaccines/{item_id}/complete", response_model=VaccineItem)
async def complete_vaccine_endpoint(
    item_id: str,
    controller: SessionController = Depends(get_controller),
) -> VaccineItem:
    try:
        return controller.mark_vaccine_completed(item_id)
    except StorageError as exc:
        raise http_error(exc) from exc
