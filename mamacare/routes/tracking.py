from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from ..deps import get_tracker, http_error
from ..errors import StorageError
from ..tracking import (
    Appointment,
    AppointmentSummary,
    ChecklistCategory,
    Contraction,
    ContractionStats,
    HealthTracker,
    HospitalBagItem,
    HospitalBagSummary,
    KickSession,
    SymptomEntry,
    WaterIntakeEntry,
    WeightEntry,
)

router = APIRouter(prefix="/api/v1/tracking", tags=["tracking"])


class WaterSummary(BaseModel):
    day: date
    total_ml: float
    entries: List[WaterIntakeEntry]


class HospitalBagItemPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=200)
    category: ChecklistCategory = ChecklistCategory.OTHER


class PackedPayload(BaseModel):
    is_packed: bool


@router.post("/weight", response_model=WeightEntry)
async def add_weight_endpoint(
    entry: WeightEntry,
    tracker: HealthTracker = Depends(get_tracker),
) -> WeightEntry:
    try:
        return tracker.add_weight_entry(entry)
    except StorageError as exc:
        raise http_error(exc) from exc


@router.get("/weight", response_model=List[WeightEntry])
async def list_weight_endpoint(
    tracker: HealthTracker = Depends(get_tracker),
) -> List[WeightEntry]:
    try:
        return tracker.list_weight_entries()
    except StorageError as exc:
        raise http_error(exc) from exc


@router.post("/water", response_model=WaterIntakeEntry)
async def add_water_endpoint(
    entry: WaterIntakeEntry,
    tracker: HealthTracker = Depends(get_tracker),
) -> WaterIntakeEntry:
    try:
        return tracker.add_water_intake(entry)
    except StorageError as exc:
        raise http_error(exc) from exc


@router.get("/water", response_model=WaterSummary)
async def water_summary_endpoint(
    day: Optional[date] = Query(None, description="UTC day, defaults to today"),
    tracker: HealthTracker = Depends(get_tracker),
) -> WaterSummary:
    target = day or date.today()
    try:
        entries = tracker.list_water_intake(target)
    except StorageError as exc:
        raise http_error(exc) from exc
    return WaterSummary(
        day=target,
        total_ml=sum(entry.amount_in_ml for entry in entries),
        entries=entries,
    )


@router.post("/kicks/start", response_model=KickSession)
async def start_kicks_endpoint(tracker: HealthTracker = Depends(get_tracker)) -> KickSession:
    try:
        return tracker.start_kick_session()
    except StorageError as exc:
        raise http_error(exc) from exc


@router.post("/kicks/{session_id}/kick", response_model=KickSession)
async def record_kick_endpoint(
    session_id: str,
    tracker: HealthTracker = Depends(get_tracker),
) -> KickSession:
    try:
        return tracker.record_kick(session_id)
    except StorageError as exc:
        raise http_error(exc) from exc


@router.post("/kicks/{session_id}/stop", response_model=KickSession)
async def stop_kicks_endpoint(
    session_id: str,
    tracker: HealthTracker = Depends(get_tracker),
) -> KickSession:
    try:
        return tracker.stop_kick_session(session_id)
    except StorageError as exc:
        raise http_error(exc) from exc


@router.post("/contractions/start", response_model=Contraction)
async def start_contraction_endpoint(
    tracker: HealthTracker = Depends(get_tracker),
) -> Contraction:
    try:
        return tracker.start_contraction()
    except StorageError as exc:
        raise http_error(exc) from exc


@router.post("/contractions/{contraction_id}/stop", response_model=Contraction)
async def stop_contraction_endpoint(
    contraction_id: str,
    tracker: HealthTracker = Depends(get_tracker),
) -> Contraction:
    try:
        return tracker.stop_contraction(contraction_id)
    except StorageError as exc:
        raise http_error(exc) from exc


@router.get("/contractions/stats", response_model=ContractionStats)
async def contraction_stats_endpoint(
    tracker: HealthTracker = Depends(get_tracker),
) -> ContractionStats:
    try:
        return tracker.contraction_stats()
    except StorageError as exc:
        raise http_error(exc) from exc


@router.post("/symptoms", response_model=SymptomEntry)
async def add_symptom_endpoint(
    entry: SymptomEntry,
    tracker: HealthTracker = Depends(get_tracker),
) -> SymptomEntry:
    try:
        return tracker.add_symptom_entry(entry)
    except StorageError as exc:
        raise http_error(exc) from exc


@router.get("/symptoms", response_model=List[SymptomEntry])
async def list_symptoms_endpoint(
    tracker: HealthTracker = Depends(get_tracker),
) -> List[SymptomEntry]:
    try:
        return tracker.list_symptom_entries()
    except StorageError as exc:
        raise http_error(exc) from exc


@router.delete("/symptoms/{entry_id}")
async def delete_symptom_endpoint(
    entry_id: str,
    tracker: HealthTracker = Depends(get_tracker),
) -> dict:
    try:
        tracker.delete_symptom_entry(entry_id)
    except StorageError as exc:
        raise http_error(exc) from exc
    return {"deleted": entry_id}


@router.post("/appointments", response_model=Appointment)
async def add_appointment_endpoint(
    appointment: Appointment,
    tracker: HealthTracker = Depends(get_tracker),
) -> Appointment:
    try:
        return tracker.add_appointment(appointment)
    except StorageError as exc:
        raise http_error(exc) from exc


@router.get("/appointments", response_model=AppointmentSummary)
async def list_appointments_endpoint(
    tracker: HealthTracker = Depends(get_tracker),
) -> AppointmentSummary:
    try:
        upcoming, past = tracker.split_appointments()
    except StorageError as exc:
        raise http_error(exc) from exc
    return AppointmentSummary(upcoming=upcoming, past=past)


@router.post("/appointments/{appointment_id}/complete", response_model=Appointment)
async def complete_appointment_endpoint(
    appointment_id: str,
    tracker: HealthTracker = Depends(get_tracker),
) -> Appointment:
    try:
        return tracker.complete_appointment(appointment_id)
    except StorageError as exc:
        raise http_error(exc) from exc


@router.delete("/appointments/{appointment_id}")
async def delete_appointment_endpoint(
    appointment_id: str,
    tracker: HealthTracker = Depends(get_tracker),
) -> dict:
    try:
        tracker.delete_appointment(appointment_id)
    except StorageError as exc:
        raise http_error(exc) from exc
    return {"deleted": appointment_id}


@router.get("/hospital-bag", response_model=HospitalBagSummary)
async def hospital_bag_endpoint(
    tracker: HealthTracker = Depends(get_tracker),
) -> HospitalBagSummary:
    try:
        return tracker.hospital_bag_summary()
    except StorageError as exc:
        raise http_error(exc) from exc


@router.post("/hospital-bag", response_model=HospitalBagItem)
async def add_hospital_bag_item_endpoint(
    payload: HospitalBagItemPayload,
    tracker: HealthTracker = Depends(get_tracker),
) -> HospitalBagItem:
    try:
        return tracker.add_hospital_bag_item(payload.name, payload.category)
    except StorageError as exc:
        raise http_error(exc) from exc


@router.put("/hospital-bag/{item_id}", response_model=HospitalBagItem)
async def pack_hospital_bag_item_endpoint(
    item_id: str,
    payload: PackedPayload,
    tracker: HealthTracker = Depends(get_tracker),
) -> HospitalBagItem:
    try:
        return tracker.set_item_packed(item_id, payload.is_packed)
    except StorageError as exc:
        raise http_error(exc) from exc


@router.delete("/hospital-bag/{item_id}")
async def delete_hospital_bag_item_endpoint(
    item_id: str,
    tracker: HealthTracker = Depends(get_tracker),
) -> dict:
    try:
        tracker.delete_hospital_bag_item(item_id)
    except StorageError as exc:
        raise http_error(exc) from exc
    return {"deleted": item_id}
