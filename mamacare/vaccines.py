"""Per-user vaccine timetable and status classification."""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Union
from uuid import NAMESPACE_URL, uuid5

from .schedule import ScheduleTable
from .schemas import UserProfile, VaccineItem, VaccineStatus

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]

OVERDUE_AFTER_DAYS = 7
DEFAULT_AGE_RANGE = "As scheduled"
_ITEM_NAMESPACE = uuid5(NAMESPACE_URL, "mamacare/vaccine-items")


def _as_date(value: DateLike) -> date:
    # datetime is a subclass of date, so check it first
    if isinstance(value, datetime):
        return value.date()
    return value


def days_until(due_date: DateLike, now: DateLike) -> int:
    """Whole calendar days from ``now`` to ``due_date`` (negative once past)."""
    return (_as_date(due_date) - _as_date(now)).days


def classify(due_date: Optional[DateLike], now: DateLike) -> VaccineStatus:
    if due_date is None:
        return VaccineStatus.UPCOMING
    remaining = days_until(due_date, now)
    if remaining < -OVERDUE_AFTER_DAYS:
        return VaccineStatus.OVERDUE
    if remaining <= 0:
        return VaccineStatus.DUE
    return VaccineStatus.UPCOMING


def vaccine_item_id(country: str, row_index: int, item_index: int, name: str) -> str:
    return str(uuid5(_ITEM_NAMESPACE, f"{country}|{row_index}|{item_index}|{name}"))


def build_schedule(user: UserProfile, table: ScheduleTable, now: DateLike) -> List[VaccineItem]:
    """Materialise the country schedule against the user's reference date.

    Returns an empty list when the user type has no reference date or the
    country has no table. Rows without an age offset and rows with neither an
    item list nor a code/name pair are skipped.
    """
    reference = user.reference_date
    if reference is None:
        logger.info("no reference date for vaccine schedule", extra={"user_type": user.user_type})
        return []

    country_schedule = table.for_country(user.country)
    if country_schedule is None:
        logger.warning("no vaccine schedule for country", extra={"country": user.country})
        return []

    vaccines: List[VaccineItem] = []
    for row_index, appointment in enumerate(country_schedule.schedule):
        if appointment.age_days is None:
            continue
        due_date = reference + timedelta(days=appointment.age_days)
        status = classify(due_date, now)
        age_range = appointment.label or DEFAULT_AGE_RANGE

        if appointment.items is not None:
            for item_index, item in enumerate(appointment.items):
                description = ", ".join(item.antigens) if item.antigens else item.name
                vaccines.append(
                    VaccineItem(
                        id=vaccine_item_id(user.country, row_index, item_index, item.name),
                        name=item.name,
                        age_range=age_range,
                        description=description,
                        due_date=due_date,
                        status=status,
                    )
                )
        elif appointment.code and appointment.name:
            vaccines.append(
                VaccineItem(
                    id=vaccine_item_id(user.country, row_index, 0, appointment.name),
                    name=appointment.name,
                    age_range=age_range,
                    description=appointment.code,
                    due_date=due_date,
                    status=status,
                )
            )

    logger.info(
        "vaccine schedule built",
        extra={"country": user.country, "count": len(vaccines)},
    )
    return vaccines


def merge_completions(
    items: List[VaccineItem], completions: Dict[str, datetime]
) -> List[VaccineItem]:
    """Carry completion state forward onto a freshly built schedule, matched by id."""
    merged: List[VaccineItem] = []
    for item in items:
        completed_at = completions.get(item.id)
        if completed_at is not None:
            item = item.model_copy(
                update={"status": VaccineStatus.COMPLETED, "completed_date": completed_at}
            )
        merged.append(item)
    return merged


def refresh_statuses(items: List[VaccineItem], now: DateLike) -> List[VaccineItem]:
    """Recompute date-based statuses; completed items keep their pinned status."""
    refreshed: List[VaccineItem] = []
    for item in items:
        if item.completed_date is None:
            item = item.model_copy(update={"status": classify(item.due_date, now)})
        refreshed.append(item)
    return refreshed
