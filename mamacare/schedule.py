"""Country-keyed immunisation schedule tables."""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import CONFIG

logger = logging.getLogger(__name__)


class ScheduleVaccine(BaseModel):
    name: str
    antigens: Optional[List[str]] = None


class VaccineAppointment(BaseModel):
    """One schedule row: an age offset plus either an item list or a single code/name pair."""

    age_days: Optional[int] = Field(default=None, alias="ageDays")
    label: Optional[str] = None
    items: Optional[List[ScheduleVaccine]] = None
    code: Optional[str] = None
    name: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CountrySchedule(BaseModel):
    country: str
    source: Optional[str] = None
    schedule: List[VaccineAppointment] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class ScheduleTable:
    def __init__(self, schedules: Dict[str, CountrySchedule]) -> None:
        self._schedules = dict(schedules)

    @classmethod
    def from_dict(cls, payload: Dict[str, dict]) -> "ScheduleTable":
        return cls(
            {
                country: CountrySchedule.model_validate({"country": country, **body})
                for country, body in payload.items()
            }
        )

    def for_country(self, country: str) -> Optional[CountrySchedule]:
        return self._schedules.get(country)

    def countries(self) -> List[str]:
        return sorted(self._schedules)


@lru_cache
def load_schedule_table(path: Optional[Path] = None) -> ScheduleTable:
    """Load the schedule table once per path."""
    schedule_path = path or CONFIG.resolved_schedule_path
    payload = json.loads(Path(schedule_path).read_text())
    table = ScheduleTable.from_dict(payload)
    logger.info(
        "vaccine schedules loaded",
        extra={"path": str(schedule_path), "countries": table.countries()},
    )
    return table
