from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from mamacare.schedule import ScheduleTable, load_schedule_table
from mamacare.schemas import UserType, VaccineStatus
from mamacare.vaccines import build_schedule, classify, merge_completions, refresh_statuses

from .session_helpers import TEST_TABLE, make_profile

TODAY = date(2024, 3, 10)


def test_classify_boundaries() -> None:
    assert classify(TODAY - timedelta(days=8), TODAY) == VaccineStatus.OVERDUE
    assert classify(TODAY - timedelta(days=7), TODAY) == VaccineStatus.DUE
    assert classify(TODAY, TODAY) == VaccineStatus.DUE
    assert classify(TODAY + timedelta(days=1), TODAY) == VaccineStatus.UPCOMING
    assert classify(None, TODAY) == VaccineStatus.UPCOMING


def test_classify_uses_calendar_days_not_elapsed_hours() -> None:
    due = datetime(2024, 3, 3, 23, 59, tzinfo=timezone.utc)
    now = datetime(2024, 3, 10, 0, 1, tzinfo=timezone.utc)
    assert classify(due, now) == VaccineStatus.DUE


def test_child_schedule_offsets_from_birth_date() -> None:
    table = ScheduleTable.from_dict({"UK": {"schedule": [{"ageDays": 60, "items": [{"name": "DTaP"}]}]}})
    user = make_profile(country="UK", birth_date=date(2024, 1, 1))

    items = build_schedule(user, table, TODAY)

    assert len(items) == 1
    item = items[0]
    assert item.name == "DTaP"
    assert item.description == "DTaP"
    assert item.age_range == "As scheduled"
    assert item.due_date == date(2024, 3, 1)
    assert item.status == VaccineStatus.OVERDUE
    assert item.completed_date is None


def test_newborn_sixty_day_dose_thirty_days_late_is_overdue() -> None:
    today = date.today()
    table = ScheduleTable.from_dict({"UK": {"schedule": [{"ageDays": 60, "items": [{"name": "DTaP"}]}]}})
    user = make_profile(country="UK", birth_date=today - timedelta(days=90))

    (item,) = build_schedule(user, table, today)

    assert item.due_date == today - timedelta(days=30)
    assert item.status == VaccineStatus.OVERDUE


def test_type_flip_without_birth_date_empties_schedule() -> None:
    today = date.today()
    pregnant = make_profile(
        user_type=UserType.PREGNANT,
        birth_date=None,
        expected_delivery_date=today + timedelta(weeks=10),
    )

    items = build_schedule(pregnant, TEST_TABLE, today)
    assert items[0].due_date == today + timedelta(weeks=10, days=56)

    flipped = pregnant.model_copy(update={"user_type": UserType.HAS_CHILD})
    assert build_schedule(flipped, TEST_TABLE, today) == []


def test_pregnant_schedule_offsets_from_due_date() -> None:
    user = make_profile(user_type=UserType.PREGNANT, birth_date=None, expected_delivery_date=date(2024, 6, 1))

    items = build_schedule(user, TEST_TABLE, TODAY)

    assert [item.due_date for item in items] == [date(2024, 7, 27), date(2024, 7, 27), date(2025, 6, 1)]
    assert all(item.status == VaccineStatus.UPCOMING for item in items)


def test_missing_reference_or_country_yields_empty_schedule() -> None:
    assert build_schedule(make_profile(birth_date=None), TEST_TABLE, TODAY) == []
    assert build_schedule(make_profile(user_type=None), TEST_TABLE, TODAY) == []
    assert build_schedule(make_profile(country="Atlantis"), TEST_TABLE, TODAY) == []


def test_rows_are_expanded_in_table_order() -> None:
    items = build_schedule(make_profile(), TEST_TABLE, TODAY)

    assert [item.name for item in items] == ["6-in-1", "MenB", "MMR (1st dose)"]
    assert items[0].description == "Diphtheria, Tetanus"
    assert items[0].age_range == "8 weeks"
    assert items[2].description == "MMR"
    assert items[2].age_range == "1 year"


def test_rows_without_usable_shape_are_skipped() -> None:
    table = ScheduleTable.from_dict(
        {
            "UK": {
                "schedule": [
                    {"label": "no offset", "items": [{"name": "Skipped"}]},
                    {"ageDays": 10, "label": "label only"},
                    {"ageDays": 20, "code": "X"},
                    {"ageDays": 30, "items": []},
                    {"ageDays": 40, "code": "OK", "name": "Kept"},
                ]
            }
        }
    )
    items = build_schedule(make_profile(country="UK"), table, TODAY)
    assert [item.name for item in items] == ["Kept"]


def test_rebuild_keeps_ids_and_completion_state() -> None:
    user = make_profile()
    first = build_schedule(user, TEST_TABLE, TODAY)
    completed_at = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    moved = user.model_copy(update={"birth_date": date(2024, 1, 20)})
    rebuilt = merge_completions(build_schedule(moved, TEST_TABLE, TODAY), {first[0].id: completed_at})

    assert [item.id for item in rebuilt] == [item.id for item in first]
    assert rebuilt[0].status == VaccineStatus.COMPLETED
    assert rebuilt[0].completed_date == completed_at
    assert rebuilt[0].due_date == date(2024, 3, 16)
    assert rebuilt[1].status == VaccineStatus.UPCOMING


def test_refresh_statuses_leaves_completed_items_alone() -> None:
    items = build_schedule(make_profile(), TEST_TABLE, TODAY)
    items = merge_completions(items, {items[1].id: datetime(2024, 3, 1, tzinfo=timezone.utc)})

    later = refresh_statuses(items, date(2025, 6, 1))

    assert later[0].status == VaccineStatus.OVERDUE
    assert later[1].status == VaccineStatus.COMPLETED
    assert later[2].status == VaccineStatus.OVERDUE


def test_packaged_table_covers_default_country() -> None:
    table = load_schedule_table()
    assert "United Kingdom" in table.countries()

    items = build_schedule(make_profile(), table, TODAY)
    assert items
    assert all(item.due_date is not None for item in items)
    assert len({item.id for item in items}) == len(items)
