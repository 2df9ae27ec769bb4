import datetime

import pytest
from sqlmodel import select

from recurrence_scheduler.core.errors import InvalidRecurrenceError, RecordNotFoundError
from recurrence_scheduler.models import Habit, HabitHistory
from recurrence_scheduler.services.habit_service import (
    create_habit,
    delete_habit,
    list_habit_definitions,
    list_today_habits,
    update_habit_definition,
)
from recurrence_scheduler.services.history_service import upsert_history_entry

UTC = datetime.timezone.utc
# 02:00Z on the 11th is still the 10th in Sao Paulo but already the 11th in Tokyo.
NOW = datetime.datetime(2026, 3, 11, 2, 0, tzinfo=UTC)
TUESDAY = datetime.date(2026, 3, 10)
WEDNESDAY = datetime.date(2026, 3, 11)


def test_create_habit_dates_the_first_instance_in_the_users_zone(db, make_profile):
    make_profile("sp", "America/Sao_Paulo")
    make_profile("tokyo", "Asia/Tokyo")

    in_sao_paulo = create_habit(db, "sp", {"title": "Stretch"}, NOW)
    in_tokyo = create_habit(db, "tokyo", {"title": "Stretch", "frequency": "weekly", "weekdays": "Wednesday"}, NOW)

    assert in_sao_paulo.date_local == TUESDAY
    assert in_sao_paulo.weekdays is None
    assert in_tokyo.date_local == WEDNESDAY
    assert in_tokyo.weekdays == [3]
    assert in_sao_paulo.recurrence_id != in_tokyo.recurrence_id


def test_create_habit_validates_at_the_boundary(db, make_profile):
    make_profile()

    with pytest.raises(InvalidRecurrenceError):
        create_habit(db, "user-1", {"title": "Run", "frequency": "weekly", "weekdays": [9]}, NOW)
    with pytest.raises(InvalidRecurrenceError):
        create_habit(db, "user-1", {"title": "  "}, NOW)
    with pytest.raises(RecordNotFoundError):
        create_habit(db, "nobody", {"title": "Run"}, NOW)


def test_update_applies_one_policy_to_every_row(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY, streak=2)
    make_habit("user-1", WEDNESDAY, streak=2)

    updated = update_habit_definition(
        db, "user-1", "rec-1", {"frequency": "weekly", "weekdays": ["Monday", "Friday"], "paused": True}, NOW
    )

    assert updated.date_local == WEDNESDAY
    rows = db.exec(select(Habit).execution_options(populate_existing=True)).all()
    assert {(row.frequency, tuple(row.weekdays), row.paused) for row in rows} == {("weekly", (1, 5), True)}
    assert all(row.streak == 2 for row in rows)


def test_update_rejects_unknown_fields(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY)

    with pytest.raises(InvalidRecurrenceError):
        update_habit_definition(db, "user-1", "rec-1", {"streak": 99}, NOW)


def test_delete_cascades_instances_and_history(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY)
    make_habit("user-1", WEDNESDAY)
    upsert_history_entry(db, recurrence_id="rec-1", user_id="user-1", date_local=TUESDAY, completed=True, now=NOW)
    db.commit()

    deleted = delete_habit(db, "user-1", "rec-1")

    assert deleted == 2
    assert db.exec(select(Habit)).all() == []
    assert db.exec(select(HabitHistory)).all() == []
    with pytest.raises(RecordNotFoundError):
        delete_habit(db, "user-1", "rec-1")


def test_list_definitions_returns_latest_instance_per_recurrence(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY, recurrence_id="a")
    make_habit("user-1", WEDNESDAY, recurrence_id="a")
    make_habit("user-1", TUESDAY, recurrence_id="b")

    latest = {row.recurrence_id: row.date_local for row in list_habit_definitions(db, "user-1")}

    assert latest == {"a": WEDNESDAY, "b": TUESDAY}


def test_list_today_materializes_and_filters(db, make_profile, make_habit):
    make_profile("tokyo", "Asia/Tokyo")
    make_habit("tokyo", TUESDAY, recurrence_id="daily")
    make_habit("tokyo", TUESDAY, recurrence_id="paused", paused=True)
    make_habit("tokyo", TUESDAY, recurrence_id="fridays", frequency="weekly", weekdays=[5])

    today = list_today_habits(db, "tokyo", NOW)

    assert [(row.recurrence_id, row.date_local) for row in today] == [("daily", WEDNESDAY)]
