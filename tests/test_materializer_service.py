import datetime

from sqlmodel import select

from recurrence_scheduler.models import Habit
from recurrence_scheduler.services.materializer_service import materialize_user_habits

UTC = datetime.timezone.utc
NOW = datetime.datetime(2026, 3, 11, 12, 0, tzinfo=UTC)
MONDAY = datetime.date(2026, 3, 9)
TUESDAY = datetime.date(2026, 3, 10)
WEDNESDAY = datetime.date(2026, 3, 11)


def _rows(db, recurrence_id="rec-1"):
    return db.exec(
        select(Habit)
        .where(Habit.recurrence_id == recurrence_id)
        .order_by(Habit.date_local)
        .execution_options(populate_existing=True)
    ).all()


def test_materialize_copies_metrics_into_todays_instance(db, make_profile, make_habit):
    make_profile()
    make_habit(
        "user-1",
        TUESDAY,
        streak=2,
        total_completed=5,
        completed_today=True,
        last_completed_date_local=TUESDAY,
        missed_days=["2026-03-01"],
        fail_by_weekday={"0": 1},
        metrics_version=4,
    )

    result = materialize_user_habits(db, "user-1", WEDNESDAY, NOW)

    assert len(result.created) == 1
    today_row = _rows(db)[-1]
    assert today_row.date_local == WEDNESDAY
    assert today_row.completed_today is False
    assert today_row.streak == 2
    assert today_row.total_completed == 5
    assert today_row.last_completed_date_local == TUESDAY
    assert today_row.missed_days == ["2026-03-01"]
    assert today_row.fail_by_weekday["0"] == 1
    assert today_row.metrics_version == 4
    assert today_row.success_rate == 83.33
    assert today_row.alert is False


def test_materialize_twice_creates_exactly_one_instance(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY)

    first = materialize_user_habits(db, "user-1", WEDNESDAY, NOW)
    second = materialize_user_habits(db, "user-1", WEDNESDAY, NOW)

    assert len(first.created) == 1
    assert second.created == []
    assert second.skipped == 1
    assert [row.date_local for row in _rows(db)] == [TUESDAY, WEDNESDAY]


def test_weekly_habit_materializes_only_on_its_weekdays(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", MONDAY, frequency="weekly", weekdays=[1, 3, 5])

    on_tuesday = materialize_user_habits(db, "user-1", TUESDAY, NOW)
    on_wednesday = materialize_user_habits(db, "user-1", WEDNESDAY, NOW)

    assert on_tuesday.created == []
    assert len(on_wednesday.created) == 1
    assert [row.date_local for row in _rows(db)] == [MONDAY, WEDNESDAY]


def test_paused_habits_are_not_materialized(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY, paused=True)

    result = materialize_user_habits(db, "user-1", WEDNESDAY, NOW)

    assert result.created == []
    assert len(_rows(db)) == 1


def test_alert_seeded_only_for_a_broken_streak_with_history(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY, recurrence_id="broken", streak=0, total_completed=3)
    make_habit("user-1", TUESDAY, recurrence_id="fresh", streak=0, total_completed=0)

    materialize_user_habits(db, "user-1", WEDNESDAY, NOW)

    assert _rows(db, "broken")[-1].alert is True
    assert _rows(db, "fresh")[-1].alert is False


def test_invalid_rule_is_skipped_without_stopping_others(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY, recurrence_id="bad", frequency="fortnightly")
    make_habit("user-1", TUESDAY, recurrence_id="good")

    result = materialize_user_habits(db, "user-1", WEDNESDAY, NOW)

    assert len(result.created) == 1
    assert len(_rows(db, "bad")) == 1
    assert len(_rows(db, "good")) == 2
