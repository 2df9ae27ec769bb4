import datetime

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from recurrence_scheduler.core.errors import MetricsConflictError
from recurrence_scheduler.models import Habit, HabitHistory
from recurrence_scheduler.services import habit_store_service, metrics_service
from recurrence_scheduler.services.completion_service import set_habit_completion
from recurrence_scheduler.services.habit_store_service import apply_metrics_with_retry
from recurrence_scheduler.services.materializer_service import materialize_user_habits
from recurrence_scheduler.services.metrics_service import (
    OUTCOME_COMPLETED,
    OUTCOME_MISSED,
    OUTCOME_NOT_DUE,
    close_out_yesterday,
)

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


def _history(db, recurrence_id="rec-1"):
    return db.exec(
        select(HabitHistory)
        .where(HabitHistory.recurrence_id == recurrence_id)
        .execution_options(populate_existing=True)
    ).all()


def test_missed_day_resets_streak_and_records_the_miss(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY, streak=4, total_completed=4, last_completed_date_local=MONDAY)
    materialize_user_habits(db, "user-1", WEDNESDAY, NOW)

    result = close_out_yesterday(db, "user-1", TUESDAY, NOW)

    assert result.outcomes == {"rec-1": OUTCOME_MISSED}
    assert result.updated == ["rec-1"]
    assert result.history_written == 1
    rows = _rows(db)
    assert len(rows) == 2
    for row in rows:
        assert row.streak == 0
        assert row.alert is True
        assert row.missed_days == ["2026-03-10"]
        assert row.fail_by_weekday["2"] == 1
        assert sum(row.fail_by_weekday.values()) == 1
        assert row.success_rate == 80.0
        assert row.metrics_version == 1
    history = _history(db)
    assert [(entry.date_local, entry.completed) for entry in history] == [(TUESDAY, False)]


def test_closing_out_the_same_day_twice_changes_nothing(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY, streak=4, total_completed=4, last_completed_date_local=MONDAY)

    close_out_yesterday(db, "user-1", TUESDAY, NOW)
    second = close_out_yesterday(db, "user-1", TUESDAY, NOW)

    assert second.updated == []
    row = _rows(db)[0]
    assert row.missed_days == ["2026-03-10"]
    assert row.fail_by_weekday["2"] == 1
    assert row.metrics_version == 1
    assert len(_history(db)) == 1


def test_completed_yesterday_clears_the_alert(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY, completed_today=True, alert=True, streak=1, total_completed=1)

    result = close_out_yesterday(db, "user-1", TUESDAY, NOW)

    assert result.outcomes == {"rec-1": OUTCOME_COMPLETED}
    row = _rows(db)[0]
    assert row.alert is False
    assert row.streak == 1
    assert row.missed_days == []
    assert _history(db) == []


def test_ineligible_day_is_left_alone(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY, frequency="weekly", weekdays=[1, 3, 5], streak=3)

    result = close_out_yesterday(db, "user-1", TUESDAY, NOW)

    assert result.outcomes == {"rec-1": OUTCOME_NOT_DUE}
    assert result.updated == []
    assert _rows(db)[0].streak == 3


def test_completion_after_a_miss_starts_a_new_streak(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY, streak=4, total_completed=4, last_completed_date_local=MONDAY)
    materialize_user_habits(db, "user-1", WEDNESDAY, NOW)
    close_out_yesterday(db, "user-1", TUESDAY, NOW)

    today_row = _rows(db)[-1]
    set_habit_completion(db, "user-1", today_row.id, True, NOW)

    row = _rows(db)[-1]
    assert row.streak == 1
    assert row.total_completed == 5
    assert row.alert is False


def test_early_completion_on_the_new_day_survives_the_close_out(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", TUESDAY, streak=4, total_completed=4, last_completed_date_local=MONDAY)
    materialize_user_habits(db, "user-1", WEDNESDAY, NOW)
    set_habit_completion(db, "user-1", _rows(db)[-1].id, True, NOW)

    close_out_yesterday(db, "user-1", TUESDAY, NOW)

    row = _rows(db)[-1]
    assert row.streak == 1
    assert row.alert is False
    assert row.missed_days == ["2026-03-10"]
    assert row.last_completed_date_local == WEDNESDAY


def test_metrics_write_recomputes_after_a_competing_writer(db, make_profile, make_habit):
    make_profile()
    make_habit("user-1", WEDNESDAY, total_completed=3)
    calls = []

    def add_one(state):
        calls.append(state.total_completed)
        if len(calls) == 1:
            # another writer lands between our read and our compare-and-set
            db.exec(
                update(Habit)
                .where(Habit.recurrence_id == "rec-1")
                .values(
                    total_completed=Habit.total_completed + 1,
                    metrics_version=Habit.metrics_version + 1,
                )
                .execution_options(synchronize_session=False)
            )
        return {"total_completed": state.total_completed + 1}

    state, changes = apply_metrics_with_retry(db, "rec-1", "user-1", add_one, NOW)
    db.commit()

    assert calls == [3, 4]
    assert changes == {"total_completed": 5}
    assert state.metrics_version == 1
    row = _rows(db)[0]
    assert row.total_completed == 5
    assert row.metrics_version == 2


def test_metrics_write_gives_up_after_the_configured_retries(db, make_profile, make_habit, monkeypatch):
    make_profile()
    make_habit("user-1", WEDNESDAY, total_completed=3)
    monkeypatch.setenv("RECURRENCE_CAS_RETRIES", "2")
    attempts = []

    def always_conflicts(db, state, changes, now):
        attempts.append(state.metrics_version)
        return False

    monkeypatch.setattr(habit_store_service, "write_metrics", always_conflicts)

    with pytest.raises(MetricsConflictError) as excinfo:
        apply_metrics_with_retry(
            db, "rec-1", "user-1", lambda state: {"total_completed": state.total_completed + 1}, NOW
        )

    assert excinfo.value.attempts == 2
    assert excinfo.value.recurrence_id == "rec-1"
    assert attempts == [0, 0]
    db.rollback()
    assert _rows(db)[0].total_completed == 3


def test_failing_recurrence_does_not_stop_its_siblings(db, make_profile, make_habit, monkeypatch):
    make_profile()
    make_habit("user-1", TUESDAY, recurrence_id="rec-bad", streak=2, total_completed=2)
    make_habit("user-1", TUESDAY, streak=4, total_completed=4, last_completed_date_local=MONDAY)
    real_close_out = metrics_service.close_out_recurrence

    def flaky_close_out(db, user_id, recurrence_id, yesterday, now):
        if recurrence_id == "rec-bad":
            raise OperationalError("UPDATE habits", {}, Exception("connection reset"))
        return real_close_out(db, user_id, recurrence_id, yesterday, now)

    monkeypatch.setattr(metrics_service, "close_out_recurrence", flaky_close_out)

    result = close_out_yesterday(db, "user-1", TUESDAY, NOW)

    assert [error["recurrence_id"] for error in result.errors] == ["rec-bad"]
    assert result.outcomes == {"rec-1": OUTCOME_MISSED}
    assert result.updated == ["rec-1"]
    assert _rows(db)[0].missed_days == ["2026-03-10"]
    assert _rows(db, "rec-bad")[0].missed_days == []
    assert _rows(db, "rec-bad")[0].streak == 2
