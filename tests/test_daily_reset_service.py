import datetime

from sqlmodel import select

from recurrence_scheduler.models import Habit, HabitHistory, Task
from recurrence_scheduler.services import daily_reset_service
from recurrence_scheduler.services.daily_reset_service import run_daily_reset

UTC = datetime.timezone.utc
# 09:00 in Sao Paulo, 21:00 in Tokyo; both are on 2026-03-11.
NOW = datetime.datetime(2026, 3, 11, 12, 0, tzinfo=UTC)
MONDAY = datetime.date(2026, 3, 9)
TUESDAY = datetime.date(2026, 3, 10)
WEDNESDAY = datetime.date(2026, 3, 11)


def _seed(make_profile, make_habit, make_task):
    make_profile("a", "America/Sao_Paulo")
    make_profile("b", "Asia/Tokyo")
    make_profile("c", None)
    make_habit(
        "a", TUESDAY, recurrence_id="rec-a", streak=3, total_completed=3, last_completed_date_local=MONDAY
    )
    make_habit(
        "b",
        TUESDAY,
        recurrence_id="rec-b",
        completed_today=True,
        alert=True,
        streak=1,
        total_completed=1,
        last_completed_date_local=TUESDAY,
    )
    make_task("a", due_date=datetime.date(2026, 3, 8))


def _rows(db, recurrence_id):
    return db.exec(
        select(Habit)
        .where(Habit.recurrence_id == recurrence_id)
        .order_by(Habit.date_local)
        .execution_options(populate_existing=True)
    ).all()


def test_daily_reset_runs_every_stage_for_every_user(db, make_profile, make_habit, make_task):
    _seed(make_profile, make_habit, make_task)

    summary = run_daily_reset(db, NOW).to_dict()

    assert summary["users_total"] == 3
    assert summary["users_processed"] == 3
    assert summary["instances_created"] == 2
    assert summary["instances_updated"] == 2
    assert summary["history_written"] == 1
    assert summary["tasks_moved_to_overdue"] == 1
    assert summary["errors"] == []
    assert summary["finished_at"] is not None

    missed = _rows(db, "rec-a")
    assert [row.date_local for row in missed] == [TUESDAY, WEDNESDAY]
    assert all(row.streak == 0 and row.alert for row in missed)
    kept = _rows(db, "rec-b")
    assert [row.date_local for row in kept] == [TUESDAY, WEDNESDAY]
    assert all(row.streak == 1 and not row.alert for row in kept)


def test_daily_reset_is_idempotent_within_a_day(db, make_profile, make_habit, make_task):
    _seed(make_profile, make_habit, make_task)

    run_daily_reset(db, NOW)
    again = run_daily_reset(db, NOW + datetime.timedelta(hours=1))

    assert again.instances_created == 0
    assert again.instances_updated == 0
    assert again.tasks_moved_to_overdue == 0
    assert again.errors == []
    assert _rows(db, "rec-a")[-1].missed_days == ["2026-03-10"]
    assert len(db.exec(select(HabitHistory)).all()) == 1


def test_one_failing_user_does_not_stop_the_batch(db, make_profile, make_habit, make_task, monkeypatch):
    _seed(make_profile, make_habit, make_task)
    real_materialize = daily_reset_service.materialize_user_habits

    def _materialize(session, user_id, today, now=None):
        if user_id == "a":
            raise RuntimeError("boom")
        return real_materialize(session, user_id, today, now)

    monkeypatch.setattr(daily_reset_service, "materialize_user_habits", _materialize)

    summary = run_daily_reset(db, NOW)

    assert summary.errors == [{"user_id": "a", "stage": "materialize", "error": "boom"}]
    assert summary.users_processed == 2
    assert len(_rows(db, "rec-a")) == 1
    assert len(_rows(db, "rec-b")) == 2
    # the overdue pass still covers the failed user
    task = db.exec(select(Task).where(Task.user_id == "a").execution_options(populate_existing=True)).one()
    assert task.overdue is True


def test_daily_reset_with_no_users(db):
    summary = run_daily_reset(db, NOW)

    assert summary.users_total == 0
    assert summary.errors == []
