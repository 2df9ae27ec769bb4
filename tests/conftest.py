import datetime
import sys
from pathlib import Path

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from recurrence_scheduler.models import Habit, Task, UserProfile  # noqa: E402

UTC = datetime.timezone.utc

# 2026-03-11 is a Wednesday; 12:00Z is 09:00 in Sao Paulo.
NOW = datetime.datetime(2026, 3, 11, 12, 0, tzinfo=UTC)
TODAY = datetime.date(2026, 3, 11)
YESTERDAY = datetime.date(2026, 3, 10)


@pytest.fixture()
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture()
def db(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def make_profile(db):
    def _make_profile(user_id="user-1", timezone="America/Sao_Paulo"):
        profile = UserProfile(id=user_id, timezone=timezone)
        db.add(profile)
        db.commit()
        return profile

    return _make_profile


@pytest.fixture()
def make_habit(db):
    def _make_habit(user_id, date_local, *, recurrence_id="rec-1", frequency="daily", weekdays=None, **fields):
        row = Habit(
            recurrence_id=recurrence_id,
            user_id=user_id,
            title=fields.pop("title", "Read 10 pages"),
            frequency=frequency,
            weekdays=weekdays,
            date_local=date_local,
            **fields,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    return _make_habit


@pytest.fixture()
def make_task(db):
    def _make_task(user_id, **fields):
        task = Task(user_id=user_id, title=fields.pop("title", "Pay rent"), **fields)
        db.add(task)
        db.commit()
        db.refresh(task)
        return task

    return _make_task
