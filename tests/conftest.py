"""Shared fixtures: a throwaway database per test and a controllable clock."""

from datetime import datetime, timedelta

import pytest

from tasktimer import data, entities
from tasktimer.session_manager import TimerManager


# Wednesday; its week runs Sunday 2024-05-12 .. Saturday 2024-05-18.
NOW = datetime(2024, 5, 15, 12, 0)


class FakeClock:
    """Callable returning a fixed moment that tests move forward by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def db(tmp_path, monkeypatch):
    monkeypatch.setattr(data, "DB_FILE", str(tmp_path / "tasktimer.db"))
    data.init_db()
    return data.DB_FILE


@pytest.fixture
def user():
    return entities.create_user("ada@example.com", "secret1")["id"]


@pytest.fixture
def other_user():
    return entities.create_user("bob@example.com", "secret2")["id"]


@pytest.fixture
def project(user):
    return entities.create_project(user, "Website", "Company site")


@pytest.fixture
def task(user, project):
    return entities.create_task(user, "Design", project["id"])


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def timer(clock):
    return TimerManager(clock=clock)
