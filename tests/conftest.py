import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, time, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from courtside.core.clock import facility_timezone
from courtside.db.base import Base
from courtside.db.store import SqlBookingStore, SqlRuleSource
from courtside.models.court import Court
from courtside.models.user import User
from courtside.scheduling.closures import ClosureResolver
from courtside.scheduling.lifecycle import BookingLifecycle
from courtside.scheduling.types import Actor, ActorRole, SportType

TZ = facility_timezone()

# A Wednesday, 08:00 facility time
TODAY = datetime(2026, 3, 4).date()


def local(day_offset: int, hour: int, minute: int = 0) -> datetime:
    """Aware UTC instant for `hour` facility time, `day_offset` days from TODAY."""
    day = TODAY + timedelta(days=day_offset)
    return TZ.localize(datetime.combine(day, time(hour, minute))).astimezone(timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def booking_paid(self, booking):
        self.events.append(("booking_paid", booking.id))

    def closure_created(self, window, affected):
        self.events.append(("closure_created", window.id, [b.id for b in affected]))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def seed(session_factory):
    """Two tennis courts, one padel court, and one user per role."""
    db = session_factory()
    users = {
        name: User(email=f"{name}@club.test", full_name=name.title(), role=role)
        for name, role in [
            ("alice", "user"),
            ("bob", "user"),
            ("carol", "user"),
            ("dave", "user"),
            ("operator", "operator"),
            ("supervisor", "supervisor"),
            ("admin", "admin"),
        ]
    }
    courts = {
        "tennis1": Court(name="Tennis 1", sport_type=SportType.tennis,
                         operating_hours_start=time(7), operating_hours_end=time(22)),
        "tennis2": Court(name="Tennis 2", sport_type=SportType.tennis,
                         operating_hours_start=time(7), operating_hours_end=time(22)),
        "padel1": Court(name="Padel 1", sport_type=SportType.padel,
                        operating_hours_start=time(7), operating_hours_end=time(22)),
    }
    db.add_all(list(users.values()) + list(courts.values()))
    db.commit()
    ids = {name: row.id for name, row in {**users, **courts}.items()}
    roles = {name: ActorRole(row.role) for name, row in users.items()}
    db.close()
    ids["actors"] = {name: Actor(user_id=ids[name], role=roles[name]) for name in users}
    return ids


@pytest.fixture
def clock():
    return FrozenClock(local(0, 8))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store(session_factory):
    return SqlBookingStore(session_factory)


@pytest.fixture
def rule_source(session_factory):
    return SqlRuleSource(session_factory)


@pytest.fixture
def lifecycle(store, rule_source, notifier, clock):
    return BookingLifecycle(store, rule_source, notifier=notifier, clock=clock, tz=TZ)


@pytest.fixture
def closures(store, lifecycle, notifier, clock):
    return ClosureResolver(store, lifecycle, notifier=notifier, clock=clock, tz=TZ)
