import pytest
import os
from datetime import date, datetime, timezone
from types import SimpleNamespace

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["NOTIFICATIONS_ENABLED"] = "true"

import hrflow.models  # noqa: F401  (registers every table)
from hrflow.database import Base, get_db
from hrflow.main import create_app
from hrflow.models import Employee, LeaveBalance, User, UserRole
from hrflow.services.appraisal_service import AppraisalService
from hrflow.services.authorization import CallerIdentity
from hrflow.services.leave_service import LeaveService
from hrflow.services.notification import NotificationReceipt
from hrflow.services.onboarding_service import OnboardingService
from fastapi.testclient import TestClient

FIXED_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
TODAY = FIXED_NOW.date()


class RecordingNotifier:
    """Collects every notification instead of delivering it."""

    def __init__(self):
        self.sent = []

    def send(self, kind, recipient_user_id, payload):
        self.sent.append((kind, recipient_user_id, payload))
        return NotificationReceipt(kind=kind, recipient_user_id=recipient_user_id)

    @property
    def kinds(self):
        return [kind for kind, _, _ in self.sent]

    def to(self, recipient_user_id):
        return [kind for kind, user_id, _ in self.sent if user_id == recipient_user_id]


class FailingNotifier:
    def __init__(self):
        self.calls = 0

    def send(self, kind, recipient_user_id, payload):
        self.calls += 1
        raise RuntimeError("mail relay unavailable")


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def seed_people(session_factory):
    """
    HR admin Hannah manages Mark; Mark manages Alice and Bob; Olivia is a
    second manager with no reports. Oscar has an account but no employee record.
    """
    db = session_factory()
    try:
        users = [
            User(id=1, email="hannah@hrflow.test", full_name="Hannah Admin", role=UserRole.HR_ADMIN),
            User(id=2, email="mark@hrflow.test", full_name="Mark Manager", role=UserRole.MANAGER),
            User(id=3, email="alice@hrflow.test", full_name="Alice Employee", role=UserRole.EMPLOYEE),
            User(id=4, email="bob@hrflow.test", full_name="Bob Employee", role=UserRole.EMPLOYEE),
            User(id=5, email="oscar@hrflow.test", full_name="Oscar Outsider", role=UserRole.EMPLOYEE),
            User(id=6, email="olivia@hrflow.test", full_name="Olivia Manager", role=UserRole.MANAGER),
        ]
        db.add_all(users)
        db.flush()
        db.add_all([
            Employee(id=101, user_id=1, first_name="Hannah", last_name="Admin", email="hannah@hrflow.test",
                     job_title="HR Director", department_id="hr"),
            Employee(id=102, user_id=2, manager_id=101, first_name="Mark", last_name="Manager",
                     email="mark@hrflow.test", job_title="Engineering Manager", department_id="eng"),
            Employee(id=103, user_id=3, manager_id=102, first_name="Alice", last_name="Employee",
                     email="alice@hrflow.test", job_title="Engineer", department_id="eng"),
            Employee(id=104, user_id=4, manager_id=102, first_name="Bob", last_name="Employee",
                     email="bob@hrflow.test", job_title="Engineer", department_id="eng"),
            Employee(id=106, user_id=6, manager_id=101, first_name="Olivia", last_name="Manager",
                     email="olivia@hrflow.test", job_title="Sales Manager", department_id="sales"),
        ])
        db.add_all([
            LeaveBalance(employee_id=103, year=TODAY.year, annual_leave_total=20, annual_leave_used=0,
                         sick_leave_total=10, sick_leave_used=0),
            LeaveBalance(employee_id=104, year=TODAY.year, annual_leave_total=3, annual_leave_used=0,
                         sick_leave_total=5, sick_leave_used=0),
        ])
        db.commit()
    finally:
        db.close()

    return SimpleNamespace(
        hr=CallerIdentity(user_id=1, role=UserRole.HR_ADMIN, employee_id=101),
        manager=CallerIdentity(user_id=2, role=UserRole.MANAGER, employee_id=102, manager_id=101),
        alice=CallerIdentity(user_id=3, role=UserRole.EMPLOYEE, employee_id=103, manager_id=102),
        bob=CallerIdentity(user_id=4, role=UserRole.EMPLOYEE, employee_id=104, manager_id=102),
        outsider=CallerIdentity(user_id=5, role=UserRole.EMPLOYEE),
        other_manager=CallerIdentity(user_id=6, role=UserRole.MANAGER, employee_id=106, manager_id=101),
    )


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def people(session_factory):
    return seed_people(session_factory)


@pytest.fixture(scope="function")
def notifier():
    return RecordingNotifier()


@pytest.fixture(scope="function")
def clock():
    return lambda: FIXED_NOW


@pytest.fixture(scope="function")
def appraisal_service(session_factory, notifier, clock):
    return AppraisalService(session_factory, notifier, clock=clock)


@pytest.fixture(scope="function")
def onboarding_service(session_factory, notifier, clock):
    return OnboardingService(session_factory, notifier, clock=clock)


@pytest.fixture(scope="function")
def leave_service(session_factory, notifier, clock):
    return LeaveService(session_factory, notifier, clock=clock)


@pytest.fixture(scope="function")
def app(session_factory, people):
    """Application wired to the test database with the in-app notifier."""
    return create_app(session_factory=session_factory, initialize_db=False)


@pytest.fixture(scope="function")
def client(app, session_factory):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def headers_for(caller):
    return {"X-User-Id": str(caller.user_id)}


def appraisal_payload(employee_id=103, reviewer_id=102, goals=1):
    from hrflow.schemas.appraisal import AppraisalCreate, GoalCreate
    return AppraisalCreate(
        employee_id=employee_id,
        reviewer_id=reviewer_id,
        review_period_start=date(2026, 1, 1),
        review_period_end=date(2026, 6, 30),
        goals=[
            GoalCreate(
                title=f"Goal {i + 1}",
                description=f"Deliver milestone {i + 1}",
                target_date=date(2026, 6, 1),
            )
            for i in range(goals)
        ],
    )
