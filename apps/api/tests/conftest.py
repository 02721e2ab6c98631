"""
Pytest configuration and fixtures

Tests run against a throwaway SQLite file upgraded with the real Alembic
migrations once per session. Every table is wiped after each test, so
services are exercised with their own commits and rollbacks intact.
"""
import os
import sys
import tempfile
from datetime import date
from pathlib import Path
from uuid import uuid4

# Must be set before core.config is imported anywhere.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="coaching_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'coaching_test.db')}"
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-coaching-engine-0123456789")
os.environ["CACHE_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("COACHING_DEFAULT_TIMEZONE", "UTC")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _ensure_db_schema_is_at_head():
    """Build the test schema from the Alembic migrations, not from the models."""
    try:
        from alembic import command
        from alembic.config import Config

        api_root = Path(__file__).resolve().parents[1]
        alembic_ini = api_root / "alembic.ini"

        cfg = Config(str(alembic_ini))
        # Alembic's script_location in alembic.ini is relative ("alembic")
        # so we set it explicitly.
        cfg.set_main_option("script_location", str(api_root / "alembic"))
        cfg.attributes["configure_logger"] = False
        command.upgrade(cfg, "head")
    except Exception as e:
        # Tests should fail loudly if migrations cannot be applied.
        raise RuntimeError(f"Failed to upgrade DB to Alembic head: {e}") from e


from core.auth import AuthContext  # noqa: E402
from core.database import Base, SessionLocal, engine  # noqa: E402
from core.security import create_access_token  # noqa: E402
from models import HabitTemplate, HabitTemplateAssignment, Member, RoutineTemplate  # noqa: E402


TODAY = date(2026, 3, 2)


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def make_member(db, role="member", timezone=None):
    member = Member(
        email=f"member_{uuid4()}@example.com",
        display_name="Test Member",
        role=role,
        subscription_tier="free",
        timezone=timezone,
    )
    db.add(member)
    db.commit()
    db.refresh(member)
    return member


def make_routine(db, template_id=None, duration_days=14, habits=None, is_deleted=False):
    """
    Create a routine template with habit templates attached.

    `habits` is a list of HabitTemplate keyword dicts; title defaults per position.
    """
    routine = RoutineTemplate(
        id=template_id or f"routine_{uuid4().hex[:8]}",
        name="Test Routine",
        description="A routine for tests",
        category="test",
        duration_days=duration_days,
        tier="free",
        sort_order=0,
        is_deleted=is_deleted,
    )
    db.add(routine)
    created = []
    for i, spec in enumerate(habits or []):
        fields = {"title": f"Habit {i + 1}", "cadence": "daily", "intensity": "lite", "order_index": i}
        fields.update(spec)
        habit = HabitTemplate(**fields)
        db.add(habit)
        db.flush()
        db.add(HabitTemplateAssignment(habit_template_id=habit.id, routine_template_id=routine.id))
        created.append(habit)
    db.commit()
    return routine, created


def race_on_next_add(monkeypatch, db, rival):
    """
    Run `rival(other_session)` in a second session, committed, just before
    `db` adds its next object. The caller's existence checks have already
    run by then, so they are stale when its own insert reaches the database.
    """
    original_add = db.add
    fired = []

    def add(instance, *args, **kwargs):
        if not fired:
            fired.append(True)
            other = SessionLocal()
            try:
                rival(other)
            finally:
                other.close()
        return original_add(instance, *args, **kwargs)

    monkeypatch.setattr(db, "add", add)


def count_rows(db, model, **filters):
    query = db.query(model)
    for name, value in filters.items():
        query = query.filter(getattr(model, name) == value)
    return query.count()


def auth_headers_for(member):
    token = create_access_token({"sub": str(member.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def member(db_session):
    return make_member(db_session)


@pytest.fixture
def ctx(member):
    return AuthContext.for_member(member)


@pytest.fixture
def auth_headers(member):
    return auth_headers_for(member)


@pytest.fixture
def sleep_routine(db_session):
    """14 days: one daily habit and one weekly habit, both lite, both days 1..14."""
    return make_routine(
        db_session,
        template_id="sleep_mastery",
        duration_days=14,
        habits=[
            {"title": "Screens off", "cadence": "daily", "short_description": "No screens after 10pm"},
            {"title": "Sleep review", "cadence": "weekly", "description": "Review the week"},
        ],
    )
