"""
Tests for the daily execution ledger: day views, range summaries,
completion toggles and the rewards they emit.
"""
from datetime import timedelta
from uuid import uuid4

import pytest

from conftest import TODAY, count_rows, make_member
from core.auth import AuthContext
from core.database import SessionLocal
from core.exceptions import ForbiddenError, NotFoundError, ValidationError
from models import HabitInstance, RewardEvent
from services import enrollment as enrollment_service
from services import habit_ledger
from services.reward_ledger import get_balance


def _instance(db, user_id, day, title="Habit", cadence="daily", completed=False):
    instance = HabitInstance(
        user_id=user_id,
        title=title,
        cadence=cadence,
        scheduled_date=day,
        is_from_routine=False,
        completed=completed,
    )
    db.add(instance)
    db.commit()
    return instance


@pytest.fixture
def enrolled(db_session, ctx, sleep_routine):
    return enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", "key-1", today=TODAY).enrollment


class TestGetForDate:
    def test_groups_by_cadence(self, db_session, ctx, enrolled):
        day = habit_ledger.get_for_date(db_session, ctx, TODAY)

        assert day.date == TODAY
        assert [h.title for h in day.habits] == ["Screens off", "Sleep review"]
        assert [h.title for h in day.grouped["daily"]] == ["Screens off"]
        assert [h.title for h in day.grouped["weekly"]] == ["Sleep review"]
        assert day.grouped["as-needed"] == []

    def test_sorted_by_cadence_then_title(self, db_session, ctx):
        _instance(db_session, ctx.user_id, TODAY, "Zebra", "daily")
        _instance(db_session, ctx.user_id, TODAY, "Apple", "weekly")
        _instance(db_session, ctx.user_id, TODAY, "Mango", "daily")

        titles = [h.title for h in habit_ledger.get_for_date(db_session, ctx, TODAY).habits]
        assert titles == ["Mango", "Zebra", "Apple"]

    def test_only_own_habits(self, db_session, ctx):
        other = make_member(db_session)
        _instance(db_session, other.id, TODAY, "Not mine")

        assert habit_ledger.get_for_date(db_session, ctx, TODAY).habits == []


class TestGetRange:
    def test_fills_missing_days_with_zeros(self, db_session, ctx):
        d1 = TODAY
        _instance(db_session, ctx.user_id, d1 + timedelta(days=1), completed=True)
        _instance(db_session, ctx.user_id, d1 + timedelta(days=1))
        _instance(db_session, ctx.user_id, d1 + timedelta(days=3))

        rows = habit_ledger.get_range(db_session, ctx, d1, d1 + timedelta(days=4))

        assert [r.date for r in rows] == [d1 + timedelta(days=n) for n in range(5)]
        assert [(r.total, r.completed) for r in rows] == [(0, 0), (2, 1), (0, 0), (1, 0), (0, 0)]

    def test_single_day_range(self, db_session, ctx):
        rows = habit_ledger.get_range(db_session, ctx, TODAY, TODAY)
        assert len(rows) == 1
        assert rows[0].total == 0

    def test_inverted_range_rejected(self, db_session, ctx):
        with pytest.raises(ValidationError):
            habit_ledger.get_range(db_session, ctx, TODAY, TODAY - timedelta(days=1))

    def test_oversized_range_rejected(self, db_session, ctx):
        with pytest.raises(ValidationError):
            habit_ledger.get_range(db_session, ctx, TODAY, TODAY + timedelta(days=400))


class TestToggle:
    def test_completing_awards_coins_once(self, db_session, ctx, enrolled):
        habit = habit_ledger.get_for_date(db_session, ctx, TODAY).habits[0]

        updated = habit_ledger.toggle(db_session, ctx, habit.id, True)
        assert updated.completed is True
        assert updated.completed_at is not None

        habit_ledger.toggle(db_session, ctx, habit.id, True)

        events = db_session.query(RewardEvent).filter(RewardEvent.user_id == ctx.user_id).all()
        assert len(events) == 1
        assert events[0].amount == 10
        assert events[0].type == "earn"
        assert events[0].reason == "Completed habit: Screens off"
        assert events[0].habit_instance_id == habit.id

    def test_uncomplete_keeps_earned_coins(self, db_session, ctx, enrolled):
        habit = habit_ledger.get_for_date(db_session, ctx, TODAY).habits[0]
        habit_ledger.toggle(db_session, ctx, habit.id, True)

        updated = habit_ledger.toggle(db_session, ctx, habit.id, False)

        assert updated.completed is False
        assert updated.completed_at is None
        events = db_session.query(RewardEvent).filter(RewardEvent.user_id == ctx.user_id).all()
        assert [e.amount for e in events] == [10]
        assert get_balance(db_session, ctx.user_id) == 10

    def test_recompleting_earns_again(self, db_session, ctx, enrolled):
        habit = habit_ledger.get_for_date(db_session, ctx, TODAY).habits[0]
        habit_ledger.toggle(db_session, ctx, habit.id, True)
        habit_ledger.toggle(db_session, ctx, habit.id, False)
        habit_ledger.toggle(db_session, ctx, habit.id, True)

        assert get_balance(db_session, ctx.user_id) == 20

    def test_stale_caller_after_concurrent_completion_earns_nothing(self, db_session, ctx, enrolled):
        habit = habit_ledger.get_for_date(db_session, ctx, TODAY).habits[0]

        other = SessionLocal()
        try:
            habit_ledger.toggle(other, ctx, habit.id, True)
        finally:
            other.close()

        assert habit.completed is False  # this session has not seen the other commit
        updated = habit_ledger.toggle(db_session, ctx, habit.id, True)

        assert updated.completed is True
        assert count_rows(db_session, RewardEvent, user_id=ctx.user_id) == 1
        assert get_balance(db_session, ctx.user_id) == 10

    def test_uncompleting_incomplete_habit_is_noop(self, db_session, ctx, enrolled):
        habit = habit_ledger.get_for_date(db_session, ctx, TODAY).habits[0]
        updated = habit_ledger.toggle(db_session, ctx, habit.id, False)

        assert updated.completed is False
        assert db_session.query(RewardEvent).count() == 0

    def test_unknown_habit_is_not_found(self, db_session, ctx):
        with pytest.raises(NotFoundError):
            habit_ledger.toggle(db_session, ctx, uuid4(), True)

    def test_other_members_habit_is_forbidden(self, db_session, ctx, enrolled):
        habit = habit_ledger.get_for_date(db_session, ctx, TODAY).habits[0]
        stranger = AuthContext.for_member(make_member(db_session))

        with pytest.raises(ForbiddenError):
            habit_ledger.toggle(db_session, stranger, habit.id, True)

        db_session.refresh(habit)
        assert habit.completed is False
        assert db_session.query(RewardEvent).count() == 0


class TestGetDetail:
    def test_includes_template_content_but_keeps_snapshot(self, db_session, ctx, sleep_routine, enrolled):
        _, templates = sleep_routine
        templates[0].title = "Renamed in admin"
        templates[0].instructions = "Charge your phone outside the bedroom."
        db_session.commit()

        habit = habit_ledger.get_for_date(db_session, ctx, TODAY).habits[0]
        detail = habit_ledger.get_detail(db_session, ctx, habit.id)

        assert detail.habit.title == "Screens off"
        assert detail.template.instructions == "Charge your phone outside the bedroom."

    def test_custom_habit_has_no_template(self, db_session, ctx):
        habit = _instance(db_session, ctx.user_id, TODAY, "Custom")
        detail = habit_ledger.get_detail(db_session, ctx, habit.id)
        assert detail.template is None
