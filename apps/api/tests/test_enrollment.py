"""
Tests for enrollment: materialization, idempotency, one-active-enrollment
rule and lifecycle transitions.
"""
from dataclasses import replace
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import TODAY, count_rows, make_member, make_routine, race_on_next_add
from core.auth import AuthContext
from core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from models import Enrollment, HabitInstance, HabitTemplate
from services import enrollment as enrollment_service


class TestEnroll:
    def test_materializes_full_calendar(self, db_session, ctx, sleep_routine):
        result = enrollment_service.enroll(
            db_session, ctx, "sleep_mastery", TODAY, "lite", "key-1", today=TODAY
        )

        assert result.already_enrolled is False
        assert result.habits_scheduled == 16
        enrollment = result.enrollment
        assert enrollment.status == "active"
        assert enrollment.start_date == TODAY
        assert enrollment.end_date == TODAY + timedelta(days=13)
        assert count_rows(db_session, HabitInstance, enrollment_id=enrollment.id) == 16

        instances = db_session.query(HabitInstance).filter(HabitInstance.enrollment_id == enrollment.id).all()
        assert all(i.scheduled_date <= enrollment.end_date for i in instances)
        assert all(i.is_from_routine and not i.completed for i in instances)

    def test_same_key_replays_without_new_rows(self, db_session, ctx, sleep_routine):
        first = enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", "key-1", today=TODAY)
        second = enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", "key-1", today=TODAY)

        assert second.already_enrolled is True
        assert second.enrollment.id == first.enrollment.id
        assert second.habits_scheduled == 16
        assert count_rows(db_session, Enrollment, user_id=ctx.user_id) == 1
        assert count_rows(db_session, HabitInstance, user_id=ctx.user_id) == 16

    def test_missing_key_is_derived_from_request(self, db_session, ctx, sleep_routine):
        first = enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", None, today=TODAY)
        second = enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", None, today=TODAY)

        assert second.already_enrolled is True
        assert second.enrollment.id == first.enrollment.id

    def test_key_reused_with_different_parameters_conflicts(self, db_session, ctx, sleep_routine):
        enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", "key-1", today=TODAY)

        with pytest.raises(ConflictError):
            enrollment_service.enroll(
                db_session, ctx, "sleep_mastery", TODAY + timedelta(days=1), "lite", "key-1", today=TODAY
            )

    def test_second_enrollment_while_active_conflicts(self, db_session, ctx, sleep_routine):
        first = enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", "key-1", today=TODAY)
        make_routine(db_session, template_id="other", duration_days=7, habits=[{"title": "Stretch"}])

        with pytest.raises(ConflictError) as exc_info:
            enrollment_service.enroll(db_session, ctx, "other", TODAY, "lite", "key-2", today=TODAY)

        assert exc_info.value.existing_enrollment_id == first.enrollment.id
        assert count_rows(db_session, Enrollment, user_id=ctx.user_id) == 1
        assert count_rows(db_session, HabitInstance, user_id=ctx.user_id) == 16

    def test_expired_active_enrollment_is_completed_before_new_one(self, db_session, ctx, sleep_routine):
        old = enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", "key-1", today=TODAY)
        later = TODAY + timedelta(days=20)

        result = enrollment_service.enroll(db_session, ctx, "sleep_mastery", later, "lite", "key-2", today=later)

        db_session.refresh(old.enrollment)
        assert old.enrollment.status == "completed"
        assert result.enrollment.status == "active"

    def test_past_start_date_rejected(self, db_session, ctx, sleep_routine):
        with pytest.raises(ValidationError) as exc_info:
            enrollment_service.enroll(
                db_session, ctx, "sleep_mastery", TODAY - timedelta(days=1), "lite", "key-1", today=TODAY
            )
        assert exc_info.value.field == "start_date"
        assert exc_info.value.error_code == "VALIDATION_ERROR_START_DATE"

    def test_unknown_intensity_rejected(self, db_session, ctx, sleep_routine):
        with pytest.raises(ValidationError) as exc_info:
            enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "extreme", "key-1", today=TODAY)
        assert exc_info.value.field == "intensity"

    def test_unknown_or_deleted_template(self, db_session, ctx):
        make_routine(db_session, template_id="gone", habits=[{"title": "X"}], is_deleted=True)

        with pytest.raises(NotFoundError):
            enrollment_service.enroll(db_session, ctx, "missing", TODAY, "lite", "key-1", today=TODAY)
        with pytest.raises(NotFoundError):
            enrollment_service.enroll(db_session, ctx, "gone", TODAY, "lite", "key-2", today=TODAY)
        assert count_rows(db_session, Enrollment, user_id=ctx.user_id) == 0

    def test_lite_enrollment_skips_intense_habits(self, db_session, ctx):
        make_routine(
            db_session,
            template_id="mixed",
            duration_days=3,
            habits=[{"title": "Easy"}, {"title": "Hard", "intensity": "intense"}],
        )
        result = enrollment_service.enroll(db_session, ctx, "mixed", TODAY, "lite", "k", today=TODAY)
        titles = {i.title for i in db_session.query(HabitInstance).filter(HabitInstance.user_id == ctx.user_id)}
        assert result.habits_scheduled == 3
        assert titles == {"Easy"}

    def test_template_edit_after_enrollment_keeps_snapshot(self, db_session, ctx, sleep_routine):
        _, habits = sleep_routine
        enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", "key-1", today=TODAY)

        template = db_session.query(HabitTemplate).filter(HabitTemplate.id == habits[0].id).one()
        template.title = "Renamed"
        template.short_description = "Changed"
        db_session.commit()

        instances = db_session.query(HabitInstance).filter(HabitInstance.habit_template_id == habits[0].id).all()
        assert {i.title for i in instances} == {"Screens off"}
        assert {i.description for i in instances} == {"No screens after 10pm"}

    def test_members_are_isolated(self, db_session, ctx, sleep_routine):
        other = AuthContext.for_member(make_member(db_session))
        enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", "same-key", today=TODAY)
        result = enrollment_service.enroll(db_session, other, "sleep_mastery", TODAY, "lite", "same-key", today=TODAY)

        assert result.already_enrolled is False
        assert count_rows(db_session, HabitInstance, user_id=other.user_id) == 16


class TestLifecycle:
    @pytest.fixture
    def enrolled(self, db_session, ctx, sleep_routine):
        return enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", "key-1", today=TODAY).enrollment

    def test_pause_and_resume(self, db_session, ctx, enrolled):
        paused = enrollment_service.pause_active(db_session, ctx, today=TODAY)
        assert paused.status == "paused"
        assert paused.paused_at is not None
        assert enrollment_service.get_active_enrollment(db_session, ctx.user_id) is None

        resumed = enrollment_service.resume(db_session, ctx, today=TODAY + timedelta(days=3))
        assert resumed.id == enrolled.id
        assert resumed.status == "active"
        assert resumed.paused_at is None

    def test_resume_never_creates_instances(self, db_session, ctx, enrolled):
        enrollment_service.pause_active(db_session, ctx, today=TODAY)
        before = count_rows(db_session, HabitInstance, user_id=ctx.user_id)

        enrollment_service.resume(db_session, ctx, enrollment_id=enrolled.id, today=TODAY + timedelta(days=5))

        assert count_rows(db_session, HabitInstance, user_id=ctx.user_id) == before

    def test_pause_and_abandon_without_active_are_forbidden(self, db_session, ctx):
        with pytest.raises(ForbiddenError):
            enrollment_service.pause_active(db_session, ctx, today=TODAY)
        with pytest.raises(ForbiddenError):
            enrollment_service.abandon_active(db_session, ctx, today=TODAY)

    def test_abandon_is_terminal(self, db_session, ctx, enrolled):
        abandoned = enrollment_service.abandon_active(db_session, ctx, today=TODAY)
        assert abandoned.status == "abandoned"
        assert abandoned.ended_at is not None

        with pytest.raises(ConflictError):
            enrollment_service.resume(db_session, ctx, enrollment_id=enrolled.id, today=TODAY)

    def test_resume_unknown_or_foreign_enrollment(self, db_session, ctx, enrolled):
        enrollment_service.pause_active(db_session, ctx, today=TODAY)
        stranger = AuthContext.for_member(make_member(db_session))

        with pytest.raises(NotFoundError):
            enrollment_service.resume(db_session, stranger, enrollment_id=enrolled.id, today=TODAY)
        with pytest.raises(NotFoundError):
            enrollment_service.resume(db_session, stranger, today=TODAY)

    def test_resume_blocked_by_other_active_enrollment(self, db_session, ctx, enrolled):
        enrollment_service.pause_active(db_session, ctx, today=TODAY)
        make_routine(db_session, template_id="other", duration_days=7, habits=[{"title": "Stretch"}])
        enrollment_service.enroll(db_session, ctx, "other", TODAY, "lite", "key-2", today=TODAY)

        with pytest.raises(ConflictError):
            enrollment_service.resume(db_session, ctx, enrollment_id=enrolled.id, today=TODAY)

    def test_resume_after_end_date_completes_instead(self, db_session, ctx, enrolled):
        enrollment_service.pause_active(db_session, ctx, today=TODAY)

        with pytest.raises(ValidationError):
            enrollment_service.resume(db_session, ctx, today=TODAY + timedelta(days=30))

        db_session.refresh(enrolled)
        assert enrolled.status == "completed"

    def test_history_lists_every_enrollment(self, db_session, ctx, enrolled):
        enrollment_service.abandon_active(db_session, ctx, today=TODAY)
        make_routine(db_session, template_id="other", duration_days=7, habits=[{"title": "Stretch"}])
        enrollment_service.enroll(db_session, ctx, "other", TODAY, "lite", "key-2", today=TODAY)

        history = enrollment_service.list_enrollments(db_session, ctx.user_id)
        assert {e.status for e in history} == {"abandoned", "active"}
        assert len(history) == 2


class TestPauseHistory:
    @pytest.fixture
    def enrolled(self, db_session, ctx, sleep_routine):
        return enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", "key-1", today=TODAY).enrollment

    def test_pause_and_resume_record_the_interval(self, db_session, ctx, enrolled):
        enrollment_service.pause_active(db_session, ctx, today=TODAY + timedelta(days=2))
        (pause,) = enrollment_service.list_pauses(db_session, ctx.user_id)
        assert pause.enrollment_id == enrolled.id
        assert pause.paused_on == TODAY + timedelta(days=2)
        assert pause.resumed_on is None

        enrollment_service.resume(db_session, ctx, today=TODAY + timedelta(days=5))

        db_session.refresh(pause)
        assert pause.resumed_on == TODAY + timedelta(days=5)
        assert not pause.covers(TODAY + timedelta(days=1))
        assert pause.covers(TODAY + timedelta(days=4))
        assert not pause.covers(TODAY + timedelta(days=5))

    def test_resume_after_end_closes_pause_at_end_date(self, db_session, ctx, enrolled):
        enrollment_service.pause_active(db_session, ctx, today=TODAY + timedelta(days=2))

        with pytest.raises(ValidationError):
            enrollment_service.resume(db_session, ctx, today=TODAY + timedelta(days=30))

        (pause,) = enrollment_service.list_pauses(db_session, ctx.user_id)
        assert pause.resumed_on == enrolled.end_date + timedelta(days=1)


class TestLazyCompletion:
    @pytest.fixture
    def enrolled(self, db_session, ctx, sleep_routine):
        return enrollment_service.enroll(db_session, ctx, "sleep_mastery", TODAY, "lite", "key-1", today=TODAY).enrollment

    def test_abandon_after_end_date_completes_instead(self, db_session, ctx, enrolled):
        with pytest.raises(ForbiddenError):
            enrollment_service.abandon_active(db_session, ctx, today=TODAY + timedelta(days=30))

        db_session.refresh(enrolled)
        assert enrolled.status == "completed"
        assert enrolled.ended_at is not None

    def test_pause_after_end_date_completes_instead(self, db_session, ctx, enrolled):
        with pytest.raises(ForbiddenError):
            enrollment_service.pause_active(db_session, ctx, today=TODAY + timedelta(days=14))

        db_session.refresh(enrolled)
        assert enrolled.status == "completed"
        assert enrollment_service.list_pauses(db_session, ctx.user_id) == []

    def test_current_enrollment_is_none_once_ended(self, db_session, ctx, enrolled):
        last_day = enrolled.end_date
        assert enrollment_service.get_current_enrollment(db_session, ctx, today=last_day).id == enrolled.id

        assert enrollment_service.get_current_enrollment(db_session, ctx, today=last_day + timedelta(days=1)) is None
        db_session.refresh(enrolled)
        assert enrolled.status == "completed"


class TestConcurrentEnroll:
    def _enroll(self, db, ctx, key):
        return enrollment_service.enroll(db, ctx, "sleep_mastery", TODAY, "lite", key, today=TODAY)

    def test_same_key_loser_replays_winner(self, monkeypatch, db_session, ctx, sleep_routine):
        winner = {}
        race_on_next_add(
            monkeypatch, db_session,
            lambda other: winner.setdefault("id", self._enroll(other, ctx, "key-1").enrollment.id),
        )

        result = self._enroll(db_session, ctx, "key-1")

        assert result.already_enrolled is True
        assert result.enrollment.id == winner["id"]
        assert result.habits_scheduled == 16
        assert count_rows(db_session, Enrollment, user_id=ctx.user_id) == 1
        assert count_rows(db_session, HabitInstance, user_id=ctx.user_id) == 16

    def test_different_key_loser_gets_conflict(self, monkeypatch, db_session, ctx, sleep_routine):
        winner = {}
        race_on_next_add(
            monkeypatch, db_session,
            lambda other: winner.setdefault("id", self._enroll(other, ctx, "key-winner").enrollment.id),
        )

        with pytest.raises(ConflictError) as exc:
            self._enroll(db_session, ctx, "key-loser")

        assert exc.value.existing_enrollment_id == winner["id"]
        assert count_rows(db_session, Enrollment, user_id=ctx.user_id) == 1
        assert count_rows(db_session, HabitInstance, user_id=ctx.user_id) == 16

    def test_failed_instance_insert_leaves_no_rows(self, monkeypatch, db_session, ctx, sleep_routine):
        expand = enrollment_service.expand_routine

        def expand_with_bad_row(*args, **kwargs):
            scheduled = expand(*args, **kwargs)
            return scheduled + [replace(scheduled[-1], title=None)]

        monkeypatch.setattr(enrollment_service, "expand_routine", expand_with_bad_row)

        with pytest.raises(IntegrityError):
            self._enroll(db_session, ctx, "key-1")

        assert count_rows(db_session, Enrollment, user_id=ctx.user_id) == 0
        assert count_rows(db_session, HabitInstance, user_id=ctx.user_id) == 0
