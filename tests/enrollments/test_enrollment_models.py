"""Tests for the enrollment state machine and entity helpers."""

from uuid import uuid4

import pytest

from learnhub.core.errors import ForbiddenError, ValidationError
from learnhub.enrollments.models import (
    CourseProgressEntry,
    CourseProgressStatus,
    Enrollment,
    EnrollmentStatus,
    TransitionActor,
    check_transition,
)


S = EnrollmentStatus
A = TransitionActor


class TestCheckTransition:
    """Tests for check_transition."""

    @pytest.mark.parametrize(
        ("current", "new", "actor"),
        [
            (S.PENDING, S.ACTIVE, A.ADMIN),
            (S.PENDING, S.DROPPED, A.SELF),
            (S.ACTIVE, S.COMPLETED, A.SYSTEM),
            (S.ACTIVE, S.COMPLETED, A.ADMIN),
            (S.ACTIVE, S.SUSPENDED, A.ADMIN),
            (S.ACTIVE, S.DROPPED, A.SELF),
            (S.SUSPENDED, S.ACTIVE, A.ADMIN),
            (S.DROPPED, S.ACTIVE, A.ADMIN),
        ],
    )
    def test_allowed(self, current, new, actor) -> None:
        check_transition(current, new, actor)

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (S.COMPLETED, S.ACTIVE),
            (S.COMPLETED, S.DROPPED),
            (S.DROPPED, S.COMPLETED),
            (S.SUSPENDED, S.COMPLETED),
            (S.ACTIVE, S.PENDING),
            (S.ACTIVE, S.ACTIVE),
        ],
    )
    def test_invalid_transition(self, current, new) -> None:
        with pytest.raises(ValidationError) as exc_info:
            check_transition(current, new, A.ADMIN)

        assert exc_info.value.code == "invalid_status_transition"

    @pytest.mark.parametrize(
        ("current", "new", "actor"),
        [
            (S.ACTIVE, S.SUSPENDED, A.SELF),
            (S.ACTIVE, S.COMPLETED, A.SELF),
            (S.DROPPED, S.ACTIVE, A.SELF),
            (S.ACTIVE, S.DROPPED, A.OTHER),
        ],
    )
    def test_actor_not_allowed(self, current, new, actor) -> None:
        with pytest.raises(ForbiddenError) as exc_info:
            check_transition(current, new, actor)

        assert exc_info.value.code == "status_change_forbidden"


class TestEnrollmentEntity:
    """Tests for Enrollment helpers."""

    @staticmethod
    def _enrollment(*statuses: CourseProgressStatus) -> Enrollment:
        return Enrollment(
            student_id=uuid4(),
            program_id=uuid4(),
            courses_progress=[
                CourseProgressEntry(
                    course_id=uuid4(), position=i, total_lessons=3, status=status
                )
                for i, status in enumerate(statuses)
            ],
        )

    def test_empty_snapshot_is_never_all_completed(self) -> None:
        assert self._enrollment().all_courses_completed is False

    def test_all_courses_completed(self) -> None:
        enrollment = self._enrollment(
            CourseProgressStatus.COMPLETED, CourseProgressStatus.COMPLETED
        )
        assert enrollment.all_courses_completed is True

    def test_total_lessons_sums_snapshot(self) -> None:
        enrollment = self._enrollment(
            CourseProgressStatus.PENDING, CourseProgressStatus.ACTIVE
        )
        assert enrollment.total_lessons == 6

    def test_entry_for_unknown_course(self) -> None:
        assert self._enrollment(CourseProgressStatus.PENDING).entry_for(uuid4()) is None

    @pytest.mark.parametrize(
        ("status", "holds"),
        [
            (S.PENDING, True),
            (S.ACTIVE, True),
            (S.COMPLETED, False),
            (S.DROPPED, False),
            (S.SUSPENDED, False),
        ],
    )
    def test_holds_seat(self, status, holds) -> None:
        enrollment = Enrollment(student_id=uuid4(), program_id=uuid4(), status=status)
        assert enrollment.holds_seat is holds
