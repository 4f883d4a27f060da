"""Tests for EnrollmentManager.

Collaborators (store, catalog, users, scholarships, progress) are mocks; the
pricing functions are the real ones.
"""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from learnhub.auth.permissions import UserRole
from learnhub.catalog.models import Course
from learnhub.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PaymentRequiredError,
    UnavailableError,
    ValidationError,
)
from learnhub.core.references import Reference
from learnhub.enrollments.models import (
    CourseProgressEntry,
    EmailEnrollmentEntry,
    Enrollment,
    EnrollmentStatus,
    EnrollOptions,
    TransitionActor,
)
from learnhub.enrollments.service import EnrollmentManager, resolve_actor
from learnhub.progress.models import ProgressScope
from learnhub.scholarships.models import DiscountType, Scholarship, ScholarshipStatus
from learnhub.scholarships.pricing import compute_discount


LESSONS_PER_COURSE = 4


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def program(program_factory):
    return program_factory(price=0, course_count=2)


@pytest.fixture
def student(user_factory):
    return user_factory(role=UserRole.STUDENT, name="Ana Lima")


@pytest.fixture
def store() -> MagicMock:
    store = MagicMock()
    store.get = AsyncMock(return_value=None)
    store.find_by_pair = AsyncMock(return_value=None)
    store.reserved_seats = AsyncMock(return_value=0)
    store.claim_pair = AsyncMock(return_value=True)
    store.release_pair = AsyncMock()
    store.reserve_seat = AsyncMock()
    store.release_seat = AsyncMock()
    store.insert = AsyncMock()
    store.delete = AsyncMock()
    store.set_status = AsyncMock(
        side_effect=lambda enrollment, status, completion_date=None: _apply_status(
            enrollment, status, completion_date
        )
    )
    return store


def _apply_status(enrollment, status, completion_date):
    enrollment.status = status
    enrollment.completion_date = completion_date
    return enrollment


@pytest.fixture
def catalog(program) -> MagicMock:
    courses = [
        Course(id=course_id, program=Reference(program.id), title=f"Course {i}")
        for i, course_id in enumerate(program.course_ids)
    ]
    catalog = MagicMock()
    catalog.get_program = AsyncMock(return_value=program)
    catalog.list_program_courses = AsyncMock(return_value=courses)
    catalog.count_course_lessons = AsyncMock(return_value=LESSONS_PER_COURSE)
    catalog.increment_enrollment = AsyncMock()
    catalog.decrement_enrollment = AsyncMock()
    catalog.get_instructor_ids = AsyncMock(return_value=[])
    return catalog


@pytest.fixture
def users(student) -> MagicMock:
    users = MagicMock()
    users.get_user = AsyncMock(return_value=student)
    users.get_user_by_email = AsyncMock(return_value=None)
    users.create_student = AsyncMock()
    return users


@pytest.fixture
def scholarships() -> MagicMock:
    scholarships = MagicMock()
    scholarships.validate = AsyncMock()
    scholarships.compute_discount = MagicMock(side_effect=compute_discount)
    scholarships.mark_used = AsyncMock()
    return scholarships


@pytest.fixture
def progress() -> MagicMock:
    progress = MagicMock()
    progress.create_program_progress = AsyncMock()
    progress.delete_progress = AsyncMock()
    return progress


@pytest.fixture
def manager(engine_ctx, store, catalog, users, scholarships, progress) -> EnrollmentManager:
    return EnrollmentManager(engine_ctx, store, catalog, users, scholarships, progress)


def make_scholarship(program_id, percentage: int) -> Scholarship:
    return Scholarship(
        id=uuid4(),
        code="SCHOLAR-TEST",
        program_id=program_id,
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal(percentage),
        status=ScholarshipStatus.ACTIVE,
        created_at=datetime.now(UTC),
    )


# ==============================================================================
# Create
# ==============================================================================


class TestCreateEnrollment:
    """Tests for create_enrollment."""

    @pytest.mark.asyncio
    async def test_creates_active_enrollment_with_snapshot(
        self, manager, store, catalog, progress, program, student
    ) -> None:
        enrollment = await manager.create_enrollment(student.id, program.id)

        assert enrollment.status == EnrollmentStatus.ACTIVE
        assert enrollment.course_ids == program.course_ids
        assert [e.position for e in enrollment.courses_progress] == [0, 1]
        assert all(
            e.total_lessons == LESSONS_PER_COURSE for e in enrollment.courses_progress
        )
        store.claim_pair.assert_awaited_once_with(student.id, program.id, enrollment.id)
        store.reserve_seat.assert_awaited_once_with(program.id, program.enrollment_limit)
        store.insert.assert_awaited_once_with(enrollment)
        assert catalog.increment_enrollment.await_count == 2
        progress.create_program_progress.assert_awaited_once_with(
            student_id=student.id,
            program_id=program.id,
            total_lessons=2 * LESSONS_PER_COURSE,
            total_courses=2,
        )

    @pytest.mark.asyncio
    async def test_notifies_student_and_sends_confirmation(
        self, manager, engine_ctx, catalog, program, student
    ) -> None:
        instructor_id = uuid4()
        catalog.get_instructor_ids.return_value = [instructor_id]

        await manager.create_enrollment(student.id, program.id)

        targets = [
            call.kwargs["target_user_id"]
            for call in engine_ctx.notifications.notify.await_args_list
        ]
        assert targets == [student.id, instructor_id]
        engine_ctx.email.send_enrollment_confirmation.assert_awaited_once()
        kwargs = engine_ctx.email.send_enrollment_confirmation.call_args.kwargs
        assert kwargs["to_email"] == student.email
        assert kwargs["course_count"] == 2

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_enrollment(
        self, manager, engine_ctx, program, student
    ) -> None:
        engine_ctx.notifications.notify.side_effect = RuntimeError("redis down")

        enrollment = await manager.create_enrollment(student.id, program.id)

        assert enrollment.status == EnrollmentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_notify_false_skips_side_effects(
        self, manager, engine_ctx, program, student
    ) -> None:
        await manager.create_enrollment(
            student.id, program.id, EnrollOptions(notify=False)
        )

        engine_ctx.notifications.notify.assert_not_awaited()
        engine_ctx.email.send_enrollment_confirmation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_program(self, manager, catalog, student) -> None:
        catalog.get_program.return_value = None

        with pytest.raises(NotFoundError) as exc_info:
            await manager.create_enrollment(student.id, uuid4())

        assert exc_info.value.code == "program_not_found"

    @pytest.mark.asyncio
    async def test_unpublished_program(self, manager, program, student, store) -> None:
        program.is_published = False

        with pytest.raises(UnavailableError) as exc_info:
            await manager.create_enrollment(student.id, program.id)

        assert exc_info.value.code == "program_unavailable"
        store.claim_pair.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_student(self, manager, users, program) -> None:
        users.get_user.return_value = None

        with pytest.raises(NotFoundError) as exc_info:
            await manager.create_enrollment(uuid4(), program.id)

        assert exc_info.value.code == "student_not_found"

    @pytest.mark.asyncio
    async def test_only_students_can_be_enrolled(
        self, manager, users, user_factory, program
    ) -> None:
        instructor = user_factory(role=UserRole.INSTRUCTOR)
        users.get_user.return_value = instructor

        with pytest.raises(ForbiddenError) as exc_info:
            await manager.create_enrollment(instructor.id, program.id)

        assert exc_info.value.code == "not_a_student"

    @pytest.mark.asyncio
    async def test_existing_enrollment_conflicts(
        self, manager, store, program, student
    ) -> None:
        store.find_by_pair.return_value = Enrollment(
            student_id=student.id, program_id=program.id
        )

        with pytest.raises(ConflictError) as exc_info:
            await manager.create_enrollment(student.id, program.id)

        assert exc_info.value.code == "already_enrolled"
        store.claim_pair.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lost_pair_claim_conflicts(
        self, manager, store, program, student
    ) -> None:
        """A concurrent request that claimed the pair first wins."""
        store.claim_pair.return_value = False

        with pytest.raises(ConflictError) as exc_info:
            await manager.create_enrollment(student.id, program.id)

        assert exc_info.value.code == "already_enrolled"
        store.reserve_seat.assert_not_awaited()
        store.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_full_program_rejected_before_claims(
        self, manager, store, program, student
    ) -> None:
        program.enrollment_limit = 10
        store.reserved_seats.return_value = 10

        with pytest.raises(UnavailableError) as exc_info:
            await manager.create_enrollment(student.id, program.id)

        assert exc_info.value.code == "program_full"
        store.claim_pair.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_last_seat_goes_to_one_student(
        self, manager, store, users, user_factory, program
    ) -> None:
        """Two students racing for a 1-seat program: one enrolled, one refused."""
        program.enrollment_limit = 1
        first, second = user_factory(), user_factory()
        users.get_user.side_effect = [first, second]
        store.reserve_seat.side_effect = [
            None,
            UnavailableError("Program is full", "program_full"),
        ]

        enrollment = await manager.create_enrollment(first.id, program.id)
        with pytest.raises(UnavailableError) as exc_info:
            await manager.create_enrollment(second.id, program.id)

        assert enrollment.student_id == first.id
        assert exc_info.value.code == "program_full"
        store.insert.assert_awaited_once()
        # The refused request gives its pair claim back and never held a seat
        store.release_pair.assert_awaited_once()
        assert store.release_pair.call_args.args[0] == second.id
        store.release_seat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_write_releases_seat_and_pair(
        self, manager, store, program, student
    ) -> None:
        store.insert.side_effect = RuntimeError("write timeout")

        with pytest.raises(RuntimeError):
            await manager.create_enrollment(student.id, program.id)

        store.release_seat.assert_awaited_once_with(program.id)
        store.release_pair.assert_awaited_once()


class TestEnrollmentPricing:
    """Tests for scholarships and the payment gate."""

    @pytest.mark.asyncio
    async def test_full_scholarship_enrolls_for_free(
        self, manager, scholarships, store, program, student
    ) -> None:
        program.price = Decimal(500)
        scholarship = make_scholarship(program.id, 100)
        scholarships.validate.return_value = scholarship

        enrollment = await manager.create_enrollment(
            student.id, program.id, EnrollOptions(scholarship_code=scholarship.code)
        )

        assert enrollment.final_price == Decimal("0.00")
        assert enrollment.scholarship_id == scholarship.id
        scholarships.validate.assert_awaited_once_with(
            scholarship.code, program.id, student.email
        )
        scholarships.mark_used.assert_awaited_once_with(scholarship.id, student.id)
        store.insert.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_partial_scholarship_requires_payment(
        self, manager, scholarships, store, program, student
    ) -> None:
        program.price = Decimal(500)
        scholarship = make_scholarship(program.id, 50)
        scholarships.validate.return_value = scholarship

        with pytest.raises(PaymentRequiredError) as exc_info:
            await manager.create_enrollment(
                student.id, program.id, EnrollOptions(scholarship_code=scholarship.code)
            )

        assert exc_info.value.details() == {
            "original_price": 500.0,
            "discount_amount": 250.0,
            "final_price": 250.0,
        }
        # Nothing is claimed or redeemed before the payment gate
        store.claim_pair.assert_not_awaited()
        scholarships.mark_used.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_priced_program_without_scholarship_requires_payment(
        self, manager, program, student
    ) -> None:
        program.price = Decimal("99.90")

        with pytest.raises(PaymentRequiredError) as exc_info:
            await manager.create_enrollment(student.id, program.id)

        assert exc_info.value.quote.final_price == Decimal("99.90")

    @pytest.mark.asyncio
    async def test_waived_payment_enrolls_at_quoted_price(
        self, manager, program, student
    ) -> None:
        program.price = Decimal(120)

        enrollment = await manager.create_enrollment(
            student.id, program.id, EnrollOptions(waive_payment=True)
        )

        assert enrollment.final_price == Decimal("120.00")

    @pytest.mark.asyncio
    async def test_invalid_code_stops_enrollment(
        self, manager, scholarships, store, program, student
    ) -> None:
        scholarships.validate.side_effect = NotFoundError(
            "Invalid scholarship code", "scholarship_not_found"
        )

        with pytest.raises(NotFoundError):
            await manager.create_enrollment(
                student.id, program.id, EnrollOptions(scholarship_code="NOPE")
            )

        store.claim_pair.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redemption_race_releases_claims(
        self, manager, scholarships, store, program, student
    ) -> None:
        """Losing the scholarship redemption gives back the pair and the seat."""
        program.price = Decimal(500)
        scholarship = make_scholarship(program.id, 100)
        scholarships.validate.return_value = scholarship
        scholarships.mark_used.side_effect = ConflictError(
            "Scholarship code has already been used", "scholarship_used"
        )

        with pytest.raises(ConflictError) as exc_info:
            await manager.create_enrollment(
                student.id, program.id, EnrollOptions(scholarship_code=scholarship.code)
            )

        assert exc_info.value.code == "scholarship_used"
        store.release_seat.assert_awaited_once_with(program.id)
        store.release_pair.assert_awaited_once()
        store.insert.assert_not_awaited()


# ==============================================================================
# Batches
# ==============================================================================


class TestBatchEnrollment:
    """Tests for bulk and by-email enrollment."""

    @pytest.mark.asyncio
    async def test_bulk_reports_each_item(
        self, manager, users, user_factory, program
    ) -> None:
        ok = user_factory()
        users.get_user.side_effect = [ok, None]

        result = await manager.bulk_enroll([ok.id, uuid4()], program.id)

        assert result.enrolled == 1
        assert result.failed == 1
        assert result.items[0].success is True
        assert result.items[1].error_code == "student_not_found"

    @pytest.mark.asyncio
    async def test_enroll_by_email_mixed_entries(
        self, manager, engine_ctx, store, users, user_factory, program
    ) -> None:
        """Already enrolled, brand new and malformed entries are reported apart."""
        enrolled = user_factory(email="enrolled@test.com")
        newcomer = user_factory(email="new@test.com", name="New Person")

        async def by_email(email):
            return enrolled if email == enrolled.email else None

        async def get_user(user_id):
            return {enrolled.id: enrolled, newcomer.id: newcomer}.get(user_id)

        async def find_by_pair(student_id, program_id):
            if student_id == enrolled.id:
                return Enrollment(student_id=student_id, program_id=program_id)
            return None

        users.get_user_by_email.side_effect = by_email
        users.get_user.side_effect = get_user
        users.create_student.return_value = (newcomer, "Tmp#Pass2024")
        store.find_by_pair.side_effect = find_by_pair

        result = await manager.enroll_by_email(
            [
                EmailEnrollmentEntry(email="Enrolled@Test.com"),
                EmailEnrollmentEntry(email="new@test.com", name="New Person"),
                EmailEnrollmentEntry(email="not-an-email"),
            ],
            program.id,
            EnrollOptions(create_missing_users=True, waive_payment=True),
        )

        assert result.enrolled == 1
        assert result.failed == 2
        assert result.new_users_created == 1
        codes = [item.error_code for item in result.items]
        assert codes == ["already_enrolled", None, "invalid_email"]
        users.create_student.assert_awaited_once_with("new@test.com", "New Person")
        engine_ctx.email.send_new_account.assert_awaited_once_with(
            to_email=newcomer.email,
            user_name="New Person",
            temporary_password="Tmp#Pass2024",
        )

    @pytest.mark.asyncio
    async def test_unknown_email_without_provisioning(
        self, manager, users, program
    ) -> None:
        result = await manager.enroll_by_email(
            [EmailEnrollmentEntry(email="ghost@test.com")], program.id, EnrollOptions()
        )

        assert result.failed == 1
        assert result.items[0].error_code == "student_not_found"
        users.create_student.assert_not_awaited()


# ==============================================================================
# Status and Delete
# ==============================================================================


def make_enrollment(program, student, status=EnrollmentStatus.ACTIVE) -> Enrollment:
    return Enrollment(
        student_id=student.id,
        program_id=program.id,
        status=status,
        courses_progress=[
            CourseProgressEntry(course_id=course_id, position=i)
            for i, course_id in enumerate(program.course_ids)
        ],
    )


class TestUpdateStatus:
    """Tests for status changes through the manager."""

    @pytest.mark.asyncio
    async def test_student_drops_own_enrollment(
        self, manager, store, engine_ctx, program, student
    ) -> None:
        enrollment = make_enrollment(program, student)
        store.get.return_value = enrollment

        updated = await manager.update_status(
            enrollment.id, EnrollmentStatus.DROPPED, TransitionActor.SELF
        )

        assert updated.status == EnrollmentStatus.DROPPED
        store.release_seat.assert_awaited_once_with(program.id)
        store.reserve_seat.assert_not_awaited()
        engine_ctx.email.send_enrollment_status_change.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_student_cannot_suspend(self, manager, store, program, student) -> None:
        store.get.return_value = make_enrollment(program, student)

        with pytest.raises(ForbiddenError):
            await manager.update_status(
                uuid4(), EnrollmentStatus.SUSPENDED, TransitionActor.SELF
            )

        store.set_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_completed_is_terminal(self, manager, store, program, student) -> None:
        store.get.return_value = make_enrollment(
            program, student, EnrollmentStatus.COMPLETED
        )

        with pytest.raises(ValidationError) as exc_info:
            await manager.update_status(
                uuid4(), EnrollmentStatus.ACTIVE, TransitionActor.ADMIN
            )

        assert exc_info.value.code == "invalid_status_transition"

    @pytest.mark.asyncio
    async def test_reactivation_reserves_seat(
        self, manager, store, program, student
    ) -> None:
        program.enrollment_limit = 3
        store.get.return_value = make_enrollment(
            program, student, EnrollmentStatus.DROPPED
        )

        updated = await manager.update_status(
            uuid4(), EnrollmentStatus.ACTIVE, TransitionActor.ADMIN
        )

        assert updated.status == EnrollmentStatus.ACTIVE
        assert updated.completion_date is None
        store.reserve_seat.assert_awaited_once_with(program.id, 3)
        store.release_seat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reactivation_blocked_when_full(
        self, manager, store, program, student
    ) -> None:
        program.enrollment_limit = 1
        store.get.return_value = make_enrollment(
            program, student, EnrollmentStatus.SUSPENDED
        )
        store.reserve_seat.side_effect = UnavailableError(
            "Program is full", "program_full"
        )

        with pytest.raises(UnavailableError):
            await manager.update_status(
                uuid4(), EnrollmentStatus.ACTIVE, TransitionActor.ADMIN
            )

        store.set_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_change_keeps_seat_and_stays_silent(
        self, manager, store, engine_ctx, program, student
    ) -> None:
        """Status moved since it was read: no seat release, no announcement."""
        store.get.return_value = make_enrollment(program, student)
        store.set_status.side_effect = ConflictError(
            "Enrollment status was changed concurrently, reload and retry",
            "enrollment_status_changed",
        )

        with pytest.raises(ConflictError) as exc_info:
            await manager.update_status(
                uuid4(), EnrollmentStatus.DROPPED, TransitionActor.ADMIN
            )

        assert exc_info.value.code == "enrollment_status_changed"
        store.release_seat.assert_not_awaited()
        engine_ctx.notifications.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lost_reactivation_gives_back_reserved_seat(
        self, manager, store, program, student
    ) -> None:
        store.get.return_value = make_enrollment(
            program, student, EnrollmentStatus.DROPPED
        )
        store.set_status.side_effect = ConflictError(
            "Enrollment status was changed concurrently, reload and retry",
            "enrollment_status_changed",
        )

        with pytest.raises(ConflictError):
            await manager.update_status(
                uuid4(), EnrollmentStatus.ACTIVE, TransitionActor.ADMIN
            )

        store.reserve_seat.assert_awaited_once()
        store.release_seat.assert_awaited_once_with(program.id)

    @pytest.mark.asyncio
    async def test_admin_completion_sets_date(
        self, manager, store, program, student
    ) -> None:
        store.get.return_value = make_enrollment(program, student)

        updated = await manager.update_status(
            uuid4(), EnrollmentStatus.COMPLETED, TransitionActor.ADMIN
        )

        assert updated.completion_date is not None
        store.release_seat.assert_awaited_once_with(program.id)

    @pytest.mark.asyncio
    async def test_system_changes_are_silent(
        self, manager, store, engine_ctx, program, student
    ) -> None:
        store.get.return_value = make_enrollment(program, student)

        await manager.update_status(
            uuid4(), EnrollmentStatus.COMPLETED, TransitionActor.SYSTEM
        )

        engine_ctx.notifications.notify.assert_not_awaited()
        engine_ctx.email.send_enrollment_status_change.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_enrollment(self, manager) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await manager.update_status(
                uuid4(), EnrollmentStatus.DROPPED, TransitionActor.ADMIN
            )

        assert exc_info.value.code == "enrollment_not_found"


class TestDeleteEnrollment:
    """Tests for delete_enrollment cleanup."""

    @pytest.mark.asyncio
    async def test_delete_cleans_counters_progress_and_seat(
        self, manager, store, catalog, progress, program, student
    ) -> None:
        enrollment = make_enrollment(program, student)
        store.get.return_value = enrollment

        await manager.delete_enrollment(enrollment.id)

        decremented = [call.args[0] for call in catalog.decrement_enrollment.await_args_list]
        assert decremented == program.course_ids
        deleted_scopes = [
            (call.args[1], call.args[2]) for call in progress.delete_progress.await_args_list
        ]
        assert deleted_scopes == [
            *[(course_id, ProgressScope.COURSE) for course_id in program.course_ids],
            (program.id, ProgressScope.PROGRAM),
        ]
        store.release_seat.assert_awaited_once_with(program.id)
        store.delete.assert_awaited_once_with(enrollment)

    @pytest.mark.asyncio
    async def test_delete_dropped_enrollment_keeps_seat_count(
        self, manager, store, program, student
    ) -> None:
        store.get.return_value = make_enrollment(
            program, student, EnrollmentStatus.DROPPED
        )

        await manager.delete_enrollment(uuid4())

        store.release_seat.assert_not_awaited()
        store.delete.assert_awaited_once()


class TestResolveActor:
    """Tests for mapping callers to state machine actors."""

    def test_admin(self, program, student) -> None:
        enrollment = make_enrollment(program, student)
        assert resolve_actor(uuid4(), "admin", enrollment) == TransitionActor.ADMIN

    def test_owner(self, program, student) -> None:
        enrollment = make_enrollment(program, student)
        assert resolve_actor(student.id, "student", enrollment) == TransitionActor.SELF

    def test_instructor_is_other(self, program, student) -> None:
        enrollment = make_enrollment(program, student)
        assert resolve_actor(uuid4(), "instructor", enrollment) == TransitionActor.OTHER
