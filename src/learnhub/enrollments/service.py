"""Enrollment manager.

Business logic for:
- Creating enrollments (single, bulk, by email with account provisioning)
- Pricing with scholarships and the payment gate
- Status changes through the enrollment state machine
- Deleting enrollments with counter and progress cleanup

Claims are taken in a fixed order: (student, program) pair, capacity seat,
scholarship redemption, then the enrollment rows. A failure after the first
claim releases every claim taken so far. A redeemed scholarship cannot be
given back, so redemption runs just before the enrollment rows are written.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learnhub.auth.permissions import UserRole, is_admin
from learnhub.auth.validators import validate_email
from learnhub.core.context import bind_operation
from learnhub.core.errors import (
    ConflictError,
    EngineError,
    ForbiddenError,
    NotFoundError,
    PaymentRequiredError,
    UnavailableError,
    ValidationError,
)
from learnhub.core.side_effects import best_effort
from learnhub.notifications.models import NotificationCategory
from learnhub.progress.models import ProgressScope
from learnhub.scholarships.pricing import full_price

from .models import (
    SEAT_HOLDING_STATUSES,
    BatchEnrollmentResult,
    BatchItemResult,
    CourseProgressEntry,
    EmailEnrollmentEntry,
    Enrollment,
    EnrollmentStatus,
    EnrollOptions,
    TransitionActor,
    check_transition,
)


if TYPE_CHECKING:
    from learnhub.auth.models import User
    from learnhub.auth.service import UserDirectory
    from learnhub.catalog.models import Program
    from learnhub.catalog.service import CatalogReader
    from learnhub.core.engine import EngineContext
    from learnhub.progress.service import ProgressTracker
    from learnhub.scholarships.models import Scholarship
    from learnhub.scholarships.service import ScholarshipResolver

    from .store import EnrollmentStore


logger = structlog.get_logger(__name__)


STATUS_MESSAGES: dict[EnrollmentStatus, tuple[str, str]] = {
    EnrollmentStatus.ACTIVE: (
        "Enrollment active",
        "Your enrollment in {program} is active again.",
    ),
    EnrollmentStatus.COMPLETED: (
        "Enrollment completed",
        "Your enrollment in {program} has been marked as completed.",
    ),
    EnrollmentStatus.SUSPENDED: (
        "Enrollment suspended",
        "Your enrollment in {program} has been suspended.",
    ),
    EnrollmentStatus.DROPPED: (
        "Enrollment dropped",
        "Your enrollment in {program} has been dropped.",
    ),
    EnrollmentStatus.PENDING: (
        "Enrollment pending",
        "Your enrollment in {program} is pending.",
    ),
}


def resolve_actor(caller_id: UUID, caller_role: str, enrollment: Enrollment) -> TransitionActor:
    """Map the caller of a status change to a state machine actor."""
    if is_admin(caller_role):
        return TransitionActor.ADMIN
    if caller_id == enrollment.student_id:
        return TransitionActor.SELF
    return TransitionActor.OTHER


class EnrollmentManager:
    """Service for program enrollments."""

    def __init__(
        self,
        ctx: "EngineContext",
        store: "EnrollmentStore",
        catalog: "CatalogReader",
        users: "UserDirectory",
        scholarships: "ScholarshipResolver",
        progress: "ProgressTracker",
    ):
        """Initialize with engine context and collaborators.

        Args:
            ctx: Engine context (settings, notification and email gateways)
            store: Enrollment persistence and seat counter
            catalog: Live catalog (programs, courses, lesson counts, counters)
            users: User directory (students, account provisioning)
            scholarships: Scholarship validation and redemption
            progress: Progress tracker (program aggregate lifecycle)
        """
        self.ctx = ctx
        self.store = store
        self.catalog = catalog
        self.users = users
        self.scholarships = scholarships
        self.progress = progress

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_enrollment(self, enrollment_id: UUID) -> Enrollment:
        """Get enrollment by ID.

        Raises:
            NotFoundError: Unknown enrollment
        """
        enrollment = await self.store.get(enrollment_id)
        if not enrollment:
            raise NotFoundError("Enrollment not found", "enrollment_not_found")
        return enrollment

    async def list_student_enrollments(self, student_id: UUID) -> list[Enrollment]:
        """Enrollments of a student, newest first."""
        return await self.store.list_for_student(student_id)

    async def list_program_enrollments(self, program_id: UUID) -> list[Enrollment]:
        """Enrollments in a program, newest first."""
        return await self.store.list_for_program(program_id)

    # ==========================================================================
    # Create
    # ==========================================================================

    async def create_enrollment(
        self,
        student_id: UUID,
        program_id: UUID,
        options: EnrollOptions | None = None,
    ) -> Enrollment:
        """Enroll a student in a program.

        Every precondition is checked before the first write.

        Raises:
            NotFoundError: Program or student missing, or unknown scholarship code
            UnavailableError: Program unpublished or full, scholarship unusable
            ForbiddenError: User is not a student, or code restricted to another email
            ConflictError: Already enrolled, or scholarship already used
            ValidationError: Scholarship belongs to another program
            PaymentRequiredError: Final price above zero and payment not waived
        """
        options = options or EnrollOptions()

        # Preconditions
        program = await self.catalog.get_program(program_id)
        if not program:
            raise NotFoundError("Program not found", "program_not_found")
        if not program.is_published:
            raise UnavailableError(
                "Program is not open for enrollment", "program_unavailable"
            )

        student = await self.users.get_user(student_id)
        if not student:
            raise NotFoundError("Student not found", "student_not_found")
        if student.role != UserRole.STUDENT.value:
            raise ForbiddenError("Only students can be enrolled", "not_a_student")

        if await self.store.find_by_pair(student_id, program_id):
            raise ConflictError(
                "Student is already enrolled in this program", "already_enrolled"
            )

        if program.has_enrollment_limit:
            taken = await self.store.reserved_seats(program_id)
            if taken >= program.enrollment_limit:
                raise UnavailableError("Program is full", "program_full")

        entries = await self._snapshot_courses(program)

        # Pricing
        scholarship: Scholarship | None = None
        if options.scholarship_code:
            scholarship = await self.scholarships.validate(
                options.scholarship_code, program_id, student.email
            )
            quote = self.scholarships.compute_discount(scholarship, program.price)
        else:
            quote = full_price(program.price)

        if quote.final_price > 0 and not options.waive_payment:
            # Payment processing is not available; the caller gets the breakdown
            raise PaymentRequiredError(quote)

        enrollment = Enrollment(
            student_id=student_id,
            program_id=program_id,
            status=EnrollmentStatus.ACTIVE,
            cohort=options.cohort,
            notes=options.notes,
            scholarship_id=scholarship.id if scholarship else None,
            final_price=quote.final_price,
            courses_progress=entries,
        )

        await self._claim_and_persist(enrollment, program, scholarship)

        for entry in entries:
            await self.catalog.increment_enrollment(entry.course_id)

        await self.progress.create_program_progress(
            student_id=student_id,
            program_id=program_id,
            total_lessons=enrollment.total_lessons,
            total_courses=len(entries),
        )

        logger.info(
            "enrollment_created",
            enrollment_id=str(enrollment.id),
            student_id=str(student_id),
            program_id=str(program_id),
            courses=len(entries),
            scholarship_id=str(scholarship.id) if scholarship else None,
            final_price=str(quote.final_price),
        )

        if options.notify:
            await self._announce_enrollment(enrollment, program, student)
        return enrollment

    async def _snapshot_courses(self, program: "Program") -> list[CourseProgressEntry]:
        """One PENDING entry per course currently in the program."""
        entries = []
        for position, course in enumerate(await self.catalog.list_program_courses(program)):
            entries.append(
                CourseProgressEntry(
                    course_id=course.id,
                    position=position,
                    total_lessons=await self.catalog.count_course_lessons(course.id),
                )
            )
        return entries

    async def _claim_and_persist(
        self,
        enrollment: Enrollment,
        program: "Program",
        scholarship: "Scholarship | None",
    ) -> None:
        """Take the pair claim, a seat and the scholarship, then write rows."""
        claimed = await self.store.claim_pair(
            enrollment.student_id, enrollment.program_id, enrollment.id
        )
        if not claimed:
            raise ConflictError(
                "Student is already enrolled in this program", "already_enrolled"
            )

        seat_taken = False
        try:
            await self.store.reserve_seat(program.id, program.enrollment_limit)
            seat_taken = True
            if scholarship:
                await self.scholarships.mark_used(scholarship.id, enrollment.student_id)
            await self.store.insert(enrollment)
        except Exception:
            logger.warning(
                "enrollment_claims_released",
                enrollment_id=str(enrollment.id),
                seat_released=seat_taken,
            )
            if seat_taken:
                await self.store.release_seat(program.id)
            await self.store.release_pair(
                enrollment.student_id, enrollment.program_id, enrollment.id
            )
            raise

    async def _announce_enrollment(
        self, enrollment: Enrollment, program: "Program", student: "User"
    ) -> None:
        """Notify the student and the program's instructors, send the email."""
        await self.ctx.notify(
            target_user_id=student.id,
            category=NotificationCategory.ENROLLMENT,
            title="Enrollment confirmed",
            message=f"You are now enrolled in {program.title}.",
            related_entity_id=enrollment.id,
            related_entity_type="enrollment",
        )

        instructor_ids = await best_effort(
            self.catalog.get_instructor_ids(program),
            "instructor_lookup_failed",
            program_id=str(program.id),
        )
        for instructor_id in instructor_ids or []:
            await self.ctx.notify(
                target_user_id=instructor_id,
                category=NotificationCategory.ENROLLMENT,
                title="New enrollment",
                message=f"{student.display_name} enrolled in {program.title}.",
                related_entity_id=enrollment.id,
                related_entity_type="enrollment",
            )

        await self.ctx.send_email(
            "send_enrollment_confirmation",
            to_email=student.email,
            student_name=student.display_name,
            program_title=program.title,
            course_count=len(enrollment.courses_progress),
            final_price=enrollment.final_price,
            currency=program.currency,
            cohort=enrollment.cohort,
        )

    # ==========================================================================
    # Batches
    # ==========================================================================

    async def bulk_enroll(
        self,
        student_ids: list[UUID],
        program_id: UUID,
        options: EnrollOptions | None = None,
    ) -> BatchEnrollmentResult:
        """Enroll several existing students; each item succeeds or fails alone."""
        result = BatchEnrollmentResult()
        for student_id in student_ids:
            item = BatchItemResult(key=str(student_id), success=False)
            try:
                with bind_operation(batch_item=item.key):
                    enrollment = await self.create_enrollment(
                        student_id, program_id, options
                    )
                item.success = True
                item.enrollment_id = enrollment.id
            except EngineError as e:
                item.error_code = e.code
                item.error = e.message
            result.items.append(item)

        logger.info(
            "bulk_enrollment_finished",
            program_id=str(program_id),
            enrolled=result.enrolled,
            failed=result.failed,
        )
        return result

    async def enroll_by_email(
        self,
        entries: list[EmailEnrollmentEntry],
        program_id: UUID,
        options: EnrollOptions | None = None,
    ) -> BatchEnrollmentResult:
        """Enroll students by email, optionally provisioning missing accounts.

        An account created for an item whose enrollment then fails is kept.
        """
        options = options or EnrollOptions()
        result = BatchEnrollmentResult()

        for entry in entries:
            item = BatchItemResult(key=entry.email, success=False)
            try:
                with bind_operation(batch_item=item.key):
                    student = await self._resolve_email_entry(entry, options, item)
                    enrollment = await self.create_enrollment(
                        student.id, program_id, options
                    )
                item.success = True
                item.enrollment_id = enrollment.id
            except EngineError as e:
                item.error_code = e.code
                item.error = e.message
            result.items.append(item)

        logger.info(
            "email_enrollment_finished",
            program_id=str(program_id),
            enrolled=result.enrolled,
            failed=result.failed,
            new_users_created=result.new_users_created,
        )
        return result

    async def _resolve_email_entry(
        self,
        entry: EmailEnrollmentEntry,
        options: EnrollOptions,
        item: BatchItemResult,
    ) -> "User":
        """Find the student for an email, creating the account when allowed."""
        check = validate_email(entry.email)
        if not check.valid:
            raise ValidationError(check.message or "Invalid email address", "invalid_email")
        email = check.formatted or entry.email

        student = await self.users.get_user_by_email(email)
        if student is not None:
            return student
        if not options.create_missing_users:
            raise NotFoundError("No account registered with this email", "student_not_found")

        student, temporary_password = await self.users.create_student(email, entry.name)
        item.user_created = True
        await self.ctx.send_email(
            "send_new_account",
            to_email=student.email,
            user_name=student.display_name,
            temporary_password=temporary_password,
        )
        return student

    # ==========================================================================
    # Status
    # ==========================================================================

    async def update_status(
        self,
        enrollment_id: UUID,
        new_status: EnrollmentStatus,
        actor: TransitionActor,
    ) -> Enrollment:
        """Move an enrollment through the state machine.

        Entering PENDING/ACTIVE from a status without a seat reserves one;
        leaving them releases it. Changes made by anyone but the system send a
        notification and a status email.

        Raises:
            NotFoundError: Unknown enrollment
            ValidationError: Transition not allowed
            ForbiddenError: Actor may not perform the transition
            UnavailableError: Re-entry blocked because the program is full
            ConflictError: Status changed concurrently since it was read
        """
        enrollment = await self.get_enrollment(enrollment_id)
        previous = enrollment.status
        check_transition(previous, new_status, actor)

        program = await self.catalog.get_program(enrollment.program_id)
        held_seat = enrollment.holds_seat
        needs_seat = new_status in SEAT_HOLDING_STATUSES

        if needs_seat and not held_seat:
            await self.store.reserve_seat(
                enrollment.program_id, program.enrollment_limit if program else None
            )

        completion_date = enrollment.completion_date
        if new_status == EnrollmentStatus.COMPLETED:
            completion_date = datetime.now(UTC)
        elif new_status == EnrollmentStatus.ACTIVE:
            completion_date = None

        try:
            await self.store.set_status(enrollment, new_status, completion_date)
        except Exception:
            if needs_seat and not held_seat:
                await self.store.release_seat(enrollment.program_id)
            raise

        if held_seat and not needs_seat:
            await self.store.release_seat(enrollment.program_id)

        logger.info(
            "enrollment_status_changed",
            enrollment_id=str(enrollment_id),
            previous=previous.value,
            status=new_status.value,
            actor=actor.value,
        )

        if actor != TransitionActor.SYSTEM:
            await self._announce_status(enrollment, program)
        return enrollment

    async def _announce_status(
        self, enrollment: Enrollment, program: "Program | None"
    ) -> None:
        program_title = program.title if program else "your program"
        title, template = STATUS_MESSAGES[enrollment.status]

        await self.ctx.notify(
            target_user_id=enrollment.student_id,
            category=NotificationCategory.ENROLLMENT_STATUS,
            title=title,
            message=template.format(program=program_title),
            related_entity_id=enrollment.id,
            related_entity_type="enrollment",
        )

        student = await self.users.get_user(enrollment.student_id)
        if student:
            await self.ctx.send_email(
                "send_enrollment_status_change",
                to_email=student.email,
                student_name=student.display_name,
                program_title=program_title,
                status=enrollment.status.value,
            )

    # ==========================================================================
    # Delete
    # ==========================================================================

    async def delete_enrollment(self, enrollment_id: UUID) -> None:
        """Delete an enrollment and everything derived from it.

        Each snapshot course counter is decremented exactly once, course and
        program aggregates are removed, and a held seat is released.

        Raises:
            NotFoundError: Unknown enrollment
        """
        enrollment = await self.get_enrollment(enrollment_id)

        for entry in enrollment.courses_progress:
            await self.catalog.decrement_enrollment(entry.course_id)
            await self.progress.delete_progress(
                enrollment.student_id, entry.course_id, ProgressScope.COURSE
            )
        await self.progress.delete_progress(
            enrollment.student_id, enrollment.program_id, ProgressScope.PROGRAM
        )

        if enrollment.holds_seat:
            await self.store.release_seat(enrollment.program_id)

        await self.store.delete(enrollment)

        logger.info(
            "enrollment_deleted",
            enrollment_id=str(enrollment_id),
            student_id=str(enrollment.student_id),
            program_id=str(enrollment.program_id),
        )

        program = await self.catalog.get_program(enrollment.program_id)
        await self.ctx.notify(
            target_user_id=enrollment.student_id,
            category=NotificationCategory.ENROLLMENT_STATUS,
            title="Enrollment removed",
            message=(
                f"Your enrollment in {program.title if program else 'a program'} "
                "has been removed."
            ),
            related_entity_id=enrollment.id,
            related_entity_type="enrollment",
        )
