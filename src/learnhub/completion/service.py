# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Completion evaluator.

Business logic for:
- Course completion criteria over graded submissions
- Program completion over the live catalog
- Completing a snapshot entry, and the enrollment once every entry is done

A course entry counts as completed when the student finished every catalog
lesson of the course AND the submission criteria hold.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learnhub.core.errors import ConflictError, NotFoundError
from learnhub.core.side_effects import best_effort
from learnhub.enrollments.models import Enrollment, EnrollmentStatus
from learnhub.notifications.models import NotificationCategory

from .models import Submission
from .submissions import mean_percentage


if TYPE_CHECKING:
    from learnhub.auth.service import UserDirectory
    from learnhub.catalog.models import Course
    from learnhub.catalog.service import CatalogReader
    from learnhub.certificates.service import CertificateIssuer
    from learnhub.completion.submissions import SubmissionStore
    from learnhub.core.engine import EngineContext
    from learnhub.enrollments.store import EnrollmentStore


logger = structlog.get_logger(__name__)

FULL_PROGRESS = Decimal(100)


class CompletionEvaluator:
    """Decides when courses and programs are complete."""

    def __init__(
        self,
        ctx: "EngineContext",
        catalog: "CatalogReader",
        enrollments: "EnrollmentStore",
        submissions: "SubmissionStore",
        users: "UserDirectory | None" = None,
        certificates: "CertificateIssuer | None" = None,
    ):
        """Initialize with engine context and read models.

        Args:
            ctx: Engine context (session, keyspace, settings, gateways)
            catalog: Live catalog (criteria, course lists)
            enrollments: Enrollment store (snapshot entries, seats)
            submissions: Submission store
            users: Optional user directory for the completion email
            certificates: Optional issuer for automatic program certificates
        """
        self.ctx = ctx
        self.session = ctx.session
        self.keyspace = ctx.keyspace
        self.catalog = catalog
        self.enrollments = enrollments
        self.submissions = submissions
        self.users = users
        self.certificates = certificates
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_lesson_progress = self.session.prepare(f"""
            SELECT overall_progress, total_lessons
            FROM {self.keyspace}.progress_aggregates
            WHERE student_id = ? AND scope_id = ?
        """)

    # ==========================================================================
    # Criteria
    # ==========================================================================

    def meets_criteria(self, course: "Course", submissions: list[Submission]) -> bool:
        """Submission criteria of a course.

        False without graded submissions. Otherwise the exact (unrounded)
        average percentage must reach minimum_quiz_score and the number of
        submissions scoring at least the project pass mark must reach
        required_projects.
        """
        graded = [s for s in submissions if s.is_graded]
        if not graded:
            return False

        criteria = course.completion_criteria
        if mean_percentage(graded) < criteria.minimum_quiz_score:
            return False

        pass_mark = Decimal(self.ctx.settings.project_pass_percentage)
        passed = sum(1 for s in graded if s.percentage >= pass_mark)
        return passed >= criteria.required_projects

    async def is_course_complete(self, student_id: UUID, course_id: UUID) -> bool:
        """Submission criteria check for a course.

        Raises:
            NotFoundError: Unknown course
        """
        course = await self.catalog.get_course(course_id)
        if not course:
            raise NotFoundError("Course not found", "course_not_found")

        submissions = await self.submissions.list_graded(student_id, course_id)
        return self.meets_criteria(course, submissions)

    async def is_program_complete(self, student_id: UUID, program_id: UUID) -> bool:
        """Every course currently in the program satisfies its criteria.

        An empty program is never complete.

        Raises:
            NotFoundError: Unknown program
        """
        program = await self.catalog.get_program(program_id)
        if not program:
            raise NotFoundError("Program not found", "program_not_found")

        courses = await self.catalog.list_program_courses(program)
        if not courses:
            return False

        for course in courses:
            submissions = await self.submissions.list_graded(student_id, course.id)
            if not self.meets_criteria(course, submissions):
                return False
        return True

    async def _lessons_done(
        self,
        student_id: UUID,
        course_id: UUID,
        overall_progress: Decimal | None,
    ) -> bool:
        """Lesson side of the completion rule (vacuously true without lessons)."""
        if overall_progress is None:
            result = await self.session.aexecute(
                self._get_lesson_progress, [student_id, course_id]
            )
            row = result.one()
            if row is None:
                return await self.catalog.count_course_lessons(course_id) == 0
            if not row.total_lessons:
                return True
            overall_progress = row.overall_progress or Decimal(0)
        return overall_progress >= FULL_PROGRESS

    # ==========================================================================
    # Evaluation
    # ==========================================================================

    async def evaluate_course(
        self,
        student_id: UUID,
        course_id: UUID,
        overall_progress: Decimal | None = None,
    ) -> bool:
        """Complete the course entry of the student's enrollment if earned.

        Args:
            student_id: Student UUID
            course_id: Course UUID
            overall_progress: Lesson progress when the caller already has it

        Returns:
            True when this call completed the course entry
        """
        course = await self.catalog.get_course(course_id)
        if not course:
            return False

        enrollment = await self.enrollments.find_by_pair(student_id, course.program_id)
        if not enrollment or enrollment.status != EnrollmentStatus.ACTIVE:
            return False

        entry = enrollment.entry_for(course_id)
        if entry is None or entry.is_completed:
            return False

        if not await self._lessons_done(student_id, course_id, overall_progress):
            return False

        submissions = await self.submissions.list_graded(student_id, course_id)
        if not self.meets_criteria(course, submissions):
            return False

        await self.complete_course_entry(enrollment, course_id, course_title=course.title)
        return True

    async def complete_course_entry(
        self,
        enrollment: Enrollment,
        course_id: UUID,
        course_title: str | None = None,
    ) -> bool:
        """Set a snapshot entry COMPLETED; complete the enrollment when all are.

        Returns:
            True when this call moved the enrollment to COMPLETED
        """
        entry = enrollment.entry_for(course_id)
        if entry is None:
            raise NotFoundError(
                "Course is not part of this enrollment", "course_not_in_enrollment"
            )

        now = datetime.now(UTC)
        enrollment_completed = await self.enrollments.complete_entry(enrollment, entry, now)

        logger.info(
            "course_entry_completed",
            enrollment_id=str(enrollment.id),
            course_id=str(course_id),
            enrollment_completed=enrollment_completed,
        )

        await self.ctx.notify(
            target_user_id=enrollment.student_id,
            category=NotificationCategory.COMPLETION,
            title="Course completed",
            message=f"You completed {course_title or 'a course'}. Keep going!",
            related_entity_id=course_id,
            related_entity_type="course",
        )

        if enrollment_completed:
            await self._on_enrollment_completed(enrollment)
        return enrollment_completed

    async def _on_enrollment_completed(self, enrollment: Enrollment) -> None:
        """Seat release, notification, email and automatic program certificate.

        The enrollment is already durably COMPLETED here, so none of these
        effects may fail the completion.
        """
        # COMPLETED no longer holds a seat
        await best_effort(
            self.enrollments.release_seat(enrollment.program_id),
            "seat_release_failed",
            enrollment_id=str(enrollment.id),
            program_id=str(enrollment.program_id),
        )

        program = await self.catalog.get_program(enrollment.program_id)
        program_title = program.title if program else "your program"

        await self.ctx.notify(
            target_user_id=enrollment.student_id,
            category=NotificationCategory.COMPLETION,
            title="Program completed",
            message=f"Congratulations! You completed {program_title}.",
            related_entity_id=enrollment.id,
            related_entity_type="enrollment",
        )

        if self.users:
            student = await self.users.get_user(enrollment.student_id)
            if student:
                await self.ctx.send_email(
                    "send_program_completion",
                    to_email=student.email,
                    student_name=student.display_name,
                    program_title=program_title,
                )

        if self.certificates and self.ctx.settings.auto_issue_program_certificates:
            await best_effort(
                self._issue_program_certificate(enrollment),
                "program_certificate_failed",
                enrollment_id=str(enrollment.id),
            )

    async def _issue_program_certificate(self, enrollment: Enrollment) -> None:
        try:
            await self.certificates.issue(
                student_id=enrollment.student_id,
                program_id=enrollment.program_id,
            )
        except ConflictError:
            logger.info(
                "program_certificate_already_issued",
                enrollment_id=str(enrollment.id),
            )

    # ==========================================================================
    # Submissions
    # ==========================================================================

    async def record_submission(self, submission: Submission) -> None:
        """Store a graded submission."""
        await self.submissions.save(submission)
