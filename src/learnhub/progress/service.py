# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Student progress tracking service layer.

Business logic for:
- Lesson start / completion events
- Module and course aggregation against the live catalog lesson counts
- Graded assessment events (average score on the course aggregate)
- Program aggregates created at enrollment and refreshed from the snapshot
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learnhub.completion.models import Submission, SubmissionStatus
from learnhub.core.errors import ForbiddenError, NotFoundError, ValidationError
from learnhub.enrollments.models import (
    CourseProgressStatus,
    Enrollment,
    EnrollmentStatus,
)
from learnhub.notifications.models import NotificationCategory

from .models import (
    LessonProgress,
    ModuleProgress,
    Progress,
    ProgressScope,
    percentage,
)


if TYPE_CHECKING:
    from learnhub.catalog.models import Lesson
    from learnhub.catalog.service import CatalogReader
    from learnhub.completion.service import CompletionEvaluator
    from learnhub.core.engine import EngineContext
    from learnhub.enrollments.store import EnrollmentStore


logger = structlog.get_logger(__name__)

# Enrollments whose students may record lesson activity
TRACKABLE_STATUSES = frozenset({EnrollmentStatus.ACTIVE, EnrollmentStatus.COMPLETED})

MIN_SCORE = Decimal(0)
MAX_SCORE = Decimal(100)


@dataclass
class LessonEventResult:
    """Outcome of a lesson event."""

    progress: Progress
    lesson: LessonProgress
    module_completed: bool = False
    course_completed: bool = False


class ProgressTracker:
    """Service for student progress tracking."""

    def __init__(
        self,
        ctx: "EngineContext",
        catalog: "CatalogReader",
        enrollments: "EnrollmentStore",
        evaluator: "CompletionEvaluator | None" = None,
    ):
        """Initialize with engine context and collaborators.

        Args:
            ctx: Engine context (session, keyspace, gateways)
            catalog: Live catalog for lesson counts
            enrollments: Enrollment store (snapshot entries)
            evaluator: Completion evaluator triggered after lesson and grading events
        """
        self.ctx = ctx
        self.session = ctx.session
        self.keyspace = ctx.keyspace
        self.catalog = catalog
        self.enrollments = enrollments
        self.evaluator = evaluator
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Aggregates
        self._get_aggregate = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.progress_aggregates
            WHERE student_id = ? AND scope_id = ?
        """)
        self._upsert_aggregate = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.progress_aggregates
            (student_id, scope_id, scope_type, overall_progress, completed_lessons,
             total_lessons, completed_assessments, total_assessments, average_score,
             total_time_spent, total_courses, created_at, last_accessed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._create_aggregate = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.progress_aggregates
            (student_id, scope_id, scope_type, overall_progress, completed_lessons,
             total_lessons, completed_assessments, total_assessments, average_score,
             total_time_spent, total_courses, created_at, last_accessed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)
        self._delete_aggregate = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.progress_aggregates
            WHERE student_id = ? AND scope_id = ?
        """)

        # Modules
        self._get_modules = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.module_progress
            WHERE student_id = ? AND course_id = ?
        """)
        self._upsert_module = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.module_progress
            (student_id, course_id, module_id, position, status, completed_lessons,
             total_lessons, completion_percentage, completed_at, last_accessed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._delete_modules = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.module_progress
            WHERE student_id = ? AND course_id = ?
        """)

        # Lessons
        self._get_lessons = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE student_id = ? AND course_id = ?
        """)
        self._upsert_lesson = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lesson_progress
            (student_id, course_id, module_id, lesson_id, position, status,
             started_at, completed_at, time_spent, last_accessed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._delete_lessons = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.lesson_progress
            WHERE student_id = ? AND course_id = ?
        """)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_progress(self, student_id: UUID, scope_id: UUID) -> Progress | None:
        """Aggregate only (no nested records)."""
        result = await self.session.aexecute(self._get_aggregate, [student_id, scope_id])
        row = result.one()
        return Progress.from_row(row) if row else None

    async def get_course_progress(
        self, student_id: UUID, course_id: UUID
    ) -> Progress | None:
        """Course aggregate with its module and lesson records."""
        progress = await self.get_progress(student_id, course_id)
        if progress is None:
            return None

        module_rows = await self.session.aexecute(
            self._get_modules, [student_id, course_id]
        )
        for row in module_rows:
            module = ModuleProgress.from_row(row)
            progress.module_map[module.module_id] = module

        lesson_rows = await self.session.aexecute(
            self._get_lessons, [student_id, course_id]
        )
        for row in lesson_rows:
            lesson = LessonProgress.from_row(row)
            progress.module(lesson.module_id).lesson_map[lesson.lesson_id] = lesson

        return progress

    # ==========================================================================
    # Lesson Events
    # ==========================================================================

    async def on_lesson_started(
        self, student_id: UUID, lesson_id: UUID, time_spent: int = 0
    ) -> LessonEventResult:
        """Record that a student opened a lesson.

        Raises:
            NotFoundError: Unknown lesson or course
            ForbiddenError: Student not enrolled in the lesson's program
        """
        lesson, enrollment = await self._resolve_lesson(student_id, lesson_id)
        now = datetime.now(UTC)

        progress, record = await self._locate(student_id, lesson)
        record.start(now)
        record.time_spent += max(time_spent, 0)
        progress.total_time_spent += max(time_spent, 0)

        module_completed = await self._recalculate(progress, lesson, now)
        await self._save(student_id, lesson.course_id, progress, lesson.module_id, record)

        logger.info(
            "lesson_started",
            student_id=str(student_id),
            lesson_id=str(lesson_id),
            enrollment_id=str(enrollment.id),
        )
        return LessonEventResult(
            progress=progress, lesson=record, module_completed=module_completed
        )

    async def on_lesson_completed(
        self, student_id: UUID, lesson_id: UUID, time_spent: int = 0
    ) -> LessonEventResult:
        """Record a completed lesson and propagate it.

        Updates module and course aggregates, the enrollment snapshot entry and
        the program aggregate, then asks the evaluator to evaluate the course.

        Raises:
            NotFoundError: Unknown lesson or course
            ForbiddenError: Student not enrolled in the lesson's program
        """
        lesson, enrollment = await self._resolve_lesson(student_id, lesson_id)
        now = datetime.now(UTC)

        progress, record = await self._locate(student_id, lesson)
        record.complete(now)
        record.time_spent += max(time_spent, 0)
        progress.total_time_spent += max(time_spent, 0)

        module_completed = await self._recalculate(progress, lesson, now)
        await self._save(student_id, lesson.course_id, progress, lesson.module_id, record)

        logger.info(
            "lesson_completed",
            student_id=str(student_id),
            lesson_id=str(lesson_id),
            course_progress=str(progress.overall_progress),
        )

        if module_completed:
            await self.ctx.notify(
                target_user_id=student_id,
                category=NotificationCategory.MODULE_COMPLETED,
                title="Module completed",
                message="Nice work! You finished every lesson in this module.",
                related_entity_id=lesson.module_id,
                related_entity_type="module",
            )

        await self._refresh_enrollment(enrollment, lesson.course_id, progress)

        course_completed = False
        if self.evaluator:
            course_completed = await self.evaluator.evaluate_course(
                student_id, lesson.course_id, overall_progress=self._lesson_side(progress)
            )

        return LessonEventResult(
            progress=progress,
            lesson=record,
            module_completed=module_completed,
            course_completed=course_completed,
        )

    async def _resolve_lesson(
        self, student_id: UUID, lesson_id: UUID
    ) -> tuple["Lesson", Enrollment]:
        lesson = await self.catalog.get_lesson(lesson_id)
        if not lesson:
            raise NotFoundError("Lesson not found", "lesson_not_found")

        course = await self.catalog.get_course(lesson.course_id)
        if not course:
            raise NotFoundError("Course not found", "course_not_found")

        enrollment = await self.enrollments.find_by_pair(student_id, course.program_id)
        if not enrollment or enrollment.status not in TRACKABLE_STATUSES:
            raise ForbiddenError("Not enrolled in this program", "not_enrolled")
        return lesson, enrollment

    async def _locate(
        self, student_id: UUID, lesson: "Lesson"
    ) -> tuple[Progress, LessonProgress]:
        """Locate or create the course aggregate and the lesson record."""
        progress = await self.get_course_progress(student_id, lesson.course_id)
        if progress is None:
            progress = Progress(
                student_id=student_id,
                scope_id=lesson.course_id,
                scope_type=ProgressScope.COURSE,
            )
        record = progress.module(lesson.module_id).lesson(lesson.id, lesson.position)
        return progress, record

    async def _recalculate(
        self, progress: Progress, lesson: "Lesson", now: datetime
    ) -> bool:
        """Refresh module and course counters from the live catalog.

        Returns:
            True when the lesson's module just reached 100%
        """
        modules = await self.catalog.list_course_modules(lesson.course_id)
        course_total = 0
        module_total = 0
        for catalog_module in modules:
            count = await self.catalog.count_module_lessons(catalog_module.id)
            course_total += count
            if catalog_module.id == lesson.module_id:
                module_total = count
                progress.module(lesson.module_id).position = catalog_module.position

        module_completed = progress.module(lesson.module_id).recalculate(module_total, now)
        progress.recalculate(course_total, now)
        return module_completed

    async def _save(
        self,
        student_id: UUID,
        course_id: UUID,
        progress: Progress,
        module_id: UUID,
        record: LessonProgress,
    ) -> None:
        await self.session.aexecute(
            self._upsert_lesson,
            [
                student_id,
                course_id,
                record.module_id,
                record.lesson_id,
                record.position,
                record.status.value,
                record.started_at,
                record.completed_at,
                record.time_spent,
                record.last_accessed_at,
            ],
        )
        module = progress.module(module_id)
        await self.session.aexecute(
            self._upsert_module,
            [
                student_id,
                course_id,
                module.module_id,
                module.position,
                module.status.value,
                module.completed_lessons,
                module.total_lessons,
                module.completion_percentage,
                module.completed_at,
                module.last_accessed_at,
            ],
        )
        await self._save_aggregate(progress)

    async def _save_aggregate(self, progress: Progress) -> None:
        await self.session.aexecute(
            self._upsert_aggregate, self._aggregate_values(progress)
        )

    @staticmethod
    def _aggregate_values(progress: Progress) -> list:
        return [
            progress.student_id,
            progress.scope_id,
            progress.scope_type.value,
            progress.overall_progress,
            progress.completed_lessons,
            progress.total_lessons,
            progress.completed_assessments,
            progress.total_assessments,
            progress.average_score,
            progress.total_time_spent,
            progress.total_courses,
            progress.created_at,
            progress.last_accessed_at,
        ]

    @staticmethod
    def _lesson_side(progress: Progress) -> Decimal | None:
        """Overall progress for the evaluator, None to let it re-read."""
        return progress.overall_progress if progress.total_lessons else None

    async def _refresh_enrollment(
        self, enrollment: Enrollment, course_id: UUID, progress: Progress
    ) -> None:
        """Copy lesson counts into the snapshot entry and the program aggregate."""
        entry = enrollment.entry_for(course_id)
        if entry is None:
            # Course added to the program after enrollment
            return

        entry.lessons_completed = progress.completed_lessons
        if entry.status == CourseProgressStatus.PENDING:
            entry.status = CourseProgressStatus.ACTIVE
        await self.enrollments.save_course_entry(enrollment.id, entry)

        program_progress = await self.get_progress(
            enrollment.student_id, enrollment.program_id
        )
        if program_progress is None:
            program_progress = Progress(
                student_id=enrollment.student_id,
                scope_id=enrollment.program_id,
                scope_type=ProgressScope.PROGRAM,
                total_courses=len(enrollment.courses_progress),
            )

        completed = sum(
            min(e.lessons_completed, e.total_lessons) if e.total_lessons else 0
            for e in enrollment.courses_progress
        )
        program_progress.total_lessons = enrollment.total_lessons
        program_progress.completed_lessons = completed
        program_progress.overall_progress = percentage(
            completed, program_progress.total_lessons
        )
        program_progress.last_accessed_at = progress.last_accessed_at
        await self._save_aggregate(program_progress)

    # ==========================================================================
    # Assessment Events
    # ==========================================================================

    async def on_assessment_graded(self, submission: Submission) -> Progress:
        """Record a graded submission on the course aggregate.

        Creates a minimal course aggregate when the student has none yet, then
        asks the evaluator to evaluate the course. Assessment counters are
        recomputed from the stored graded submissions, so grading the same
        submission again replaces its score. Without an evaluator there is no
        submission store and only this grade is counted.

        Raises:
            ValidationError: Percentage outside 0..100
        """
        if not MIN_SCORE <= submission.percentage <= MAX_SCORE:
            raise ValidationError("Score must be between 0 and 100", "invalid_score")

        submission.status = SubmissionStatus.GRADED
        submission.graded_at = submission.graded_at or datetime.now(UTC)

        if self.evaluator:
            await self.evaluator.record_submission(submission)

        progress = await self.get_progress(submission.student_id, submission.course_id)
        if progress is None:
            progress = Progress(
                student_id=submission.student_id,
                scope_id=submission.course_id,
                scope_type=ProgressScope.COURSE,
                total_lessons=await self.catalog.count_course_lessons(
                    submission.course_id
                ),
            )

        graded: dict[UUID, Decimal] = {}
        if self.evaluator:
            stored = await self.evaluator.submissions.list_graded(
                submission.student_id, submission.course_id
            )
            graded = {s.id: s.percentage for s in stored}
        graded[submission.id] = submission.percentage
        progress.record_assessments(list(graded.values()))
        progress.last_accessed_at = datetime.now(UTC)
        await self._save_aggregate(progress)

        logger.info(
            "assessment_graded",
            student_id=str(submission.student_id),
            course_id=str(submission.course_id),
            percentage=str(submission.percentage),
            average_score=str(progress.average_score),
        )

        if self.evaluator:
            await self.evaluator.evaluate_course(
                submission.student_id,
                submission.course_id,
                overall_progress=self._lesson_side(progress),
            )
        return progress

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def create_program_progress(
        self,
        student_id: UUID,
        program_id: UUID,
        total_lessons: int,
        total_courses: int,
    ) -> Progress:
        """Create the program aggregate (kept as-is when it already exists)."""
        now = datetime.now(UTC)
        progress = Progress(
            student_id=student_id,
            scope_id=program_id,
            scope_type=ProgressScope.PROGRAM,
            total_lessons=total_lessons,
            total_courses=total_courses,
            created_at=now,
            last_accessed_at=now,
        )
        result = await self.session.aexecute(
            self._create_aggregate, self._aggregate_values(progress)
        )
        if not result.was_applied:
            existing = await self.get_progress(student_id, program_id)
            if existing:
                return existing
        return progress

    async def delete_progress(
        self, student_id: UUID, scope_id: UUID, scope_type: ProgressScope
    ) -> None:
        """Delete an aggregate (and nested records for a course)."""
        await self.session.aexecute(self._delete_aggregate, [student_id, scope_id])
        if scope_type == ProgressScope.COURSE:
            await self.session.aexecute(self._delete_modules, [student_id, scope_id])
            await self.session.aexecute(self._delete_lessons, [student_id, scope_id])
