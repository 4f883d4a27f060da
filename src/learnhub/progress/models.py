"""Database models for student progress tracking.

Cassandra table definitions for:
- Progress aggregates: one row per (student, course) or (student, program)
- Module progress: per module of a course, partitioned by (student, course)
- Lesson progress: per lesson of a course, partitioned by (student, course)

In memory, a course aggregate holds modules keyed by module_id and each
module holds lessons keyed by lesson_id; `modules` / `lessons` give the
ordered view (catalog position, then id) used for serialization.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class LessonProgressStatus(str, Enum):
    """Lesson and module progress status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ProgressScope(str, Enum):
    """What an aggregate row tracks."""

    COURSE = "course"
    PROGRAM = "program"


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def percentage(completed: int, total: int) -> Decimal:
    """Completed over total as a 0-100 percentage with 2 decimals.

    A zero total gives 0; the result never exceeds 100.
    """
    if total <= 0:
        return Decimal(0)
    value = Decimal(completed) * 100 / Decimal(total)
    return min(Decimal(100), value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

PROGRESS_AGGREGATE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.progress_aggregates (
    student_id UUID,
    scope_id UUID,
    scope_type TEXT,
    overall_progress DECIMAL,
    completed_lessons INT,
    total_lessons INT,
    completed_assessments INT,
    total_assessments INT,
    average_score DECIMAL,
    total_time_spent INT,
    total_courses INT,
    created_at TIMESTAMP,
    last_accessed_at TIMESTAMP,
    PRIMARY KEY ((student_id, scope_id))
)
"""

MODULE_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_progress (
    student_id UUID,
    course_id UUID,
    module_id UUID,
    position INT,
    status TEXT,
    completed_lessons INT,
    total_lessons INT,
    completion_percentage DECIMAL,
    completed_at TIMESTAMP,
    last_accessed_at TIMESTAMP,
    PRIMARY KEY ((student_id, course_id), module_id)
)
"""

LESSON_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_progress (
    student_id UUID,
    course_id UUID,
    module_id UUID,
    lesson_id UUID,
    position INT,
    status TEXT,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    time_spent INT,
    last_accessed_at TIMESTAMP,
    PRIMARY KEY ((student_id, course_id), module_id, lesson_id)
) WITH CLUSTERING ORDER BY (module_id ASC, lesson_id ASC)
"""

PROGRESS_TABLES_CQL = [
    PROGRESS_AGGREGATE_TABLE_CQL,
    MODULE_PROGRESS_TABLE_CQL,
    LESSON_PROGRESS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class LessonProgress:
    """Progress of one student on one lesson."""

    def __init__(
        self,
        lesson_id: UUID,
        module_id: UUID,
        position: int = 0,
        status: LessonProgressStatus = LessonProgressStatus.NOT_STARTED,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        time_spent: int = 0,
        last_accessed_at: datetime | None = None,
    ):
        self.lesson_id = lesson_id
        self.module_id = module_id
        self.position = position
        self.status = status
        self.started_at = ensure_utc_aware(started_at)
        self.completed_at = ensure_utc_aware(completed_at)
        self.time_spent = time_spent
        self.last_accessed_at = ensure_utc_aware(last_accessed_at)

    @property
    def is_completed(self) -> bool:
        return self.status == LessonProgressStatus.COMPLETED

    def start(self, now: datetime) -> None:
        """not_started -> in_progress. Completed lessons keep their status."""
        if self.status == LessonProgressStatus.NOT_STARTED:
            self.status = LessonProgressStatus.IN_PROGRESS
        self.started_at = self.started_at or now
        self.last_accessed_at = now

    def complete(self, now: datetime) -> None:
        """Mark completed (idempotent, keeps the first completion time)."""
        self.status = LessonProgressStatus.COMPLETED
        self.started_at = self.started_at or now
        self.completed_at = self.completed_at or now
        self.last_accessed_at = now

    @classmethod
    def from_row(cls, row: Any) -> "LessonProgress":
        """Create LessonProgress from Cassandra row."""
        return cls(
            lesson_id=row.lesson_id,
            module_id=row.module_id,
            position=row.position or 0,
            status=LessonProgressStatus(row.status or "not_started"),
            started_at=row.started_at,
            completed_at=row.completed_at,
            time_spent=row.time_spent or 0,
            last_accessed_at=row.last_accessed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "lesson_id": self.lesson_id,
            "status": self.status.value,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "time_spent": self.time_spent,
            "last_accessed_at": self.last_accessed_at,
        }

    def __repr__(self) -> str:
        return f"<LessonProgress lesson={self.lesson_id} {self.status.value}>"


class ModuleProgress:
    """Progress of one student on one module, with its lessons keyed by id."""

    def __init__(
        self,
        module_id: UUID,
        position: int = 0,
        status: LessonProgressStatus = LessonProgressStatus.NOT_STARTED,
        completed_lessons: int = 0,
        total_lessons: int = 0,
        completion_percentage: Decimal = Decimal(0),
        completed_at: datetime | None = None,
        last_accessed_at: datetime | None = None,
    ):
        self.module_id = module_id
        self.position = position
        self.status = status
        self.completed_lessons = completed_lessons
        self.total_lessons = total_lessons
        self.completion_percentage = completion_percentage
        self.completed_at = ensure_utc_aware(completed_at)
        self.last_accessed_at = ensure_utc_aware(last_accessed_at)
        self.lesson_map: dict[UUID, LessonProgress] = {}

    @property
    def lessons(self) -> list[LessonProgress]:
        """Lessons in stable order."""
        return sorted(
            self.lesson_map.values(), key=lambda lp: (lp.position, str(lp.lesson_id))
        )

    @property
    def is_completed(self) -> bool:
        return self.status == LessonProgressStatus.COMPLETED

    def lesson(self, lesson_id: UUID, position: int = 0) -> LessonProgress:
        """Locate or create the lesson record."""
        record = self.lesson_map.get(lesson_id)
        if record is None:
            record = LessonProgress(
                lesson_id=lesson_id, module_id=self.module_id, position=position
            )
            self.lesson_map[lesson_id] = record
        return record

    def recalculate(self, catalog_total: int, now: datetime) -> bool:
        """Refresh counters against the current catalog lesson count.

        Returns:
            True when this call moved the module to completed
        """
        was_completed = self.is_completed
        self.total_lessons = catalog_total
        self.completed_lessons = sum(1 for lp in self.lesson_map.values() if lp.is_completed)
        self.completion_percentage = percentage(self.completed_lessons, catalog_total)
        self.last_accessed_at = now

        if self.completion_percentage >= 100:
            self.status = LessonProgressStatus.COMPLETED
            self.completed_at = self.completed_at or now
        elif self.completed_lessons or any(
            lp.status != LessonProgressStatus.NOT_STARTED
            for lp in self.lesson_map.values()
        ):
            self.status = LessonProgressStatus.IN_PROGRESS
            self.completed_at = None
        return self.is_completed and not was_completed

    @classmethod
    def from_row(cls, row: Any) -> "ModuleProgress":
        """Create ModuleProgress from Cassandra row (lessons attached later)."""
        return cls(
            module_id=row.module_id,
            position=row.position or 0,
            status=LessonProgressStatus(row.status or "not_started"),
            completed_lessons=row.completed_lessons or 0,
            total_lessons=row.total_lessons or 0,
            completion_percentage=row.completion_percentage or Decimal(0),
            completed_at=row.completed_at,
            last_accessed_at=row.last_accessed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "module_id": self.module_id,
            "status": self.status.value,
            "completed_lessons": self.completed_lessons,
            "total_lessons": self.total_lessons,
            "completion_percentage": self.completion_percentage,
            "completed_at": self.completed_at,
            "lessons": [lp.to_dict() for lp in self.lessons],
        }


class Progress:
    """Progress aggregate for (student, course) or (student, program).

    Course aggregates carry nested modules; program aggregates carry
    total_courses and no modules.
    """

    def __init__(
        self,
        student_id: UUID,
        scope_id: UUID,
        scope_type: ProgressScope = ProgressScope.COURSE,
        overall_progress: Decimal = Decimal(0),
        completed_lessons: int = 0,
        total_lessons: int = 0,
        completed_assessments: int = 0,
        total_assessments: int = 0,
        average_score: Decimal = Decimal(0),
        total_time_spent: int = 0,
        total_courses: int = 0,
        created_at: datetime | None = None,
        last_accessed_at: datetime | None = None,
    ):
        self.student_id = student_id
        self.scope_id = scope_id
        self.scope_type = scope_type
        self.overall_progress = overall_progress
        self.completed_lessons = completed_lessons
        self.total_lessons = total_lessons
        self.completed_assessments = completed_assessments
        self.total_assessments = total_assessments
        self.average_score = average_score
        self.total_time_spent = total_time_spent
        self.total_courses = total_courses
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.last_accessed_at = ensure_utc_aware(last_accessed_at)
        self.module_map: dict[UUID, ModuleProgress] = {}

    @property
    def modules(self) -> list[ModuleProgress]:
        """Modules in stable order."""
        return sorted(
            self.module_map.values(), key=lambda mp: (mp.position, str(mp.module_id))
        )

    @property
    def is_lessons_complete(self) -> bool:
        """All catalog lessons done (false when the course has no lessons)."""
        return self.total_lessons > 0 and self.overall_progress >= 100

    def module(self, module_id: UUID, position: int = 0) -> ModuleProgress:
        """Locate or create the module record."""
        record = self.module_map.get(module_id)
        if record is None:
            record = ModuleProgress(module_id=module_id, position=position)
            self.module_map[module_id] = record
        return record

    def recalculate(self, catalog_total: int, now: datetime) -> None:
        """Refresh lesson counters against the current catalog total."""
        self.total_lessons = catalog_total
        self.completed_lessons = sum(
            1
            for mp in self.module_map.values()
            for lp in mp.lesson_map.values()
            if lp.is_completed
        )
        self.overall_progress = percentage(self.completed_lessons, catalog_total)
        self.last_accessed_at = now

    def record_assessments(self, scores: list[Decimal]) -> None:
        """Recompute assessment counters from every graded score of the course.

        Re-grading a submission replaces its score instead of adding another.
        """
        self.completed_assessments = len(scores)
        self.total_assessments = max(self.total_assessments, self.completed_assessments)
        if not scores:
            self.average_score = Decimal(0)
            return
        self.average_score = (sum(scores, Decimal(0)) / len(scores)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )

    @classmethod
    def from_row(cls, row: Any) -> "Progress":
        """Create Progress from a progress_aggregates row."""
        return cls(
            student_id=row.student_id,
            scope_id=row.scope_id,
            scope_type=ProgressScope(row.scope_type or "course"),
            overall_progress=row.overall_progress or Decimal(0),
            completed_lessons=row.completed_lessons or 0,
            total_lessons=row.total_lessons or 0,
            completed_assessments=row.completed_assessments or 0,
            total_assessments=row.total_assessments or 0,
            average_score=row.average_score or Decimal(0),
            total_time_spent=row.total_time_spent or 0,
            total_courses=row.total_courses or 0,
            created_at=row.created_at,
            last_accessed_at=row.last_accessed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "student_id": self.student_id,
            "scope_id": self.scope_id,
            "scope_type": self.scope_type.value,
            "overall_progress": self.overall_progress,
            "completed_lessons": self.completed_lessons,
            "total_lessons": self.total_lessons,
            "completed_assessments": self.completed_assessments,
            "total_assessments": self.total_assessments,
            "average_score": self.average_score,
            "total_time_spent": self.total_time_spent,
            "total_courses": self.total_courses,
            "last_accessed_at": self.last_accessed_at,
            "modules": [mp.to_dict() for mp in self.modules],
        }

    def __repr__(self) -> str:
        return (
            f"<Progress student={self.student_id} {self.scope_type.value}="
            f"{self.scope_id} {self.overall_progress}%>"
        )
