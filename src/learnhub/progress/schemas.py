"""Pydantic schemas for progress tracking."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from .models import LessonProgress, LessonProgressStatus, ModuleProgress, Progress
from .service import LessonEventResult


# ==============================================================================
# Requests
# ==============================================================================


class LessonEventRequest(BaseModel):
    """Optional time spent on the lesson since the last event."""

    time_spent_seconds: int = Field(0, ge=0, le=86_400)


class AssessmentGradedRequest(BaseModel):
    """A graded assessment submission."""

    student_id: UUID
    course_id: UUID
    assessment_id: UUID
    submission_id: UUID | None = None
    percentage: Decimal = Field(..., ge=0, le=100)


# ==============================================================================
# Responses
# ==============================================================================


class LessonProgressResponse(BaseModel):
    """Lesson progress."""

    lesson_id: UUID
    status: LessonProgressStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    time_spent: int = 0

    @classmethod
    def from_lesson(cls, lesson: LessonProgress) -> "LessonProgressResponse":
        return cls(
            lesson_id=lesson.lesson_id,
            status=lesson.status,
            started_at=lesson.started_at,
            completed_at=lesson.completed_at,
            time_spent=lesson.time_spent,
        )


class ModuleProgressResponse(BaseModel):
    """Module progress with its lessons."""

    module_id: UUID
    status: LessonProgressStatus
    completed_lessons: int
    total_lessons: int
    completion_percentage: float
    completed_at: datetime | None = None
    lessons: list[LessonProgressResponse] = Field(default_factory=list)

    @classmethod
    def from_module(cls, module: ModuleProgress) -> "ModuleProgressResponse":
        return cls(
            module_id=module.module_id,
            status=module.status,
            completed_lessons=module.completed_lessons,
            total_lessons=module.total_lessons,
            completion_percentage=float(module.completion_percentage),
            completed_at=module.completed_at,
            lessons=[LessonProgressResponse.from_lesson(lp) for lp in module.lessons],
        )


class ProgressResponse(BaseModel):
    """Course or program aggregate."""

    student_id: UUID
    scope_id: UUID
    scope_type: str
    overall_progress: float
    completed_lessons: int
    total_lessons: int
    completed_assessments: int
    total_assessments: int
    average_score: float
    total_time_spent: int
    total_courses: int = 0
    last_accessed_at: datetime | None = None
    modules: list[ModuleProgressResponse] = Field(default_factory=list)

    @classmethod
    def from_progress(cls, progress: Progress) -> "ProgressResponse":
        return cls(
            student_id=progress.student_id,
            scope_id=progress.scope_id,
            scope_type=progress.scope_type.value,
            overall_progress=float(progress.overall_progress),
            completed_lessons=progress.completed_lessons,
            total_lessons=progress.total_lessons,
            completed_assessments=progress.completed_assessments,
            total_assessments=progress.total_assessments,
            average_score=float(progress.average_score),
            total_time_spent=progress.total_time_spent,
            total_courses=progress.total_courses,
            last_accessed_at=progress.last_accessed_at,
            modules=[ModuleProgressResponse.from_module(mp) for mp in progress.modules],
        )


class LessonEventResponse(BaseModel):
    """Result of a lesson event."""

    lesson: LessonProgressResponse
    course_progress: ProgressResponse
    module_completed: bool = False
    course_completed: bool = False

    @classmethod
    def from_result(cls, result: LessonEventResult) -> "LessonEventResponse":
        return cls(
            lesson=LessonProgressResponse.from_lesson(result.lesson),
            course_progress=ProgressResponse.from_progress(result.progress),
            module_completed=result.module_completed,
            course_completed=result.course_completed,
        )
