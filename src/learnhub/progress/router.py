"""Student progress tracking API endpoints.

Provides routes for:
- Lesson start and completion events
- Graded assessment events (instructors and admins)
- Course progress queries
"""

from uuid import UUID, uuid4

from fastapi import APIRouter, HTTPException, status

from learnhub.auth.dependencies import CurrentUser, InstructorUser
from learnhub.completion.models import Submission
from learnhub.core.errors import EngineError, handle_engine_error

from .dependencies import ProgressTrackerDep
from .schemas import (
    AssessmentGradedRequest,
    LessonEventRequest,
    LessonEventResponse,
    ProgressResponse,
)


router = APIRouter(prefix="/v1/progress", tags=["progress"])


# ==============================================================================
# Lesson Events
# ==============================================================================


@router.post(
    "/lessons/{lesson_id}/start",
    response_model=LessonEventResponse,
    summary="Start lesson",
)
async def start_lesson(
    lesson_id: UUID,
    current_user: CurrentUser,
    tracker: ProgressTrackerDep,
    data: LessonEventRequest | None = None,
) -> LessonEventResponse:
    """Record that the caller opened a lesson."""
    time_spent = data.time_spent_seconds if data else 0
    try:
        result = await tracker.on_lesson_started(current_user.id, lesson_id, time_spent)
    except EngineError as e:
        raise handle_engine_error(e) from e
    return LessonEventResponse.from_result(result)


@router.post(
    "/lessons/{lesson_id}/complete",
    response_model=LessonEventResponse,
    summary="Complete lesson",
)
async def complete_lesson(
    lesson_id: UUID,
    current_user: CurrentUser,
    tracker: ProgressTrackerDep,
    data: LessonEventRequest | None = None,
) -> LessonEventResponse:
    """Mark a lesson completed for the caller.

    May complete the course entry and the whole enrollment.
    """
    time_spent = data.time_spent_seconds if data else 0
    try:
        result = await tracker.on_lesson_completed(
            current_user.id, lesson_id, time_spent
        )
    except EngineError as e:
        raise handle_engine_error(e) from e
    return LessonEventResponse.from_result(result)


# ==============================================================================
# Assessment Events
# ==============================================================================


@router.post(
    "/assessments/graded",
    response_model=ProgressResponse,
    summary="Record graded assessment",
)
async def assessment_graded(
    data: AssessmentGradedRequest,
    _grader: InstructorUser,
    tracker: ProgressTrackerDep,
) -> ProgressResponse:
    """Record a graded submission and re-evaluate the course."""
    submission = Submission(
        id=data.submission_id or uuid4(),
        student_id=data.student_id,
        course_id=data.course_id,
        assessment_id=data.assessment_id,
        percentage=data.percentage,
    )
    try:
        progress = await tracker.on_assessment_graded(submission)
    except EngineError as e:
        raise handle_engine_error(e) from e
    return ProgressResponse.from_progress(progress)


# ==============================================================================
# Queries
# ==============================================================================


@router.get(
    "/courses/{course_id}",
    response_model=ProgressResponse,
    summary="Course progress",
)
async def get_course_progress(
    course_id: UUID,
    current_user: CurrentUser,
    tracker: ProgressTrackerDep,
) -> ProgressResponse:
    """Course progress of the caller, with modules and lessons."""
    progress = await tracker.get_course_progress(current_user.id, course_id)
    if progress is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No progress recorded for this course",
        )
    return ProgressResponse.from_progress(progress)
