"""Pydantic schemas for enrollments."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from .models import (
    BatchEnrollmentResult,
    BatchItemResult,
    CourseProgressEntry,
    CourseProgressStatus,
    EmailEnrollmentEntry,
    Enrollment,
    EnrollmentStatus,
    EnrollOptions,
)


# ==============================================================================
# Requests
# ==============================================================================


class EnrollmentOptionsMixin(BaseModel):
    """Fields shared by every enrollment request."""

    cohort: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=1000)
    scholarship_code: str | None = Field(None, max_length=64)
    payment_method: str | None = Field(None, max_length=50)
    notify: bool = True

    def to_options(self, waive_payment: bool = False, **extra) -> EnrollOptions:
        return EnrollOptions(
            cohort=self.cohort,
            notes=self.notes,
            scholarship_code=self.scholarship_code,
            payment_method=self.payment_method,
            waive_payment=waive_payment,
            notify=self.notify,
            **extra,
        )


class CreateEnrollmentRequest(EnrollmentOptionsMixin):
    """Enroll the caller, or a student chosen by an admin."""

    program_id: UUID
    student_id: UUID | None = None
    waive_payment: bool = False


class BulkEnrollmentRequest(EnrollmentOptionsMixin):
    """Enroll existing students by ID."""

    student_ids: list[UUID] = Field(..., min_length=1, max_length=500)
    waive_payment: bool = True


class EmailEntryRequest(BaseModel):
    email: str = Field(..., max_length=254)
    name: str = Field("", max_length=200)


class EmailEnrollmentRequest(EnrollmentOptionsMixin):
    """Enroll students by email, optionally creating missing accounts."""

    entries: list[EmailEntryRequest] = Field(..., min_length=1, max_length=500)
    create_missing_users: bool = False
    waive_payment: bool = True

    def to_entries(self) -> list[EmailEnrollmentEntry]:
        return [EmailEnrollmentEntry(email=e.email, name=e.name) for e in self.entries]


class UpdateStatusRequest(BaseModel):
    status: EnrollmentStatus


# ==============================================================================
# Responses
# ==============================================================================


class CourseProgressEntryResponse(BaseModel):
    course_id: UUID
    position: int
    status: CourseProgressStatus
    lessons_completed: int
    total_lessons: int
    completion_date: datetime | None = None

    @classmethod
    def from_entry(cls, entry: CourseProgressEntry) -> "CourseProgressEntryResponse":
        return cls(
            course_id=entry.course_id,
            position=entry.position,
            status=entry.status,
            lessons_completed=entry.lessons_completed,
            total_lessons=entry.total_lessons,
            completion_date=entry.completion_date,
        )


class EnrollmentResponse(BaseModel):
    """Enrollment with its course snapshot."""

    id: UUID
    student_id: UUID
    program_id: UUID
    status: EnrollmentStatus
    enrollment_date: datetime
    completion_date: datetime | None = None
    cohort: str | None = None
    notes: str | None = None
    scholarship_id: UUID | None = None
    final_price: Decimal
    courses_progress: list[CourseProgressEntryResponse] = Field(default_factory=list)

    @classmethod
    def from_enrollment(cls, enrollment: Enrollment) -> "EnrollmentResponse":
        return cls(
            id=enrollment.id,
            student_id=enrollment.student_id,
            program_id=enrollment.program_id,
            status=enrollment.status,
            enrollment_date=enrollment.enrollment_date,
            completion_date=enrollment.completion_date,
            cohort=enrollment.cohort,
            notes=enrollment.notes,
            scholarship_id=enrollment.scholarship_id,
            final_price=enrollment.final_price,
            courses_progress=[
                CourseProgressEntryResponse.from_entry(e)
                for e in enrollment.courses_progress
            ],
        )


class EnrollmentListResponse(BaseModel):
    items: list[EnrollmentResponse]
    total: int


class BatchItemResponse(BaseModel):
    key: str
    success: bool
    enrollment_id: UUID | None = None
    error_code: str | None = None
    error: str | None = None
    user_created: bool = False

    @classmethod
    def from_item(cls, item: BatchItemResult) -> "BatchItemResponse":
        return cls(
            key=item.key,
            success=item.success,
            enrollment_id=item.enrollment_id,
            error_code=item.error_code,
            error=item.error,
            user_created=item.user_created,
        )


class BatchEnrollmentResponse(BaseModel):
    """Per-item outcome of a batch enrollment."""

    enrolled: int
    failed: int
    new_users_created: int = 0
    items: list[BatchItemResponse]

    @classmethod
    def from_result(cls, result: BatchEnrollmentResult) -> "BatchEnrollmentResponse":
        return cls(
            enrolled=result.enrolled,
            failed=result.failed,
            new_users_created=result.new_users_created,
            items=[BatchItemResponse.from_item(i) for i in result.items],
        )
