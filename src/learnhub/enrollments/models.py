"""Database models for program enrollments.

Cassandra table definitions for:
- Enrollments: one row per enrollment, status lives here only
- Enrollment course progress: the per-course snapshot taken at enrollment
- Enrollments by pair: (student, program) uniqueness claim (LWT)
- Enrollments by student / by program: listing lookups
- Program capacity: CAS seat counter (PENDING + ACTIVE enrollments)

Also holds the enrollment state machine and the option/result types used by
the enrollment manager.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from learnhub.core.errors import ForbiddenError, ValidationError


class EnrollmentStatus(str, Enum):
    """Program enrollment status."""

    PENDING = "pending"  # Not activated yet
    ACTIVE = "active"
    COMPLETED = "completed"
    DROPPED = "dropped"
    SUSPENDED = "suspended"


class CourseProgressStatus(str, Enum):
    """Status of one course entry in the enrollment snapshot."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class TransitionActor(str, Enum):
    """Who requests a status change."""

    SYSTEM = "system"  # Completion evaluator
    ADMIN = "admin"
    SELF = "self"  # The enrolled student
    OTHER = "other"


# Statuses that occupy a capacity seat
SEAT_HOLDING_STATUSES = frozenset({EnrollmentStatus.PENDING, EnrollmentStatus.ACTIVE})

ALLOWED_TRANSITIONS: dict[EnrollmentStatus, frozenset[EnrollmentStatus]] = {
    EnrollmentStatus.PENDING: frozenset(
        {EnrollmentStatus.ACTIVE, EnrollmentStatus.DROPPED}
    ),
    EnrollmentStatus.ACTIVE: frozenset(
        {
            EnrollmentStatus.COMPLETED,
            EnrollmentStatus.SUSPENDED,
            EnrollmentStatus.DROPPED,
        }
    ),
    EnrollmentStatus.SUSPENDED: frozenset(
        {EnrollmentStatus.ACTIVE, EnrollmentStatus.DROPPED}
    ),
    EnrollmentStatus.DROPPED: frozenset({EnrollmentStatus.ACTIVE}),
    EnrollmentStatus.COMPLETED: frozenset(),
}

# Actors allowed to move an enrollment INTO a status
TRANSITION_ACTORS: dict[EnrollmentStatus, frozenset[TransitionActor]] = {
    EnrollmentStatus.ACTIVE: frozenset({TransitionActor.ADMIN, TransitionActor.SYSTEM}),
    EnrollmentStatus.COMPLETED: frozenset(
        {TransitionActor.ADMIN, TransitionActor.SYSTEM}
    ),
    EnrollmentStatus.SUSPENDED: frozenset({TransitionActor.ADMIN}),
    EnrollmentStatus.DROPPED: frozenset({TransitionActor.ADMIN, TransitionActor.SELF}),
    EnrollmentStatus.PENDING: frozenset(),
}


def check_transition(
    current: EnrollmentStatus,
    new: EnrollmentStatus,
    actor: TransitionActor,
) -> None:
    """Validate a status change against the state machine.

    Raises:
        ValidationError: Transition not allowed from the current status
        ForbiddenError: Actor may not perform this transition
    """
    if new not in ALLOWED_TRANSITIONS[current]:
        raise ValidationError(
            f"Cannot change enrollment status from {current.value} to {new.value}",
            "invalid_status_transition",
        )
    if actor not in TRANSITION_ACTORS[new]:
        raise ForbiddenError(
            f"Not allowed to change enrollment status to {new.value}",
            "status_change_forbidden",
        )


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ENROLLMENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    id UUID PRIMARY KEY,
    student_id UUID,
    program_id UUID,
    status TEXT,
    enrollment_date TIMESTAMP,
    completion_date TIMESTAMP,
    cohort TEXT,
    notes TEXT,
    scholarship_id UUID,
    final_price DECIMAL,
    updated_at TIMESTAMP
)
"""

# Snapshot of the program's courses at enrollment time, never grows
ENROLLMENT_COURSE_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollment_course_progress (
    enrollment_id UUID,
    position INT,
    course_id UUID,
    status TEXT,
    lessons_completed INT,
    total_lessons INT,
    completion_date TIMESTAMP,
    PRIMARY KEY (enrollment_id, position, course_id)
) WITH CLUSTERING ORDER BY (position ASC, course_id ASC)
"""

# Claimed with IF NOT EXISTS: one enrollment per (student, program)
ENROLLMENTS_BY_PAIR_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_pair (
    student_id UUID,
    program_id UUID,
    enrollment_id UUID,
    PRIMARY KEY ((student_id, program_id))
)
"""

ENROLLMENTS_BY_STUDENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_student (
    student_id UUID,
    enrollment_date TIMESTAMP,
    enrollment_id UUID,
    program_id UUID,
    PRIMARY KEY (student_id, enrollment_date, enrollment_id)
) WITH CLUSTERING ORDER BY (enrollment_date DESC, enrollment_id ASC)
"""

ENROLLMENTS_BY_PROGRAM_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_program (
    program_id UUID,
    enrollment_date TIMESTAMP,
    enrollment_id UUID,
    student_id UUID,
    PRIMARY KEY (program_id, enrollment_date, enrollment_id)
) WITH CLUSTERING ORDER BY (enrollment_date DESC, enrollment_id ASC)
"""

# Seat counter updated with compare-and-set
PROGRAM_CAPACITY_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.program_capacity (
    program_id UUID PRIMARY KEY,
    reserved INT
)
"""

ENROLLMENTS_TABLES_CQL = [
    ENROLLMENT_TABLE_CQL,
    ENROLLMENT_COURSE_PROGRESS_TABLE_CQL,
    ENROLLMENTS_BY_PAIR_TABLE_CQL,
    ENROLLMENTS_BY_STUDENT_TABLE_CQL,
    ENROLLMENTS_BY_PROGRAM_TABLE_CQL,
    PROGRAM_CAPACITY_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class CourseProgressEntry:
    """One course of the enrollment snapshot."""

    course_id: UUID
    position: int
    total_lessons: int = 0
    lessons_completed: int = 0
    status: CourseProgressStatus = CourseProgressStatus.PENDING
    completion_date: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "CourseProgressEntry":
        """Create entry from an enrollment_course_progress row."""
        return cls(
            course_id=row.course_id,
            position=row.position or 0,
            total_lessons=row.total_lessons or 0,
            lessons_completed=row.lessons_completed or 0,
            status=CourseProgressStatus(row.status or CourseProgressStatus.PENDING.value),
            completion_date=ensure_utc_aware(row.completion_date),
        )

    @property
    def is_completed(self) -> bool:
        return self.status == CourseProgressStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "course_id": self.course_id,
            "status": self.status.value,
            "lessons_completed": self.lessons_completed,
            "total_lessons": self.total_lessons,
            "completion_date": self.completion_date,
        }


@dataclass
class Enrollment:
    """A student's enrollment in a program."""

    student_id: UUID
    program_id: UUID
    id: UUID = field(default_factory=uuid4)
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    enrollment_date: datetime = field(default_factory=lambda: datetime.now(UTC))
    completion_date: datetime | None = None
    cohort: str | None = None
    notes: str | None = None
    scholarship_id: UUID | None = None
    final_price: Decimal = Decimal(0)
    updated_at: datetime | None = None
    courses_progress: list[CourseProgressEntry] = field(default_factory=list)

    @classmethod
    def from_row(
        cls, row: Any, entries: list[CourseProgressEntry] | None = None
    ) -> "Enrollment":
        """Create Enrollment from Cassandra row plus its snapshot entries."""
        return cls(
            id=row.id,
            student_id=row.student_id,
            program_id=row.program_id,
            status=EnrollmentStatus(row.status),
            enrollment_date=ensure_utc_aware(row.enrollment_date) or datetime.now(UTC),
            completion_date=ensure_utc_aware(row.completion_date),
            cohort=row.cohort,
            notes=row.notes,
            scholarship_id=row.scholarship_id,
            final_price=row.final_price if row.final_price is not None else Decimal(0),
            updated_at=ensure_utc_aware(row.updated_at),
            courses_progress=entries or [],
        )

    @property
    def holds_seat(self) -> bool:
        return self.status in SEAT_HOLDING_STATUSES

    @property
    def course_ids(self) -> list[UUID]:
        return [entry.course_id for entry in self.courses_progress]

    @property
    def all_courses_completed(self) -> bool:
        """True when every snapshot entry is COMPLETED (false for an empty snapshot)."""
        return bool(self.courses_progress) and all(
            entry.is_completed for entry in self.courses_progress
        )

    @property
    def total_lessons(self) -> int:
        return sum(entry.total_lessons for entry in self.courses_progress)

    def entry_for(self, course_id: UUID) -> CourseProgressEntry | None:
        """Snapshot entry of a course, if the course was in the program at enrollment."""
        for entry in self.courses_progress:
            if entry.course_id == course_id:
                return entry
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "student_id": self.student_id,
            "program_id": self.program_id,
            "status": self.status.value,
            "enrollment_date": self.enrollment_date,
            "completion_date": self.completion_date,
            "cohort": self.cohort,
            "notes": self.notes,
            "scholarship_id": self.scholarship_id,
            "final_price": self.final_price,
            "courses_progress": [entry.to_dict() for entry in self.courses_progress],
        }

    def __repr__(self) -> str:
        return (
            f"<Enrollment student={self.student_id} program={self.program_id} "
            f"{self.status.value}>"
        )


# ==============================================================================
# Options and Results
# ==============================================================================


@dataclass
class EnrollOptions:
    """Knobs shared by single, bulk and by-email enrollment."""

    cohort: str | None = None
    notes: str | None = None
    scholarship_code: str | None = None
    payment_method: str | None = None
    waive_payment: bool = False
    notify: bool = True
    create_missing_users: bool = False


@dataclass(frozen=True)
class EmailEnrollmentEntry:
    """One line of an enroll-by-email request."""

    email: str
    name: str = ""


@dataclass
class BatchItemResult:
    """Outcome of one item in a batch enrollment."""

    key: str
    success: bool
    enrollment_id: UUID | None = None
    error_code: str | None = None
    error: str | None = None
    user_created: bool = False


@dataclass
class BatchEnrollmentResult:
    """Outcome of a bulk or by-email enrollment."""

    items: list[BatchItemResult] = field(default_factory=list)

    @property
    def enrolled(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if not item.success)

    @property
    def new_users_created(self) -> int:
        return sum(1 for item in self.items if item.user_created)
