"""Database models for assessment submissions.

Only the graded-result read model lives here: enough for course completion
rules and certificate metadata. Assessment authoring and grading workflows
are outside this service.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class SubmissionStatus(str, Enum):
    """Submission status."""

    SUBMITTED = "submitted"
    GRADED = "graded"


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

SUBMISSIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.submissions (
    student_id UUID,
    course_id UUID,
    submission_id UUID,
    assessment_id UUID,
    status TEXT,
    percentage DECIMAL,
    graded_at TIMESTAMP,
    PRIMARY KEY ((student_id, course_id), submission_id)
)
"""

COMPLETION_TABLES_CQL = [
    SUBMISSIONS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Submission:
    """Scored attempt of a student at an assessment."""

    student_id: UUID
    course_id: UUID
    assessment_id: UUID
    percentage: Decimal
    status: SubmissionStatus = SubmissionStatus.GRADED
    id: UUID = field(default_factory=uuid4)
    graded_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Submission":
        """Create Submission from Cassandra row."""
        return cls(
            id=row.submission_id,
            student_id=row.student_id,
            course_id=row.course_id,
            assessment_id=row.assessment_id,
            percentage=row.percentage if row.percentage is not None else Decimal(0),
            status=SubmissionStatus(row.status or "submitted"),
            graded_at=ensure_utc_aware(row.graded_at),
        )

    @property
    def is_graded(self) -> bool:
        return self.status == SubmissionStatus.GRADED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "student_id": self.student_id,
            "course_id": self.course_id,
            "assessment_id": self.assessment_id,
            "percentage": self.percentage,
            "status": self.status.value,
            "graded_at": self.graded_at,
        }
