"""Database models for certificates.

Cassandra table definitions for:
- Certificates: main table keyed by id, names denormalized at issue time
- Certificates by student+course / student+program: uniqueness claims (LWT)
- Certificates by student: listing for the student
- Certificates by scope: listing per course or program
"""

import secrets
import string
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class CertificateStatus(str, Enum):
    """Certificate lifecycle status."""

    PENDING = "pending"
    ISSUED = "issued"
    REVOKED = "revoked"


CODE_ALPHABET = string.ascii_uppercase + string.digits
CERTIFICATE_NUMBER_RANDOM_LENGTH = 6
VERIFICATION_CODE_LENGTH = 10


def random_code(length: int) -> str:
    """Random uppercase alphanumeric string."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_certificate_number(now: datetime | None = None) -> str:
    """CERT-{year}-{6 random uppercase alnum}."""
    year = (now or datetime.now(UTC)).year
    return f"CERT-{year}-{random_code(CERTIFICATE_NUMBER_RANDOM_LENGTH)}"


def generate_verification_code() -> str:
    """10 random uppercase alnum characters."""
    return random_code(VERIFICATION_CODE_LENGTH)


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

CERTIFICATE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates (
    id UUID PRIMARY KEY,
    student_id UUID,
    course_id UUID,
    program_id UUID,
    certificate_number TEXT,
    verification_code TEXT,
    status TEXT,
    student_name TEXT,
    course_name TEXT,
    program_name TEXT,
    issue_date TIMESTAMP,
    completion_date TIMESTAMP,
    grade TEXT,
    final_score DOUBLE,
    pdf_url TEXT,
    achievements LIST<TEXT>,
    issued_by UUID,
    metadata MAP<TEXT, DOUBLE>,
    revoked_at TIMESTAMP,
    revocation_reason TEXT,
    updated_at TIMESTAMP
)
"""

# Claimed with IF NOT EXISTS: one course certificate per student
CERTIFICATES_BY_STUDENT_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_student_course (
    student_id UUID,
    course_id UUID,
    certificate_id UUID,
    PRIMARY KEY ((student_id, course_id))
)
"""

# Claimed with IF NOT EXISTS: one program certificate per student
CERTIFICATES_BY_STUDENT_PROGRAM_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_student_program (
    student_id UUID,
    program_id UUID,
    certificate_id UUID,
    PRIMARY KEY ((student_id, program_id))
)
"""

CERTIFICATES_BY_STUDENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_student (
    student_id UUID,
    issue_date TIMESTAMP,
    certificate_id UUID,
    PRIMARY KEY (student_id, issue_date, certificate_id)
) WITH CLUSTERING ORDER BY (issue_date DESC, certificate_id ASC)
"""

# scope_id is a course id or a program id
CERTIFICATES_BY_SCOPE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_scope (
    scope_id UUID,
    issue_date TIMESTAMP,
    certificate_id UUID,
    student_id UUID,
    PRIMARY KEY (scope_id, issue_date, certificate_id)
) WITH CLUSTERING ORDER BY (issue_date DESC, certificate_id ASC)
"""

CERTIFICATES_TABLES_CQL = [
    CERTIFICATE_TABLE_CQL,
    CERTIFICATES_BY_STUDENT_COURSE_TABLE_CQL,
    CERTIFICATES_BY_STUDENT_PROGRAM_TABLE_CQL,
    CERTIFICATES_BY_STUDENT_TABLE_CQL,
    CERTIFICATES_BY_SCOPE_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Certificate:
    """Certificate for a course, a program, or both."""

    student_id: UUID
    student_name: str
    id: UUID = field(default_factory=uuid4)
    course_id: UUID | None = None
    program_id: UUID | None = None
    course_name: str | None = None
    program_name: str | None = None
    certificate_number: str = field(default_factory=generate_certificate_number)
    verification_code: str = field(default_factory=generate_verification_code)
    status: CertificateStatus = CertificateStatus.ISSUED
    issue_date: datetime = field(default_factory=lambda: datetime.now(UTC))
    completion_date: datetime = field(default_factory=lambda: datetime.now(UTC))
    grade: str | None = None
    final_score: float | None = None
    pdf_url: str | None = None
    achievements: list[str] = field(default_factory=list)
    issued_by: UUID | None = None
    metadata: dict[str, float] = field(default_factory=dict)
    revoked_at: datetime | None = None
    revocation_reason: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Certificate":
        """Create Certificate from Cassandra row."""
        return cls(
            id=row.id,
            student_id=row.student_id,
            student_name=row.student_name or "",
            course_id=row.course_id,
            program_id=row.program_id,
            course_name=row.course_name,
            program_name=row.program_name,
            certificate_number=row.certificate_number,
            verification_code=row.verification_code,
            status=CertificateStatus(row.status),
            issue_date=ensure_utc_aware(row.issue_date) or datetime.now(UTC),
            completion_date=ensure_utc_aware(row.completion_date) or datetime.now(UTC),
            grade=row.grade,
            final_score=row.final_score,
            pdf_url=row.pdf_url,
            achievements=list(row.achievements or []),
            issued_by=row.issued_by,
            metadata=dict(row.metadata or {}),
            revoked_at=ensure_utc_aware(row.revoked_at),
            revocation_reason=row.revocation_reason,
            updated_at=ensure_utc_aware(row.updated_at),
        )

    @property
    def is_valid(self) -> bool:
        return self.status == CertificateStatus.ISSUED

    @property
    def scope_ids(self) -> list[UUID]:
        return [scope for scope in (self.course_id, self.program_id) if scope]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "student_id": self.student_id,
            "course_id": self.course_id,
            "program_id": self.program_id,
            "certificate_number": self.certificate_number,
            "verification_code": self.verification_code,
            "status": self.status.value,
            "student_name": self.student_name,
            "course_name": self.course_name,
            "program_name": self.program_name,
            "issue_date": self.issue_date,
            "completion_date": self.completion_date,
            "grade": self.grade,
            "final_score": self.final_score,
            "pdf_url": self.pdf_url,
            "metadata": self.metadata,
        }

    def __repr__(self) -> str:
        return f"<Certificate {self.certificate_number} ({self.status.value})>"
