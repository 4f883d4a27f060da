"""Database models for scholarships.

Cassandra table definitions for:
- Scholarships: main table keyed by id; status transitions use LWT
- Scholarships by code: uniqueness guard and lookup by code
- Scholarships by program: listing and statistics per program
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class DiscountType(str, Enum):
    """How the discount value is applied."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ScholarshipStatus(str, Enum):
    """Scholarship lifecycle status."""

    ACTIVE = "active"
    USED = "used"  # Redeemed exactly once
    EXPIRED = "expired"
    REVOKED = "revoked"


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

SCHOLARSHIP_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.scholarships (
    id UUID PRIMARY KEY,
    code TEXT,
    program_id UUID,
    student_email TEXT,
    discount_type TEXT,
    discount_value DECIMAL,
    status TEXT,
    expires_at TIMESTAMP,
    used_by UUID,
    used_at TIMESTAMP,
    notes TEXT,
    created_by UUID,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Claimed with IF NOT EXISTS: a code maps to exactly one scholarship
SCHOLARSHIPS_BY_CODE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.scholarships_by_code (
    code TEXT PRIMARY KEY,
    scholarship_id UUID
)
"""

SCHOLARSHIPS_BY_PROGRAM_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.scholarships_by_program (
    program_id UUID,
    created_at TIMESTAMP,
    scholarship_id UUID,
    PRIMARY KEY (program_id, created_at, scholarship_id)
) WITH CLUSTERING ORDER BY (created_at DESC, scholarship_id ASC)
"""

SCHOLARSHIPS_TABLES_CQL = [
    SCHOLARSHIP_TABLE_CQL,
    SCHOLARSHIPS_BY_CODE_TABLE_CQL,
    SCHOLARSHIPS_BY_PROGRAM_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Scholarship:
    """Discount code scoped to one program."""

    id: UUID
    code: str
    program_id: UUID
    discount_type: DiscountType
    discount_value: Decimal
    status: ScholarshipStatus
    created_at: datetime
    student_email: str | None = None
    expires_at: datetime | None = None
    used_by: UUID | None = None
    used_at: datetime | None = None
    notes: str | None = None
    created_by: UUID | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Scholarship":
        """Create Scholarship from Cassandra row."""
        return cls(
            id=row.id,
            code=row.code,
            program_id=row.program_id,
            discount_type=DiscountType(row.discount_type),
            discount_value=row.discount_value
            if row.discount_value is not None
            else Decimal(0),
            status=ScholarshipStatus(row.status),
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
            student_email=row.student_email,
            expires_at=ensure_utc_aware(row.expires_at),
            used_by=row.used_by,
            used_at=ensure_utc_aware(row.used_at),
            notes=row.notes,
            created_by=row.created_by,
            updated_at=ensure_utc_aware(row.updated_at),
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        """True when past expires_at (regardless of stored status)."""
        if self.expires_at is None:
            return False
        return self.expires_at < (now or datetime.now(UTC))

    @property
    def is_redeemable(self) -> bool:
        return self.status == ScholarshipStatus.ACTIVE and not self.is_expired()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "code": self.code,
            "program_id": self.program_id,
            "student_email": self.student_email,
            "discount_type": self.discount_type.value,
            "discount_value": self.discount_value,
            "status": self.status.value,
            "expires_at": self.expires_at,
            "used_by": self.used_by,
            "used_at": self.used_at,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Scholarship {self.code} ({self.status.value})>"
