"""Pydantic schemas for scholarships."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from learnhub.core.errors import PriceQuote

from .models import DiscountType, Scholarship


# ==============================================================================
# Requests
# ==============================================================================


class CreateScholarshipRequest(BaseModel):
    """Create a single scholarship."""

    program_id: UUID
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0)
    student_email: EmailStr | None = None
    expires_at: datetime | None = None
    notes: str | None = Field(None, max_length=500)
    send_email: bool = True


class BulkGenerateRequest(BaseModel):
    """Generate several unrestricted codes at once."""

    program_id: UUID
    quantity: int = Field(..., ge=1, le=100)
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0)
    expires_at: datetime | None = None


class UpdateScholarshipRequest(BaseModel):
    """Partial update. Only fields that are set are applied."""

    student_email: EmailStr | None = None
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = Field(None, gt=0)
    expires_at: datetime | None = None
    notes: str | None = Field(None, max_length=500)


class ValidateScholarshipRequest(BaseModel):
    """Check a code for the calling student."""

    code: str = Field(..., min_length=1, max_length=64)
    program_id: UUID


# ==============================================================================
# Responses
# ==============================================================================


class ScholarshipResponse(BaseModel):
    """Scholarship details."""

    id: UUID
    code: str
    program_id: UUID
    student_email: str | None = None
    discount_type: DiscountType
    discount_value: float
    status: str
    expires_at: datetime | None = None
    used_by: UUID | None = None
    used_at: datetime | None = None
    notes: str | None = None
    created_by: UUID | None = None
    created_at: datetime

    @classmethod
    def from_scholarship(cls, scholarship: Scholarship) -> "ScholarshipResponse":
        """Create response from Scholarship model."""
        return cls(
            id=scholarship.id,
            code=scholarship.code,
            program_id=scholarship.program_id,
            student_email=scholarship.student_email,
            discount_type=scholarship.discount_type,
            discount_value=float(scholarship.discount_value),
            status=scholarship.status.value,
            expires_at=scholarship.expires_at,
            used_by=scholarship.used_by,
            used_at=scholarship.used_at,
            notes=scholarship.notes,
            created_by=scholarship.created_by,
            created_at=scholarship.created_at,
        )


class ScholarshipListResponse(BaseModel):
    """List of scholarships."""

    items: list[ScholarshipResponse]
    total: int


class PriceQuoteResponse(BaseModel):
    """Pricing breakdown."""

    original_price: float
    discount_amount: float
    final_price: float

    @classmethod
    def from_quote(cls, quote: PriceQuote) -> "PriceQuoteResponse":
        return cls(**quote.to_dict())


class ValidateScholarshipResponse(BaseModel):
    """Result of a successful code check."""

    valid: bool = True
    scholarship_id: UUID
    code: str
    discount_type: DiscountType
    discount_value: float
    pricing: PriceQuoteResponse


class ScholarshipStatsResponse(BaseModel):
    """Aggregated scholarship statistics."""

    total: int
    active: int
    used: int
    expired: int
    revoked: int
    utilization_rate: int = Field(description="Used over total, in percent")
    total_discount_value: float
