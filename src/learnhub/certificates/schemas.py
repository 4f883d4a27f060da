"""Pydantic schemas for certificates."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from .models import Certificate


class IssueCertificateRequest(BaseModel):
    """Issue a certificate for a course and/or a program."""

    student_id: UUID
    course_id: UUID | None = None
    program_id: UUID | None = None
    grade: str | None = Field(None, max_length=20)
    final_score: float | None = Field(None, ge=0, le=100)
    pdf_url: str | None = Field(None, max_length=500)
    achievements: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def require_scope(self) -> "IssueCertificateRequest":
        if self.course_id is None and self.program_id is None:
            msg = "course_id or program_id is required"
            raise ValueError(msg)
        return self


class RevokeCertificateRequest(BaseModel):
    """Revocation reason (optional)."""

    reason: str | None = Field(None, max_length=500)


class CertificateResponse(BaseModel):
    """Certificate details."""

    id: UUID
    student_id: UUID
    course_id: UUID | None = None
    program_id: UUID | None = None
    certificate_number: str
    verification_code: str
    status: str
    student_name: str
    course_name: str | None = None
    program_name: str | None = None
    issue_date: datetime
    completion_date: datetime
    grade: str | None = None
    final_score: float | None = None
    pdf_url: str | None = None
    achievements: list[str] = Field(default_factory=list)
    metadata: dict[str, float] = Field(default_factory=dict)
    revoked_at: datetime | None = None
    revocation_reason: str | None = None

    @classmethod
    def from_certificate(cls, certificate: Certificate) -> "CertificateResponse":
        """Create response from Certificate model."""
        return cls(
            id=certificate.id,
            student_id=certificate.student_id,
            course_id=certificate.course_id,
            program_id=certificate.program_id,
            certificate_number=certificate.certificate_number,
            verification_code=certificate.verification_code,
            status=certificate.status.value,
            student_name=certificate.student_name,
            course_name=certificate.course_name,
            program_name=certificate.program_name,
            issue_date=certificate.issue_date,
            completion_date=certificate.completion_date,
            grade=certificate.grade,
            final_score=certificate.final_score,
            pdf_url=certificate.pdf_url,
            achievements=certificate.achievements,
            metadata=certificate.metadata,
            revoked_at=certificate.revoked_at,
            revocation_reason=certificate.revocation_reason,
        )


class CertificateListResponse(BaseModel):
    """List of certificates."""

    items: list[CertificateResponse]
    total: int


class VerifyCertificateResponse(BaseModel):
    """Public verification result."""

    is_valid: bool
    status: str
    certificate_number: str
    student_name: str
    course_name: str | None = None
    program_name: str | None = None
    completion_date: datetime
    issue_date: datetime
    grade: str | None = None
    final_score: float | None = None
    metadata: dict[str, float] = Field(default_factory=dict)
