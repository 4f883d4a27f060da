"""FastAPI router for certificates.

Endpoints:
- POST /v1/certificates (Admin) - Issue certificate
- POST /v1/certificates/{id}/revoke (Admin) - Revoke certificate
- GET /v1/certificates/verify/{id} (Public) - Verify certificate
- GET /v1/certificates/me (Authenticated) - My certificates
- GET /v1/certificates/course/{id} (Instructor+) - Certificates for a course
- GET /v1/certificates/program/{id} (Instructor+) - Certificates for a program
"""

from uuid import UUID

from fastapi import APIRouter, status

from learnhub.auth.dependencies import AdminUser, CurrentUser, InstructorUser
from learnhub.core.errors import EngineError, handle_engine_error

from .dependencies import CertificateIssuerDep
from .schemas import (
    CertificateListResponse,
    CertificateResponse,
    IssueCertificateRequest,
    RevokeCertificateRequest,
    VerifyCertificateResponse,
)


router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


@router.post(
    "",
    response_model=CertificateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue certificate",
)
async def issue_certificate(
    data: IssueCertificateRequest,
    admin: AdminUser,
    issuer: CertificateIssuerDep,
) -> CertificateResponse:
    """Issue a certificate. One per student per course and per program."""
    try:
        certificate = await issuer.issue(
            student_id=data.student_id,
            course_id=data.course_id,
            program_id=data.program_id,
            grade=data.grade,
            final_score=data.final_score,
            pdf_url=data.pdf_url,
            issued_by=admin.id,
            achievements=data.achievements,
        )
    except EngineError as e:
        raise handle_engine_error(e) from e
    return CertificateResponse.from_certificate(certificate)


@router.post(
    "/{certificate_id}/revoke",
    response_model=CertificateResponse,
    summary="Revoke certificate",
)
async def revoke_certificate(
    certificate_id: UUID,
    data: RevokeCertificateRequest,
    _admin: AdminUser,
    issuer: CertificateIssuerDep,
) -> CertificateResponse:
    """Revoke an issued certificate."""
    try:
        certificate = await issuer.revoke(certificate_id, data.reason)
    except EngineError as e:
        raise handle_engine_error(e) from e
    return CertificateResponse.from_certificate(certificate)


@router.get(
    "/verify/{certificate_id}",
    response_model=VerifyCertificateResponse,
    summary="Verify certificate",
)
async def verify_certificate(
    certificate_id: UUID,
    issuer: CertificateIssuerDep,
) -> VerifyCertificateResponse:
    """Public verification. No authentication required."""
    try:
        payload = await issuer.verify(certificate_id)
    except EngineError as e:
        raise handle_engine_error(e) from e
    return VerifyCertificateResponse(**payload)


@router.get(
    "/me",
    response_model=CertificateListResponse,
    summary="My certificates",
)
async def list_my_certificates(
    current_user: CurrentUser,
    issuer: CertificateIssuerDep,
) -> CertificateListResponse:
    """Certificates of the caller."""
    certificates = await issuer.list_for_student(current_user.id)
    items = [CertificateResponse.from_certificate(c) for c in certificates]
    return CertificateListResponse(items=items, total=len(items))


@router.get(
    "/course/{course_id}",
    response_model=CertificateListResponse,
    summary="Certificates for a course",
)
async def list_course_certificates(
    course_id: UUID,
    _user: InstructorUser,
    issuer: CertificateIssuerDep,
) -> CertificateListResponse:
    """Certificates naming a course."""
    certificates = await issuer.list_for_course(course_id)
    items = [CertificateResponse.from_certificate(c) for c in certificates]
    return CertificateListResponse(items=items, total=len(items))


@router.get(
    "/program/{program_id}",
    response_model=CertificateListResponse,
    summary="Certificates for a program",
)
async def list_program_certificates(
    program_id: UUID,
    _user: InstructorUser,
    issuer: CertificateIssuerDep,
) -> CertificateListResponse:
    """Certificates naming a program."""
    certificates = await issuer.list_for_program(program_id)
    items = [CertificateResponse.from_certificate(c) for c in certificates]
    return CertificateListResponse(items=items, total=len(items))
