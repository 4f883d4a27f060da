"""FastAPI routers for enrollments.

Endpoints:
- POST /v1/enrollments - Enroll the caller (admins may enroll others)
- GET /v1/enrollments/me - Caller's enrollments
- GET /v1/enrollments/{id} - Enrollment detail (owner or staff)
- PATCH /v1/enrollments/{id}/status - Change status
- DELETE /v1/enrollments/{id} (Admin) - Delete with cleanup
- POST /v1/admin/programs/{program_id}/enrollments/bulk (Admin)
- POST /v1/admin/programs/{program_id}/enrollments/by-email (Admin)
- GET /v1/admin/programs/{program_id}/enrollments (Admin)
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from learnhub.auth.dependencies import AdminUser, CurrentUser
from learnhub.auth.permissions import UserRole, has_permission, is_admin
from learnhub.core.errors import EngineError, handle_engine_error

from .dependencies import EnrollmentManagerDep
from .schemas import (
    BatchEnrollmentResponse,
    BulkEnrollmentRequest,
    CreateEnrollmentRequest,
    EmailEnrollmentRequest,
    EnrollmentListResponse,
    EnrollmentResponse,
    UpdateStatusRequest,
)
from .service import resolve_actor


router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])
admin_router = APIRouter(
    prefix="/v1/admin/programs/{program_id}/enrollments",
    tags=["admin-enrollments"],
)


# ==============================================================================
# Student Endpoints
# ==============================================================================


@router.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll in program",
)
async def create_enrollment(
    data: CreateEnrollmentRequest,
    current_user: CurrentUser,
    manager: EnrollmentManagerDep,
) -> EnrollmentResponse:
    """Enroll the caller in a program.

    Admins may pass student_id to enroll someone else and may waive payment.
    A priced program without waiver answers 402 with the price breakdown.
    """
    admin = is_admin(current_user.role)
    if (data.student_id and data.student_id != current_user.id and not admin) or (
        data.waive_payment and not admin
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins can enroll other students or waive payment",
        )

    student_id = data.student_id or current_user.id
    try:
        enrollment = await manager.create_enrollment(
            student_id,
            data.program_id,
            data.to_options(waive_payment=data.waive_payment),
        )
    except EngineError as e:
        raise handle_engine_error(e) from e
    return EnrollmentResponse.from_enrollment(enrollment)


@router.get(
    "/me",
    response_model=EnrollmentListResponse,
    summary="My enrollments",
)
async def list_my_enrollments(
    current_user: CurrentUser,
    manager: EnrollmentManagerDep,
) -> EnrollmentListResponse:
    enrollments = await manager.list_student_enrollments(current_user.id)
    return EnrollmentListResponse(
        items=[EnrollmentResponse.from_enrollment(e) for e in enrollments],
        total=len(enrollments),
    )


@router.get(
    "/{enrollment_id}",
    response_model=EnrollmentResponse,
    summary="Get enrollment",
)
async def get_enrollment(
    enrollment_id: UUID,
    current_user: CurrentUser,
    manager: EnrollmentManagerDep,
) -> EnrollmentResponse:
    try:
        enrollment = await manager.get_enrollment(enrollment_id)
    except EngineError as e:
        raise handle_engine_error(e) from e

    if enrollment.student_id != current_user.id and not has_permission(
        current_user.role, UserRole.INSTRUCTOR
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to view this enrollment",
        )
    return EnrollmentResponse.from_enrollment(enrollment)


@router.patch(
    "/{enrollment_id}/status",
    response_model=EnrollmentResponse,
    summary="Change enrollment status",
)
async def update_enrollment_status(
    enrollment_id: UUID,
    data: UpdateStatusRequest,
    current_user: CurrentUser,
    manager: EnrollmentManagerDep,
) -> EnrollmentResponse:
    """Change status. Students may only drop their own enrollment."""
    try:
        enrollment = await manager.get_enrollment(enrollment_id)
        actor = resolve_actor(current_user.id, current_user.role, enrollment)
        enrollment = await manager.update_status(enrollment_id, data.status, actor)
    except EngineError as e:
        raise handle_engine_error(e) from e
    return EnrollmentResponse.from_enrollment(enrollment)


@router.delete(
    "/{enrollment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete enrollment",
)
async def delete_enrollment(
    enrollment_id: UUID,
    _admin: AdminUser,
    manager: EnrollmentManagerDep,
) -> None:
    try:
        await manager.delete_enrollment(enrollment_id)
    except EngineError as e:
        raise handle_engine_error(e) from e


# ==============================================================================
# Admin Endpoints
# ==============================================================================


@admin_router.post(
    "/bulk",
    response_model=BatchEnrollmentResponse,
    summary="Bulk enroll students",
)
async def bulk_enroll(
    program_id: UUID,
    data: BulkEnrollmentRequest,
    _admin: AdminUser,
    manager: EnrollmentManagerDep,
) -> BatchEnrollmentResponse:
    """Enroll existing students; failures are reported per item."""
    result = await manager.bulk_enroll(
        data.student_ids,
        program_id,
        data.to_options(waive_payment=data.waive_payment),
    )
    return BatchEnrollmentResponse.from_result(result)


@admin_router.post(
    "/by-email",
    response_model=BatchEnrollmentResponse,
    summary="Enroll students by email",
)
async def enroll_by_email(
    program_id: UUID,
    data: EmailEnrollmentRequest,
    _admin: AdminUser,
    manager: EnrollmentManagerDep,
) -> BatchEnrollmentResponse:
    """Enroll by email, creating accounts for unknown addresses on request."""
    result = await manager.enroll_by_email(
        data.to_entries(),
        program_id,
        data.to_options(
            waive_payment=data.waive_payment,
            create_missing_users=data.create_missing_users,
        ),
    )
    return BatchEnrollmentResponse.from_result(result)


@admin_router.get(
    "",
    response_model=EnrollmentListResponse,
    summary="List program enrollments",
)
async def list_program_enrollments(
    program_id: UUID,
    _admin: AdminUser,
    manager: EnrollmentManagerDep,
) -> EnrollmentListResponse:
    enrollments = await manager.list_program_enrollments(program_id)
    return EnrollmentListResponse(
        items=[EnrollmentResponse.from_enrollment(e) for e in enrollments],
        total=len(enrollments),
    )
