"""FastAPI router for scholarships.

Endpoints:
- POST /v1/scholarships (Admin) - Create scholarship
- POST /v1/scholarships/bulk (Admin) - Generate codes in bulk
- GET /v1/scholarships/stats (Admin) - Statistics
- GET /v1/scholarships/program/{program_id} (Admin) - List for program
- POST /v1/scholarships/validate (Authenticated) - Check a code
- GET/PATCH/DELETE /v1/scholarships/{id} (Admin)
- POST /v1/scholarships/{id}/revoke (Admin)
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from learnhub.auth.dependencies import AdminUser, CurrentUser
from learnhub.core.errors import EngineError, NotFoundError, handle_engine_error

from .dependencies import ScholarshipResolverDep
from .schemas import (
    BulkGenerateRequest,
    CreateScholarshipRequest,
    PriceQuoteResponse,
    ScholarshipListResponse,
    ScholarshipResponse,
    ScholarshipStatsResponse,
    UpdateScholarshipRequest,
    ValidateScholarshipRequest,
    ValidateScholarshipResponse,
)


router = APIRouter(prefix="/v1/scholarships", tags=["scholarships"])


@router.post(
    "",
    response_model=ScholarshipResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create scholarship",
)
async def create_scholarship(
    data: CreateScholarshipRequest,
    admin: AdminUser,
    resolver: ScholarshipResolverDep,
) -> ScholarshipResponse:
    """Create a scholarship, optionally restricted to one student email."""
    try:
        scholarship = await resolver.create(
            program_id=data.program_id,
            discount_type=data.discount_type,
            discount_value=data.discount_value,
            created_by=admin.id,
            student_email=data.student_email,
            expires_at=data.expires_at,
            notes=data.notes,
            send_email=data.send_email,
        )
    except EngineError as e:
        raise handle_engine_error(e) from e
    return ScholarshipResponse.from_scholarship(scholarship)


@router.post(
    "/bulk",
    response_model=ScholarshipListResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate scholarships in bulk",
)
async def bulk_generate_scholarships(
    data: BulkGenerateRequest,
    admin: AdminUser,
    resolver: ScholarshipResolverDep,
) -> ScholarshipListResponse:
    """Generate independent unrestricted codes for a program."""
    try:
        scholarships = await resolver.bulk_generate(
            program_id=data.program_id,
            quantity=data.quantity,
            discount_type=data.discount_type,
            discount_value=data.discount_value,
            created_by=admin.id,
            expires_at=data.expires_at,
        )
    except EngineError as e:
        raise handle_engine_error(e) from e

    items = [ScholarshipResponse.from_scholarship(s) for s in scholarships]
    return ScholarshipListResponse(items=items, total=len(items))


@router.get(
    "/stats",
    response_model=ScholarshipStatsResponse,
    summary="Scholarship statistics",
)
async def get_scholarship_stats(
    _admin: AdminUser,
    resolver: ScholarshipResolverDep,
    program_id: UUID | None = Query(None),
) -> ScholarshipStatsResponse:
    """Totals per status, utilization rate and total discount granted."""
    stats = await resolver.stats(program_id)
    return ScholarshipStatsResponse(**stats)


@router.get(
    "/program/{program_id}",
    response_model=ScholarshipListResponse,
    summary="List scholarships for a program",
)
async def list_program_scholarships(
    program_id: UUID,
    _admin: AdminUser,
    resolver: ScholarshipResolverDep,
) -> ScholarshipListResponse:
    """List scholarships of a program, newest first."""
    scholarships = await resolver.list_for_program(program_id)
    items = [ScholarshipResponse.from_scholarship(s) for s in scholarships]
    return ScholarshipListResponse(items=items, total=len(items))


@router.post(
    "/validate",
    response_model=ValidateScholarshipResponse,
    summary="Validate scholarship code",
)
async def validate_scholarship(
    data: ValidateScholarshipRequest,
    current_user: CurrentUser,
    resolver: ScholarshipResolverDep,
) -> ValidateScholarshipResponse:
    """Check a code for the caller and return the resulting price."""
    try:
        scholarship = await resolver.validate(
            data.code, data.program_id, current_user.email
        )
        program = await resolver.catalog.get_program(data.program_id)
        if not program:
            raise NotFoundError("Program not found", "program_not_found")
    except EngineError as e:
        raise handle_engine_error(e) from e

    quote = resolver.compute_discount(scholarship, program.price)
    return ValidateScholarshipResponse(
        scholarship_id=scholarship.id,
        code=scholarship.code,
        discount_type=scholarship.discount_type,
        discount_value=float(scholarship.discount_value),
        pricing=PriceQuoteResponse.from_quote(quote),
    )


@router.get(
    "/{scholarship_id}",
    response_model=ScholarshipResponse,
    summary="Get scholarship",
)
async def get_scholarship(
    scholarship_id: UUID,
    _admin: AdminUser,
    resolver: ScholarshipResolverDep,
) -> ScholarshipResponse:
    """Get scholarship details."""
    try:
        scholarship = await resolver.get_or_raise(scholarship_id)
    except EngineError as e:
        raise handle_engine_error(e) from e
    return ScholarshipResponse.from_scholarship(scholarship)


@router.patch(
    "/{scholarship_id}",
    response_model=ScholarshipResponse,
    summary="Update scholarship",
)
async def update_scholarship(
    scholarship_id: UUID,
    data: UpdateScholarshipRequest,
    _admin: AdminUser,
    resolver: ScholarshipResolverDep,
) -> ScholarshipResponse:
    """Update a scholarship that has not been used."""
    try:
        scholarship = await resolver.update(
            scholarship_id, data.model_dump(exclude_unset=True)
        )
    except EngineError as e:
        raise handle_engine_error(e) from e
    return ScholarshipResponse.from_scholarship(scholarship)


@router.delete(
    "/{scholarship_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete scholarship",
)
async def delete_scholarship(
    scholarship_id: UUID,
    _admin: AdminUser,
    resolver: ScholarshipResolverDep,
) -> None:
    """Delete a scholarship that has not been used."""
    try:
        await resolver.delete(scholarship_id)
    except EngineError as e:
        raise handle_engine_error(e) from e


@router.post(
    "/{scholarship_id}/revoke",
    response_model=ScholarshipResponse,
    summary="Revoke scholarship",
)
async def revoke_scholarship(
    scholarship_id: UUID,
    _admin: AdminUser,
    resolver: ScholarshipResolverDep,
) -> ScholarshipResponse:
    """Revoke an active scholarship."""
    try:
        scholarship = await resolver.revoke(scholarship_id)
    except EngineError as e:
        raise handle_engine_error(e) from e
    return ScholarshipResponse.from_scholarship(scholarship)
