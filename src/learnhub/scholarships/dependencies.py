"""Dependencies for scholarship routes."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from learnhub.scholarships.service import ScholarshipResolver


def get_scholarship_resolver(request: Request) -> ScholarshipResolver:
    """Get ScholarshipResolver from app state."""
    resolver = getattr(request.app.state, "scholarship_resolver", None)
    if resolver is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scholarship service unavailable",
        )
    return resolver


ScholarshipResolverDep = Annotated[
    ScholarshipResolver, Depends(get_scholarship_resolver)
]
