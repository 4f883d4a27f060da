"""Dependencies for enrollment routes."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from learnhub.enrollments.service import EnrollmentManager


def get_enrollment_manager(request: Request) -> EnrollmentManager:
    """Get EnrollmentManager from app state."""
    manager = getattr(request.app.state, "enrollment_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Enrollment service unavailable",
        )
    return manager


EnrollmentManagerDep = Annotated[EnrollmentManager, Depends(get_enrollment_manager)]
