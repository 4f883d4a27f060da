"""FastAPI dependencies for progress tracking.

Provides dependency injection for:
- Progress tracker
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import ProgressTracker


async def get_progress_tracker(request: Request) -> ProgressTracker:
    """Get progress tracker from app state.

    Args:
        request: FastAPI request

    Returns:
        ProgressTracker instance
    """
    app_state = request.app.state
    if not hasattr(app_state, "progress_tracker") or not app_state.progress_tracker:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress service unavailable",
        )
    return app_state.progress_tracker


# Type alias for dependency injection
ProgressTrackerDep = Annotated[ProgressTracker, Depends(get_progress_tracker)]
