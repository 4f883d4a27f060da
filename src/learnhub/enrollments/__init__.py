"""Program enrollments.

Only models and the store are exported here; the service and routers import
progress and scholarship modules that import this package back.
"""

from .models import (
    ENROLLMENTS_TABLES_CQL,
    CourseProgressEntry,
    CourseProgressStatus,
    Enrollment,
    EnrollmentStatus,
    EnrollOptions,
    TransitionActor,
)
from .store import EnrollmentStore


__all__ = [
    "ENROLLMENTS_TABLES_CQL",
    "CourseProgressEntry",
    "CourseProgressStatus",
    "Enrollment",
    "EnrollmentStatus",
    "EnrollmentStore",
    "EnrollOptions",
    "TransitionActor",
]
