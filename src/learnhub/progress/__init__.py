"""Student progress tracking module.

Provides:
- Lesson start and completion events
- Module, course and program progress aggregation
- Graded assessment events
"""

from .models import (
    PROGRESS_TABLES_CQL,
    LessonProgress,
    LessonProgressStatus,
    ModuleProgress,
    Progress,
    ProgressScope,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "LessonProgress",
    "LessonProgressStatus",
    "ModuleProgress",
    "Progress",
    "ProgressScope",
]
