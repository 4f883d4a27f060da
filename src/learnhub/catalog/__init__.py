"""Read-only program catalog: programs, courses, modules, lessons."""

from .models import (
    CATALOG_TABLES_CQL,
    CompletionCriteria,
    Course,
    Lesson,
    Module,
    Program,
)
from .service import CatalogReader


__all__ = [
    "CATALOG_TABLES_CQL",
    "CatalogReader",
    "CompletionCriteria",
    "Course",
    "Lesson",
    "Module",
    "Program",
]
