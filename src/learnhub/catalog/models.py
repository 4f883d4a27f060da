"""Database models for the read-only program catalog.

Cassandra table definitions for:
- Programs: priced bundles of courses with an optional enrollment limit
- Courses: completion criteria, estimated hours, owning instructor
- Modules by course / lessons by module: ordered catalog tree
- Lessons: reverse lookup lesson -> module -> course
- Course enrollment counts: COUNTER table

Catalog authoring happens elsewhere; the engine only reads these tables
(plus the counter).
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from learnhub.core.references import Reference, Resolved, ref_id


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

PROGRAM_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.programs (
    id UUID PRIMARY KEY,
    title TEXT,
    slug TEXT,
    price DECIMAL,
    currency TEXT,
    enrollment_limit INT,
    is_published BOOLEAN,
    course_ids LIST<UUID>,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    program_id UUID,
    title TEXT,
    instructor_id UUID,
    is_published BOOLEAN,
    position INT,
    estimated_hours INT,
    minimum_quiz_score INT,
    required_projects INT,
    capstone_required BOOLEAN,
    created_at TIMESTAMP
)
"""

# Ordered tree: modules under a course, lessons under a module
MODULES_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.modules_by_course (
    course_id UUID,
    position INT,
    module_id UUID,
    title TEXT,
    PRIMARY KEY (course_id, position, module_id)
) WITH CLUSTERING ORDER BY (position ASC, module_id ASC)
"""

LESSONS_BY_MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons_by_module (
    module_id UUID,
    position INT,
    lesson_id UUID,
    title TEXT,
    PRIMARY KEY (module_id, position, lesson_id)
) WITH CLUSTERING ORDER BY (position ASC, lesson_id ASC)
"""

LESSON_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    id UUID PRIMARY KEY,
    module_id UUID,
    course_id UUID,
    title TEXT,
    position INT
)
"""

COURSE_ENROLLMENT_COUNTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_enrollment_counts (
    course_id UUID PRIMARY KEY,
    current_enrollment COUNTER
)
"""

CATALOG_TABLES_CQL = [
    PROGRAM_TABLE_CQL,
    COURSE_TABLE_CQL,
    MODULES_BY_COURSE_TABLE_CQL,
    LESSONS_BY_MODULE_TABLE_CQL,
    LESSON_TABLE_CQL,
    COURSE_ENROLLMENT_COUNTS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Program:
    """Priced bundle of courses."""

    id: UUID
    title: str
    price: Decimal = Decimal(0)
    currency: str = "USD"
    enrollment_limit: int | None = None
    is_published: bool = False
    course_ids: list[UUID] = field(default_factory=list)
    slug: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Program":
        """Create Program from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title or "",
            price=row.price if row.price is not None else Decimal(0),
            currency=row.currency or "USD",
            enrollment_limit=row.enrollment_limit,
            is_published=bool(row.is_published),
            course_ids=list(row.course_ids or []),
            slug=row.slug,
        )

    @property
    def has_enrollment_limit(self) -> bool:
        return self.enrollment_limit is not None and self.enrollment_limit > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "price": self.price,
            "currency": self.currency,
            "enrollment_limit": self.enrollment_limit,
            "is_published": self.is_published,
            "course_ids": self.course_ids,
        }

    def __repr__(self) -> str:
        return f"<Program {self.title} ({len(self.course_ids)} courses)>"


@dataclass(frozen=True)
class CompletionCriteria:
    """Submission-based thresholds for course completion."""

    minimum_quiz_score: int = 70
    required_projects: int = 0
    capstone_required: bool = False


@dataclass
class Course:
    """Course within a program.

    `program` is a Reference until the owning Program is loaded.
    """

    id: UUID
    program: Reference[Program] | Resolved[Program]
    title: str
    instructor_id: UUID | None = None
    is_published: bool = True
    position: int = 0
    estimated_hours: int = 0
    completion_criteria: CompletionCriteria = field(default_factory=CompletionCriteria)

    @property
    def program_id(self) -> UUID:
        return ref_id(self.program)

    @classmethod
    def from_row(cls, row: Any) -> "Course":
        """Create Course from Cassandra row."""
        defaults = CompletionCriteria()
        return cls(
            id=row.id,
            program=Reference(row.program_id),
            title=row.title or "",
            instructor_id=row.instructor_id,
            is_published=row.is_published if row.is_published is not None else True,
            position=row.position or 0,
            estimated_hours=row.estimated_hours or 0,
            completion_criteria=CompletionCriteria(
                minimum_quiz_score=row.minimum_quiz_score
                if row.minimum_quiz_score is not None
                else defaults.minimum_quiz_score,
                required_projects=row.required_projects or 0,
                capstone_required=bool(row.capstone_required),
            ),
        )

    def __repr__(self) -> str:
        return f"<Course {self.title}>"


@dataclass(frozen=True)
class Module:
    """Catalog module (ordered under a course)."""

    id: UUID
    course_id: UUID
    title: str
    position: int = 0

    @classmethod
    def from_row(cls, row: Any) -> "Module":
        """Create Module from a modules_by_course row."""
        return cls(
            id=row.module_id,
            course_id=row.course_id,
            title=row.title or "",
            position=row.position or 0,
        )


@dataclass(frozen=True)
class Lesson:
    """Catalog lesson, the leaf counted for progress."""

    id: UUID
    module_id: UUID
    course_id: UUID
    title: str
    position: int = 0

    @classmethod
    def from_row(cls, row: Any) -> "Lesson":
        """Create Lesson from a lessons row."""
        return cls(
            id=row.id,
            module_id=row.module_id,
            course_id=row.course_id,
            title=row.title or "",
            position=row.position or 0,
        )
