# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Catalog reader.

Read-only access to programs, courses, modules and lessons, plus the course
enrollment COUNTER. Lesson counts are always read from the live catalog.
The instructor-id cache in Redis is advisory: a miss or a Redis failure
falls back to Cassandra and nothing decides correctness from it.
"""

import json
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learnhub.core.redis import catalog_cache_key
from learnhub.core.references import Resolved

from .models import Course, Lesson, Module, Program


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300


class CatalogReader:
    """Service for catalog reads."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        redis: "Redis | None" = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
    ):
        """Initialize with Cassandra session and optional Redis cache."""
        self.session = session
        self.keyspace = keyspace
        self.redis = redis
        self.cache_ttl_seconds = cache_ttl_seconds
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_program = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.programs WHERE id = ?"
        )
        self._get_course = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.courses WHERE id = ?"
        )
        self._get_lesson = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.lessons WHERE id = ?"
        )
        self._get_course_modules = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.modules_by_course
            WHERE course_id = ?
        """)
        self._count_module_lessons = self.session.prepare(f"""
            SELECT COUNT(*) AS total FROM {self.keyspace}.lessons_by_module
            WHERE module_id = ?
        """)

        # Course enrollment counter
        self._incr_enrollment = self.session.prepare(f"""
            UPDATE {self.keyspace}.course_enrollment_counts
            SET current_enrollment = current_enrollment + 1
            WHERE course_id = ?
        """)
        self._decr_enrollment = self.session.prepare(f"""
            UPDATE {self.keyspace}.course_enrollment_counts
            SET current_enrollment = current_enrollment - 1
            WHERE course_id = ?
        """)
        self._get_enrollment_count = self.session.prepare(f"""
            SELECT current_enrollment FROM {self.keyspace}.course_enrollment_counts
            WHERE course_id = ?
        """)

    # ==========================================================================
    # Programs and Courses
    # ==========================================================================

    async def get_program(self, program_id: UUID) -> Program | None:
        """Get program by ID."""
        result = await self.session.aexecute(self._get_program, [program_id])
        row = result.one()
        return Program.from_row(row) if row else None

    async def get_course(self, course_id: UUID) -> Course | None:
        """Get course by ID (its program stays an unloaded reference)."""
        result = await self.session.aexecute(self._get_course, [course_id])
        row = result.one()
        if not row:
            return None
        return Course.from_row(row)

    async def list_program_courses(self, program: Program) -> list[Course]:
        """Courses currently attached to the program, in program order.

        Course ids that no longer resolve are skipped.
        """
        courses: list[Course] = []
        for course_id in program.course_ids:
            course = await self.get_course(course_id)
            if course is None:
                logger.warning(
                    "program_course_missing",
                    program_id=str(program.id),
                    course_id=str(course_id),
                )
                continue
            course.program = Resolved(program)
            courses.append(course)
        return courses

    # ==========================================================================
    # Modules and Lessons
    # ==========================================================================

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        """Get lesson by ID (with its module and course ids)."""
        result = await self.session.aexecute(self._get_lesson, [lesson_id])
        row = result.one()
        return Lesson.from_row(row) if row else None

    async def list_course_modules(self, course_id: UUID) -> list[Module]:
        """Modules of a course, ordered by position."""
        rows = await self.session.aexecute(self._get_course_modules, [course_id])
        return [Module.from_row(row) for row in rows]

    async def count_module_lessons(self, module_id: UUID) -> int:
        """Current number of lessons in a module."""
        result = await self.session.aexecute(self._count_module_lessons, [module_id])
        row = result.one()
        return int(row.total) if row and row.total else 0

    async def count_course_lessons(self, course_id: UUID) -> int:
        """Lessons under a course, counted transitively through its modules."""
        total = 0
        for module in await self.list_course_modules(course_id):
            total += await self.count_module_lessons(module.id)
        return total

    # ==========================================================================
    # Instructors (advisory cache)
    # ==========================================================================

    async def get_instructor_ids(self, program: Program) -> list[UUID]:
        """Distinct instructors owning a course in the program."""
        cache_key = catalog_cache_key("program", program.id, "instructors")

        if self.redis:
            try:
                cached = await self.redis.get(cache_key)
                if cached:
                    return [UUID(value) for value in json.loads(cached)]
            except Exception as e:
                logger.debug("catalog_cache_read_failed", key=cache_key, error=str(e))

        instructor_ids: list[UUID] = []
        for course in await self.list_program_courses(program):
            if course.instructor_id and course.instructor_id not in instructor_ids:
                instructor_ids.append(course.instructor_id)

        if self.redis:
            try:
                await self.redis.setex(
                    cache_key,
                    self.cache_ttl_seconds,
                    json.dumps([str(value) for value in instructor_ids]),
                )
            except Exception as e:
                logger.debug("catalog_cache_write_failed", key=cache_key, error=str(e))

        return instructor_ids

    # ==========================================================================
    # Enrollment Counter
    # ==========================================================================

    async def increment_enrollment(self, course_id: UUID) -> None:
        """Increment a course's current enrollment counter."""
        await self.session.aexecute(self._incr_enrollment, [course_id])

    async def decrement_enrollment(self, course_id: UUID) -> None:
        """Decrement a course's current enrollment counter."""
        await self.session.aexecute(self._decr_enrollment, [course_id])

    async def get_enrollment_count(self, course_id: UUID) -> int:
        """Current enrollment counter for a course."""
        result = await self.session.aexecute(self._get_enrollment_count, [course_id])
        row = result.one()
        return int(row.current_enrollment) if row and row.current_enrollment else 0
