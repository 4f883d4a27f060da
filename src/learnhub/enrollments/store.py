# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Enrollment persistence.

Reads and writes enrollment rows, their course snapshot, the lookup tables,
the (student, program) claim and the program seat counter. Shared by the
enrollment manager and the progress, completion and certificate services,
which only need the read model plus snapshot updates.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learnhub.core.errors import ConflictError, UnavailableError

from .models import (
    CourseProgressEntry,
    CourseProgressStatus,
    Enrollment,
    EnrollmentStatus,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)

DEFAULT_CAS_MAX_ATTEMPTS = 8


class EnrollmentStore:
    """Cassandra access for enrollments."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        cas_max_attempts: int = DEFAULT_CAS_MAX_ATTEMPTS,
    ):
        """Initialize with Cassandra session.

        Args:
            session: Cassandra session with aexecute support
            keyspace: Target keyspace
            cas_max_attempts: Retry budget for the seat counter compare-and-set
        """
        self.session = session
        self.keyspace = keyspace
        self.cas_max_attempts = cas_max_attempts
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Enrollment rows
        self._insert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (id, student_id, program_id, status, enrollment_date, completion_date,
             cohort, notes, scholarship_id, final_price, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._get_enrollment = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.enrollments WHERE id = ?"
        )
        # CAS on the status the caller read
        self._update_status = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET status = ?, completion_date = ?, updated_at = ?
            WHERE id = ?
            IF status = ?
        """)
        self._delete_enrollment = self.session.prepare(
            f"DELETE FROM {self.keyspace}.enrollments WHERE id = ?"
        )

        # Course snapshot
        self._insert_entry = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollment_course_progress
            (enrollment_id, position, course_id, status, lessons_completed,
             total_lessons, completion_date)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)
        self._get_entries = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollment_course_progress
            WHERE enrollment_id = ?
        """)
        self._delete_entries = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollment_course_progress
            WHERE enrollment_id = ?
        """)

        # Pair claim
        self._claim_pair = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_pair
            (student_id, program_id, enrollment_id)
            VALUES (?, ?, ?)
            IF NOT EXISTS
        """)
        self._get_pair = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_pair
            WHERE student_id = ? AND program_id = ?
        """)
        self._release_pair = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments_by_pair
            WHERE student_id = ? AND program_id = ?
            IF enrollment_id = ?
        """)

        # Lookups
        self._insert_by_student = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_student
            (student_id, enrollment_date, enrollment_id, program_id)
            VALUES (?, ?, ?, ?)
        """)
        self._insert_by_program = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_program
            (program_id, enrollment_date, enrollment_id, student_id)
            VALUES (?, ?, ?, ?)
        """)
        self._list_by_student = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_student
            WHERE student_id = ?
        """)
        self._list_by_program = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_program
            WHERE program_id = ?
        """)
        self._delete_by_student = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments_by_student
            WHERE student_id = ? AND enrollment_date = ? AND enrollment_id = ?
        """)
        self._delete_by_program = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments_by_program
            WHERE program_id = ? AND enrollment_date = ? AND enrollment_id = ?
        """)

        # Seat counter
        self._get_reserved = self.session.prepare(f"""
            SELECT reserved FROM {self.keyspace}.program_capacity
            WHERE program_id = ?
        """)
        self._seed_reserved = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.program_capacity (program_id, reserved)
            VALUES (?, ?)
            IF NOT EXISTS
        """)
        self._cas_reserved = self.session.prepare(f"""
            UPDATE {self.keyspace}.program_capacity
            SET reserved = ?
            WHERE program_id = ?
            IF reserved = ?
        """)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        """Get enrollment with its course snapshot."""
        result = await self.session.aexecute(self._get_enrollment, [enrollment_id])
        row = result.one()
        if not row:
            return None

        entry_rows = await self.session.aexecute(self._get_entries, [enrollment_id])
        entries = [CourseProgressEntry.from_row(r) for r in entry_rows]
        return Enrollment.from_row(row, entries)

    async def find_by_pair(
        self, student_id: UUID, program_id: UUID
    ) -> Enrollment | None:
        """Get the enrollment of a student in a program, if any."""
        result = await self.session.aexecute(self._get_pair, [student_id, program_id])
        row = result.one()
        if not row:
            return None
        return await self.get(row.enrollment_id)

    async def list_for_student(self, student_id: UUID) -> list[Enrollment]:
        """Enrollments of a student, newest first."""
        rows = await self.session.aexecute(self._list_by_student, [student_id])
        return await self._load_many(row.enrollment_id for row in rows)

    async def list_for_program(self, program_id: UUID) -> list[Enrollment]:
        """Enrollments in a program, newest first."""
        rows = await self.session.aexecute(self._list_by_program, [program_id])
        return await self._load_many(row.enrollment_id for row in rows)

    async def _load_many(self, enrollment_ids: Iterable[UUID]) -> list[Enrollment]:
        enrollments = []
        for enrollment_id in enrollment_ids:
            enrollment = await self.get(enrollment_id)
            if enrollment:
                enrollments.append(enrollment)
        return enrollments

    # ==========================================================================
    # Pair Claim
    # ==========================================================================

    async def claim_pair(
        self, student_id: UUID, program_id: UUID, enrollment_id: UUID
    ) -> bool:
        """Claim the (student, program) pair. False when already taken."""
        result = await self.session.aexecute(
            self._claim_pair, [student_id, program_id, enrollment_id]
        )
        return bool(result.was_applied)

    async def release_pair(
        self, student_id: UUID, program_id: UUID, enrollment_id: UUID
    ) -> None:
        """Release a pair claim held by this enrollment."""
        await self.session.aexecute(
            self._release_pair, [student_id, program_id, enrollment_id]
        )

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def insert(self, enrollment: Enrollment) -> None:
        """Persist a new enrollment, its snapshot rows and lookup rows."""
        await self.session.aexecute(
            self._insert_enrollment,
            [
                enrollment.id,
                enrollment.student_id,
                enrollment.program_id,
                enrollment.status.value,
                enrollment.enrollment_date,
                enrollment.completion_date,
                enrollment.cohort,
                enrollment.notes,
                enrollment.scholarship_id,
                enrollment.final_price,
                enrollment.updated_at or enrollment.enrollment_date,
            ],
        )
        for entry in enrollment.courses_progress:
            await self.save_course_entry(enrollment.id, entry)

        await self.session.aexecute(
            self._insert_by_student,
            [
                enrollment.student_id,
                enrollment.enrollment_date,
                enrollment.id,
                enrollment.program_id,
            ],
        )
        await self.session.aexecute(
            self._insert_by_program,
            [
                enrollment.program_id,
                enrollment.enrollment_date,
                enrollment.id,
                enrollment.student_id,
            ],
        )

    async def save_course_entry(
        self, enrollment_id: UUID, entry: CourseProgressEntry
    ) -> None:
        """Upsert one snapshot entry."""
        await self.session.aexecute(
            self._insert_entry,
            [
                enrollment_id,
                entry.position,
                entry.course_id,
                entry.status.value,
                entry.lessons_completed,
                entry.total_lessons,
                entry.completion_date,
            ],
        )

    async def set_status(
        self,
        enrollment: Enrollment,
        status: EnrollmentStatus,
        completion_date: datetime | None = None,
    ) -> Enrollment:
        """Persist a status change (transition rules are checked by callers).

        Applied only while the stored status still equals `enrollment.status`.

        Raises:
            ConflictError: The status was changed by another writer
        """
        now = datetime.now(UTC)
        applied = await self._cas_status(enrollment, status, completion_date, now)
        if not applied:
            logger.info(
                "enrollment_status_cas_lost",
                enrollment_id=str(enrollment.id),
                expected=enrollment.status.value,
                status=status.value,
            )
            raise ConflictError(
                "Enrollment status was changed concurrently, reload and retry",
                "enrollment_status_changed",
            )
        return enrollment

    async def _cas_status(
        self,
        enrollment: Enrollment,
        status: EnrollmentStatus,
        completion_date: datetime | None,
        now: datetime,
    ) -> bool:
        """Conditional status write; updates `enrollment` only when applied."""
        result = await self.session.aexecute(
            self._update_status,
            [status.value, completion_date, now, enrollment.id, enrollment.status.value],
        )
        if not result.was_applied:
            return False
        enrollment.status = status
        enrollment.completion_date = completion_date
        enrollment.updated_at = now
        return True

    async def complete_entry(
        self,
        enrollment: Enrollment,
        entry: CourseProgressEntry,
        completed_at: datetime,
    ) -> bool:
        """Mark a snapshot entry COMPLETED.

        When every entry is then COMPLETED, the enrollment flips from ACTIVE
        to COMPLETED with a compare-and-set. Only the writer whose CAS
        applies sees True; concurrent completions and a racing status change
        see False.

        Returns:
            True when this call completed the enrollment itself
        """
        entry.status = CourseProgressStatus.COMPLETED
        entry.completion_date = entry.completion_date or completed_at
        await self.save_course_entry(enrollment.id, entry)

        # Only ACTIVE enrollments are completed automatically
        if (
            enrollment.status != EnrollmentStatus.ACTIVE
            or not enrollment.all_courses_completed
        ):
            return False

        applied = await self._cas_status(
            enrollment, EnrollmentStatus.COMPLETED, completed_at, completed_at
        )
        if not applied:
            logger.info(
                "enrollment_completion_cas_lost", enrollment_id=str(enrollment.id)
            )
        return applied

    async def delete(self, enrollment: Enrollment) -> None:
        """Delete enrollment rows, snapshot, lookups and the pair claim."""
        await self.session.aexecute(self._delete_entries, [enrollment.id])
        await self.session.aexecute(
            self._delete_by_student,
            [enrollment.student_id, enrollment.enrollment_date, enrollment.id],
        )
        await self.session.aexecute(
            self._delete_by_program,
            [enrollment.program_id, enrollment.enrollment_date, enrollment.id],
        )
        await self.session.aexecute(self._delete_enrollment, [enrollment.id])
        await self.release_pair(
            enrollment.student_id, enrollment.program_id, enrollment.id
        )

    # ==========================================================================
    # Capacity Seats
    # ==========================================================================

    async def reserved_seats(self, program_id: UUID) -> int:
        """Current seat count, seeding the counter from live enrollments."""
        result = await self.session.aexecute(self._get_reserved, [program_id])
        row = result.one()
        if row is not None:
            return row.reserved or 0

        holding = [
            enrollment
            for enrollment in await self.list_for_program(program_id)
            if enrollment.holds_seat
        ]
        await self.session.aexecute(self._seed_reserved, [program_id, len(holding)])

        # Another writer may have seeded first; read back the stored value
        result = await self.session.aexecute(self._get_reserved, [program_id])
        row = result.one()
        return (row.reserved or 0) if row else len(holding)

    async def reserve_seat(self, program_id: UUID, limit: int | None) -> None:
        """Take one seat, refusing once `limit` seats are taken.

        Raises:
            UnavailableError: Program is full
            ConflictError: Counter contention outlasted the retry budget
        """
        for attempt in range(1, self.cas_max_attempts + 1):
            reserved = await self.reserved_seats(program_id)
            if limit is not None and limit > 0 and reserved >= limit:
                raise UnavailableError("Program is full", "program_full")

            result = await self.session.aexecute(
                self._cas_reserved, [reserved + 1, program_id, reserved]
            )
            if result.was_applied:
                return
            logger.debug(
                "capacity_cas_retry", program_id=str(program_id), attempt=attempt
            )

        logger.warning("capacity_cas_exhausted", program_id=str(program_id))
        raise ConflictError(
            "Enrollment is busy for this program, try again", "capacity_contention"
        )

    async def release_seat(self, program_id: UUID) -> None:
        """Give back one seat (never below zero)."""
        for attempt in range(1, self.cas_max_attempts + 1):
            result = await self.session.aexecute(self._get_reserved, [program_id])
            row = result.one()
            reserved = (row.reserved or 0) if row else 0
            if reserved <= 0:
                return

            result = await self.session.aexecute(
                self._cas_reserved, [reserved - 1, program_id, reserved]
            )
            if result.was_applied:
                return
            logger.debug(
                "capacity_release_retry", program_id=str(program_id), attempt=attempt
            )

        logger.error("capacity_release_exhausted", program_id=str(program_id))
        raise ConflictError(
            "Could not release enrollment seat", "capacity_contention"
        )
