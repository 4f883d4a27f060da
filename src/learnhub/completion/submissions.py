# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Submission read model shared by completion rules and certificates."""

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from .models import Submission


if TYPE_CHECKING:
    from cassandra.cluster import Session


def mean_percentage(submissions: list[Submission]) -> Decimal:
    """Exact mean percentage of graded submissions (0 when there are none)."""
    graded = [s.percentage for s in submissions if s.is_graded]
    if not graded:
        return Decimal(0)
    return sum(graded, Decimal(0)) / len(graded)


def average_percentage(submissions: list[Submission]) -> Decimal:
    """Mean percentage rounded to cents, for display and certificates."""
    return mean_percentage(submissions).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class SubmissionStore:
    """Cassandra access for submissions."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._upsert = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.submissions
            (student_id, course_id, submission_id, assessment_id, status,
             percentage, graded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)
        self._list = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.submissions
            WHERE student_id = ? AND course_id = ?
        """)

    async def save(self, submission: Submission) -> None:
        """Upsert a submission (re-grading overwrites by submission id)."""
        await self.session.aexecute(
            self._upsert,
            [
                submission.student_id,
                submission.course_id,
                submission.id,
                submission.assessment_id,
                submission.status.value,
                submission.percentage,
                submission.graded_at,
            ],
        )

    async def list_for_course(self, student_id: UUID, course_id: UUID) -> list[Submission]:
        """Submissions of a student within a course."""
        rows = await self.session.aexecute(self._list, [student_id, course_id])
        return [Submission.from_row(row) for row in rows]

    async def list_graded(self, student_id: UUID, course_id: UUID) -> list[Submission]:
        """Graded submissions of a student within a course."""
        return [s for s in await self.list_for_course(student_id, course_id) if s.is_graded]
