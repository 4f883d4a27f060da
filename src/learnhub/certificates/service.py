# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Certificate issuer.

Business logic for:
- Issuing course and/or program certificates (unique per student and scope)
- Revoking an issued certificate (CAS on status)
- Public verification and listings
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from learnhub.completion.submissions import average_percentage
from learnhub.core.errors import ConflictError, NotFoundError, ValidationError
from learnhub.notifications.models import NotificationCategory

from .models import Certificate, CertificateStatus


if TYPE_CHECKING:
    from learnhub.auth.service import UserDirectory
    from learnhub.catalog.models import Course, Program
    from learnhub.catalog.service import CatalogReader
    from learnhub.completion.submissions import SubmissionStore
    from learnhub.core.engine import EngineContext
    from learnhub.enrollments.store import EnrollmentStore


logger = structlog.get_logger(__name__)

MIN_SCORE = 0
MAX_SCORE = 100


class CertificateExistsError(ConflictError):
    """Student already holds a certificate for this course or program."""

    def __init__(self, message: str = "Certificate already issued"):
        super().__init__(message, "certificate_exists")


class CertificateIssuer:
    """Service for certificates."""

    def __init__(
        self,
        ctx: "EngineContext",
        catalog: "CatalogReader",
        users: "UserDirectory",
        enrollments: "EnrollmentStore",
        submissions: "SubmissionStore",
    ):
        """Initialize with engine context and read models.

        Args:
            ctx: Engine context (session, keyspace, gateways)
            catalog: Catalog reader for course and program names
            users: User directory for the student name
            enrollments: Enrollment read model (program certificate metadata)
            submissions: Submission read model (course certificate metadata)
        """
        self.ctx = ctx
        self.session = ctx.session
        self.keyspace = ctx.keyspace
        self.catalog = catalog
        self.users = users
        self.enrollments = enrollments
        self.submissions = submissions
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._insert = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates
            (id, student_id, course_id, program_id, certificate_number,
             verification_code, status, student_name, course_name, program_name,
             issue_date, completion_date, grade, final_score, pdf_url,
             achievements, issued_by, metadata, revoked_at, revocation_reason,
             updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._get_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.certificates WHERE id = ?"
        )

        # Uniqueness claims
        self._claim_course = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates_by_student_course
            (student_id, course_id, certificate_id)
            VALUES (?, ?, ?)
            IF NOT EXISTS
        """)
        self._claim_program = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates_by_student_program
            (student_id, program_id, certificate_id)
            VALUES (?, ?, ?)
            IF NOT EXISTS
        """)
        self._release_course = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.certificates_by_student_course
            WHERE student_id = ? AND course_id = ?
            IF certificate_id = ?
        """)
        self._release_program = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.certificates_by_student_program
            WHERE student_id = ? AND program_id = ?
            IF certificate_id = ?
        """)

        # Listings
        self._insert_by_student = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates_by_student
            (student_id, issue_date, certificate_id)
            VALUES (?, ?, ?)
        """)
        self._insert_by_scope = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates_by_scope
            (scope_id, issue_date, certificate_id, student_id)
            VALUES (?, ?, ?, ?)
        """)
        self._list_by_student = self.session.prepare(f"""
            SELECT certificate_id FROM {self.keyspace}.certificates_by_student
            WHERE student_id = ?
        """)
        self._list_by_scope = self.session.prepare(f"""
            SELECT certificate_id FROM {self.keyspace}.certificates_by_scope
            WHERE scope_id = ?
        """)

        # Revocation (CAS on status)
        self._revoke = self.session.prepare(f"""
            UPDATE {self.keyspace}.certificates
            SET status = ?, revoked_at = ?, revocation_reason = ?, updated_at = ?
            WHERE id = ?
            IF status = ?
        """)

    # ==========================================================================
    # Issue
    # ==========================================================================

    async def issue(
        self,
        student_id: UUID,
        course_id: UUID | None = None,
        program_id: UUID | None = None,
        grade: str | None = None,
        final_score: float | None = None,
        pdf_url: str | None = None,
        issued_by: UUID | None = None,
        achievements: list[str] | None = None,
    ) -> Certificate:
        """Issue a certificate for a course, a program, or both.

        Raises:
            ValidationError: No scope given, or final_score outside [0, 100]
            NotFoundError: Student, course or program missing
            CertificateExistsError: A certificate already exists for a scope
        """
        if course_id is None and program_id is None:
            raise ValidationError(
                "A course or a program is required", "certificate_scope_required"
            )
        if final_score is not None and not MIN_SCORE <= final_score <= MAX_SCORE:
            raise ValidationError(
                "Final score must be between 0 and 100", "invalid_final_score"
            )

        student = await self.users.get_user(student_id)
        if not student:
            raise NotFoundError("Student not found", "student_not_found")

        course = program = None
        if course_id:
            course = await self.catalog.get_course(course_id)
            if not course:
                raise NotFoundError("Course not found", "course_not_found")
        if program_id:
            program = await self.catalog.get_program(program_id)
            if not program:
                raise NotFoundError("Program not found", "program_not_found")

        now = datetime.now(UTC)
        certificate = Certificate(
            student_id=student_id,
            student_name=student.display_name,
            course_id=course_id,
            program_id=program_id,
            course_name=course.title if course else None,
            program_name=program.title if program else None,
            status=CertificateStatus.ISSUED,
            issue_date=now,
            completion_date=now,
            grade=grade,
            final_score=final_score,
            pdf_url=pdf_url,
            achievements=achievements or [],
            issued_by=issued_by,
            updated_at=now,
        )
        if course:
            certificate.metadata.update(await self._course_metadata(student_id, course))
        if program:
            program_metadata, completed_at = await self._program_metadata(
                student_id, program
            )
            certificate.metadata.update(program_metadata)
            if completed_at:
                certificate.completion_date = completed_at

        await self._claim_scopes(certificate)
        try:
            await self._persist(certificate)
        except Exception:
            await self._release_scopes(certificate)
            raise

        logger.info(
            "certificate_issued",
            certificate_id=str(certificate.id),
            student_id=str(student_id),
            course_id=str(course_id) if course_id else None,
            program_id=str(program_id) if program_id else None,
        )

        scope_name = certificate.program_name or certificate.course_name
        await self.ctx.notify(
            target_user_id=student_id,
            category=NotificationCategory.CERTIFICATE,
            title="Certificate issued",
            message=f"You've earned your certificate for {scope_name}!",
            related_entity_id=certificate.id,
            related_entity_type="certificate",
        )
        return certificate

    async def _claim_scopes(self, certificate: Certificate) -> None:
        """Claim (student, course) then (student, program); all or nothing."""
        if certificate.course_id:
            result = await self.session.aexecute(
                self._claim_course,
                [certificate.student_id, certificate.course_id, certificate.id],
            )
            if not result.was_applied:
                raise CertificateExistsError(
                    "Certificate already issued for this course"
                )

        if certificate.program_id:
            result = await self.session.aexecute(
                self._claim_program,
                [certificate.student_id, certificate.program_id, certificate.id],
            )
            if not result.was_applied:
                if certificate.course_id:
                    await self.session.aexecute(
                        self._release_course,
                        [certificate.student_id, certificate.course_id, certificate.id],
                    )
                raise CertificateExistsError(
                    "Certificate already issued for this program"
                )

    async def _release_scopes(self, certificate: Certificate) -> None:
        if certificate.course_id:
            await self.session.aexecute(
                self._release_course,
                [certificate.student_id, certificate.course_id, certificate.id],
            )
        if certificate.program_id:
            await self.session.aexecute(
                self._release_program,
                [certificate.student_id, certificate.program_id, certificate.id],
            )

    async def _persist(self, certificate: Certificate) -> None:
        await self.session.aexecute(
            self._insert,
            [
                certificate.id,
                certificate.student_id,
                certificate.course_id,
                certificate.program_id,
                certificate.certificate_number,
                certificate.verification_code,
                certificate.status.value,
                certificate.student_name,
                certificate.course_name,
                certificate.program_name,
                certificate.issue_date,
                certificate.completion_date,
                certificate.grade,
                certificate.final_score,
                certificate.pdf_url,
                certificate.achievements,
                certificate.issued_by,
                certificate.metadata,
                None,
                None,
                certificate.updated_at,
            ],
        )
        await self.session.aexecute(
            self._insert_by_student,
            [certificate.student_id, certificate.issue_date, certificate.id],
        )
        for scope_id in certificate.scope_ids:
            await self.session.aexecute(
                self._insert_by_scope,
                [scope_id, certificate.issue_date, certificate.id, certificate.student_id],
            )

    async def _course_metadata(self, student_id: UUID, course: "Course") -> dict[str, float]:
        """total_modules, completed_projects, average_score, total_hours."""
        modules = await self.catalog.list_course_modules(course.id)
        graded = await self.submissions.list_graded(student_id, course.id)
        average = average_percentage(graded)
        return {
            "total_modules": float(len(modules)),
            "completed_projects": float(len(graded)),
            "average_score": float(average),
            "total_hours": float(course.estimated_hours),
        }

    async def _program_metadata(
        self, student_id: UUID, program: "Program"
    ) -> tuple[dict[str, float], datetime | None]:
        """total_courses and courses_completed from the enrollment snapshot."""
        enrollment = await self.enrollments.find_by_pair(student_id, program.id)
        if not enrollment:
            return {
                "total_courses": float(len(program.course_ids)),
                "courses_completed": 0.0,
            }, None

        completed = sum(1 for entry in enrollment.courses_progress if entry.is_completed)
        return {
            "total_courses": float(len(enrollment.courses_progress)),
            "courses_completed": float(completed),
        }, enrollment.completion_date

    # ==========================================================================
    # Revoke
    # ==========================================================================

    async def revoke(self, certificate_id: UUID, reason: str | None = None) -> Certificate:
        """Revoke an ISSUED certificate.

        Raises:
            NotFoundError: Unknown certificate
            ConflictError: Certificate is not ISSUED (already revoked or pending)
        """
        now = datetime.now(UTC)
        result = await self.session.aexecute(
            self._revoke,
            [
                CertificateStatus.REVOKED.value,
                now,
                reason,
                now,
                certificate_id,
                CertificateStatus.ISSUED.value,
            ],
        )

        certificate = await self.get(certificate_id)
        if not result.was_applied:
            if certificate is None:
                raise NotFoundError("Certificate not found", "certificate_not_found")
            raise ConflictError(
                f"Certificate is {certificate.status.value}, cannot revoke",
                "certificate_not_issued",
            )
        if certificate is None:
            raise NotFoundError("Certificate not found", "certificate_not_found")

        logger.info("certificate_revoked", certificate_id=str(certificate_id))

        await self.ctx.notify(
            target_user_id=certificate.student_id,
            category=NotificationCategory.CERTIFICATE,
            title="Certificate revoked",
            message=(
                f"Your certificate {certificate.certificate_number} has been revoked."
                + (f" Reason: {reason}" if reason else "")
            ),
            related_entity_id=certificate.id,
            related_entity_type="certificate",
        )
        return certificate

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get(self, certificate_id: UUID) -> Certificate | None:
        """Get certificate by ID."""
        result = await self.session.aexecute(self._get_by_id, [certificate_id])
        row = result.one()
        return Certificate.from_row(row) if row else None

    async def verify(self, certificate_id: UUID) -> dict[str, Any]:
        """Public verification payload.

        Raises:
            NotFoundError: Unknown certificate
        """
        certificate = await self.get(certificate_id)
        if not certificate:
            raise NotFoundError("Certificate not found", "certificate_not_found")

        return {
            "is_valid": certificate.is_valid,
            "status": certificate.status.value,
            "certificate_number": certificate.certificate_number,
            "student_name": certificate.student_name,
            "course_name": certificate.course_name,
            "program_name": certificate.program_name,
            "completion_date": certificate.completion_date,
            "issue_date": certificate.issue_date,
            "grade": certificate.grade,
            "final_score": certificate.final_score,
            "metadata": certificate.metadata,
        }

    async def list_for_student(self, student_id: UUID) -> list[Certificate]:
        """Certificates of a student, newest first."""
        rows = await self.session.aexecute(self._list_by_student, [student_id])
        return await self._load_many(row.certificate_id for row in rows)

    async def list_for_course(self, course_id: UUID) -> list[Certificate]:
        """Certificates that name a course."""
        rows = await self.session.aexecute(self._list_by_scope, [course_id])
        return await self._load_many(row.certificate_id for row in rows)

    async def list_for_program(self, program_id: UUID) -> list[Certificate]:
        """Certificates that name a program."""
        rows = await self.session.aexecute(self._list_by_scope, [program_id])
        return await self._load_many(row.certificate_id for row in rows)

    async def _load_many(self, certificate_ids: Iterable[UUID]) -> list[Certificate]:
        certificates = []
        for certificate_id in certificate_ids:
            certificate = await self.get(certificate_id)
            if certificate:
                certificates.append(certificate)
        return certificates
