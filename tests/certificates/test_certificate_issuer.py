"""Tests for CertificateIssuer scope claims and revocation."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from learnhub.certificates.models import (
    Certificate,
    CertificateStatus,
    generate_certificate_number,
    generate_verification_code,
)
from learnhub.certificates.service import CertificateExistsError, CertificateIssuer
from learnhub.completion.models import Submission
from learnhub.core.errors import ConflictError, NotFoundError, ValidationError
from learnhub.enrollments.models import (
    CourseProgressEntry,
    CourseProgressStatus,
    Enrollment,
)


class ClaimTable:
    """In-memory stand-in for the uniqueness claim tables."""

    def __init__(self, session: MagicMock, cql):
        self.cql = cql
        self.course_claims: dict[tuple, object] = {}
        self.program_claims: dict[tuple, object] = {}
        self.statements: list[str] = []
        session.aexecute = AsyncMock(side_effect=self.execute)

    def _table(self, stmt: str) -> dict[tuple, object]:
        return self.course_claims if "student_course" in stmt else self.program_claims

    async def execute(self, stmt: str, params=None):
        self.statements.append(stmt)
        if "certificates_by_student_" in stmt and stmt.startswith("INSERT"):
            table = self._table(stmt)
            key = (params[0], params[1])
            if key in table:
                return self.cql(was_applied=False)
            table[key] = params[2]
            return self.cql(was_applied=True)
        if "certificates_by_student_" in stmt and stmt.startswith("DELETE"):
            table = self._table(stmt)
            key = (params[0], params[1])
            if table.get(key) == params[2]:
                del table[key]
                return self.cql(was_applied=True)
            return self.cql(was_applied=False)
        return self.cql()


@pytest.fixture
def student(user_factory):
    return user_factory(name="Ana Lima")


@pytest.fixture
def program(program_factory):
    return program_factory(title="Data Engineering")


@pytest.fixture
def course(course_factory, program):
    return course_factory(program=program)


@pytest.fixture
def catalog(course, program) -> MagicMock:
    catalog = MagicMock()
    catalog.get_course = AsyncMock(return_value=course)
    catalog.get_program = AsyncMock(return_value=program)
    catalog.list_course_modules = AsyncMock(return_value=[object(), object()])
    return catalog


@pytest.fixture
def users(student) -> MagicMock:
    users = MagicMock()
    users.get_user = AsyncMock(return_value=student)
    return users


@pytest.fixture
def enrollments() -> MagicMock:
    enrollments = MagicMock()
    enrollments.find_by_pair = AsyncMock(return_value=None)
    return enrollments


@pytest.fixture
def submissions() -> MagicMock:
    submissions = MagicMock()
    submissions.list_graded = AsyncMock(return_value=[])
    return submissions


@pytest.fixture
def issuer(engine_ctx, catalog, users, enrollments, submissions) -> CertificateIssuer:
    return CertificateIssuer(engine_ctx, catalog, users, enrollments, submissions)


@pytest.fixture
def claims(session, cql) -> ClaimTable:
    return ClaimTable(session, cql)


class TestIssue:
    """Tests for CertificateIssuer.issue."""

    @pytest.mark.asyncio
    async def test_scope_required(self, issuer: CertificateIssuer) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await issuer.issue(student_id=uuid4())

        assert exc_info.value.code == "certificate_scope_required"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("score", [-1, 100.5])
    async def test_score_bounds(self, issuer: CertificateIssuer, score) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await issuer.issue(student_id=uuid4(), course_id=uuid4(), final_score=score)

        assert exc_info.value.code == "invalid_final_score"

    @pytest.mark.asyncio
    async def test_unknown_student(self, issuer: CertificateIssuer, users) -> None:
        users.get_user.return_value = None

        with pytest.raises(NotFoundError) as exc_info:
            await issuer.issue(student_id=uuid4(), course_id=uuid4())

        assert exc_info.value.code == "student_not_found"

    @pytest.mark.asyncio
    async def test_course_certificate(
        self, issuer, claims, student, course, submissions, engine_ctx
    ) -> None:
        submissions.list_graded.return_value = [
            Submission(
                student_id=student.id,
                course_id=course.id,
                assessment_id=uuid4(),
                percentage=Decimal(p),
            )
            for p in (80, 90)
        ]

        certificate = await issuer.issue(
            student_id=student.id, course_id=course.id, grade="A", final_score=85
        )

        assert certificate.status == CertificateStatus.ISSUED
        assert certificate.student_name == "Ana Lima"
        assert certificate.course_name == course.title
        assert certificate.program_name is None
        assert certificate.metadata["total_modules"] == 2.0
        assert certificate.metadata["completed_projects"] == 2.0
        assert certificate.metadata["average_score"] == 85.0
        assert claims.course_claims == {(student.id, course.id): certificate.id}
        engine_ctx.notifications.notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_program_metadata_from_snapshot(
        self, issuer, claims, student, program, enrollments
    ) -> None:
        first, second = program.course_ids
        enrollment = Enrollment(
            student_id=student.id,
            program_id=program.id,
            courses_progress=[
                CourseProgressEntry(
                    course_id=first, position=0, status=CourseProgressStatus.COMPLETED
                ),
                CourseProgressEntry(
                    course_id=second, position=1, status=CourseProgressStatus.ACTIVE
                ),
            ],
        )
        enrollments.find_by_pair.return_value = enrollment

        certificate = await issuer.issue(student_id=student.id, program_id=program.id)

        assert certificate.program_name == "Data Engineering"
        assert certificate.metadata == {"total_courses": 2.0, "courses_completed": 1.0}

    @pytest.mark.asyncio
    async def test_duplicate_course_certificate(
        self, issuer, claims, student, course
    ) -> None:
        await issuer.issue(student_id=student.id, course_id=course.id)

        with pytest.raises(CertificateExistsError) as exc_info:
            await issuer.issue(student_id=student.id, course_id=course.id)

        assert exc_info.value.code == "certificate_exists"
        assert isinstance(exc_info.value, ConflictError)

    @pytest.mark.asyncio
    async def test_program_conflict_releases_course_claim(
        self, issuer, claims, student, course, program
    ) -> None:
        """Both scopes are claimed or neither is."""
        claims.program_claims[(student.id, program.id)] = uuid4()

        with pytest.raises(CertificateExistsError):
            await issuer.issue(
                student_id=student.id, course_id=course.id, program_id=program.id
            )

        assert claims.course_claims == {}

    @pytest.mark.asyncio
    async def test_failed_write_releases_claims(
        self, issuer, claims, student, course
    ) -> None:
        original = claims.execute

        async def failing(stmt, params=None):
            if stmt.startswith("INSERT INTO learnhub_test.certificates ("):
                raise RuntimeError("write timeout")
            return await original(stmt, params)

        issuer.session.aexecute.side_effect = failing

        with pytest.raises(RuntimeError):
            await issuer.issue(student_id=student.id, course_id=course.id)

        assert claims.course_claims == {}


class TestRevoke:
    """Tests for CertificateIssuer.revoke."""

    @staticmethod
    def _certificate(status: CertificateStatus) -> Certificate:
        return Certificate(
            student_id=uuid4(),
            student_name="Ana Lima",
            course_id=uuid4(),
            status=status,
        )

    @pytest.mark.asyncio
    async def test_revokes_issued(self, issuer, session, cql, engine_ctx) -> None:
        certificate = self._certificate(CertificateStatus.REVOKED)
        session.aexecute = AsyncMock(return_value=cql(was_applied=True))
        issuer.get = AsyncMock(return_value=certificate)

        result = await issuer.revoke(certificate.id, reason="plagiarism")

        stmt, params = session.aexecute.call_args.args
        assert stmt.endswith("IF status = ?")
        assert params[-1] == CertificateStatus.ISSUED.value
        assert result is certificate
        message = engine_ctx.notifications.notify.call_args.kwargs["message"]
        assert message.endswith("Reason: plagiarism")

    @pytest.mark.asyncio
    async def test_already_revoked(self, issuer, session, cql) -> None:
        session.aexecute = AsyncMock(return_value=cql(was_applied=False))
        issuer.get = AsyncMock(return_value=self._certificate(CertificateStatus.REVOKED))

        with pytest.raises(ConflictError) as exc_info:
            await issuer.revoke(uuid4())

        assert exc_info.value.code == "certificate_not_issued"

    @pytest.mark.asyncio
    async def test_unknown_certificate(self, issuer, session, cql) -> None:
        session.aexecute = AsyncMock(return_value=cql(was_applied=False))
        issuer.get = AsyncMock(return_value=None)

        with pytest.raises(NotFoundError) as exc_info:
            await issuer.revoke(uuid4())

        assert exc_info.value.code == "certificate_not_found"


class TestVerify:
    """Tests for the public verification payload."""

    @pytest.mark.asyncio
    async def test_revoked_certificate_is_not_valid(self, issuer) -> None:
        certificate = Certificate(
            student_id=uuid4(),
            student_name="Ana Lima",
            program_id=uuid4(),
            status=CertificateStatus.REVOKED,
        )
        issuer.get = AsyncMock(return_value=certificate)

        payload = await issuer.verify(certificate.id)

        assert payload["is_valid"] is False
        assert payload["status"] == "revoked"

    @pytest.mark.asyncio
    async def test_unknown(self, issuer) -> None:
        issuer.get = AsyncMock(return_value=None)

        with pytest.raises(NotFoundError):
            await issuer.verify(uuid4())


class TestCodes:
    """Tests for certificate number and verification code formats."""

    def test_certificate_number(self) -> None:
        prefix, year, suffix = generate_certificate_number().split("-")

        assert prefix == "CERT"
        assert year.isdigit()
        assert len(suffix) == 6
        assert suffix.isalnum() and suffix == suffix.upper()

    def test_verification_code(self) -> None:
        code = generate_verification_code()

        assert len(code) == 10
        assert code.isalnum() and code == code.upper()
