"""Shared fixtures for the LearnHub test suite.

Services are exercised against mocked collaborators; the Cassandra session is
a MagicMock whose `prepare` hands back the CQL text so fakes can dispatch on
it. No database or Redis is needed.
"""

import os
import tempfile
from collections.abc import Callable
from decimal import Decimal
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest


# Settings are cached on first use, so the environment is set before any import
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="learnhub-logs-"))
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("EMAIL_ENABLED", "false")

from fastapi.testclient import TestClient  # noqa: E402

from learnhub.auth.models import User  # noqa: E402
from learnhub.auth.permissions import UserRole  # noqa: E402
from learnhub.auth.security import create_access_token  # noqa: E402
from learnhub.catalog.models import CompletionCriteria, Course, Program  # noqa: E402
from learnhub.config import get_settings  # noqa: E402
from learnhub.core.engine import EngineContext  # noqa: E402
from learnhub.core.references import Reference  # noqa: E402


# ==============================================================================
# Cassandra Session Helpers
# ==============================================================================


def normalize_cql(cql: str) -> str:
    """Collapse whitespace so statements compare on their text."""
    return " ".join(cql.split())


def cql_result(rows: list[Any] | None = None, was_applied: bool = True) -> MagicMock:
    """Result set with `.one()`, iteration and `was_applied` like the driver's."""
    rows = rows or []
    result = MagicMock()
    result.one.return_value = rows[0] if rows else None
    result.__iter__.return_value = iter(rows)
    result.was_applied = was_applied
    return result


def make_session() -> MagicMock:
    """Session whose prepared statements are their normalized CQL text."""
    session = MagicMock()
    session.prepare.side_effect = normalize_cql
    session.aexecute = AsyncMock(return_value=cql_result())
    return session


@pytest.fixture
def session() -> MagicMock:
    return make_session()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def engine_ctx(session: MagicMock, settings) -> EngineContext:
    """Engine context with recording notification and email gateways."""
    notifications = MagicMock()
    notifications.notify = AsyncMock()
    email = MagicMock()
    for method in (
        "send_enrollment_confirmation",
        "send_enrollment_status_change",
        "send_scholarship_award",
        "send_program_completion",
        "send_new_account",
    ):
        setattr(email, method, AsyncMock(return_value=SimpleNamespace(success=True)))
    return EngineContext(
        session=session,
        keyspace="learnhub_test",
        settings=settings,
        notifications=notifications,
        email=email,
    )


# ==============================================================================
# Domain Factories
# ==============================================================================


@pytest.fixture
def program_factory() -> Callable[..., Program]:
    def _create(
        price: Decimal | int = 0,
        enrollment_limit: int | None = None,
        is_published: bool = True,
        course_count: int = 2,
        title: str = "Data Engineering",
    ) -> Program:
        return Program(
            id=uuid4(),
            title=title,
            price=Decimal(price),
            enrollment_limit=enrollment_limit,
            is_published=is_published,
            course_ids=[uuid4() for _ in range(course_count)],
        )

    return _create


@pytest.fixture
def course_factory() -> Callable[..., Course]:
    def _create(
        program: Program | None = None,
        minimum_quiz_score: int = 70,
        required_projects: int = 0,
        course_id: UUID | None = None,
    ) -> Course:
        return Course(
            id=course_id or uuid4(),
            program=Reference(program.id if program else uuid4()),
            title="Course",
            completion_criteria=CompletionCriteria(
                minimum_quiz_score=minimum_quiz_score,
                required_projects=required_projects,
            ),
        )

    return _create


@pytest.fixture
def user_factory() -> Callable[..., User]:
    def _create(
        role: UserRole = UserRole.STUDENT,
        email: str | None = None,
        name: str = "Test User",
    ) -> User:
        user_id = uuid4()
        return User(
            id=user_id,
            email=email or f"{role.value}_{user_id.hex[:8]}@test.com",
            name=name,
            role=role.value,
        )

    return _create


# ==============================================================================
# HTTP Fixtures
# ==============================================================================


def make_token(role: UserRole, user_id: UUID | None = None) -> str:
    """Access token for a caller with the given role."""
    return create_access_token(
        {
            "sub": str(user_id or uuid4()),
            "email": f"{role.value}@test.com",
            "role": role.value,
        }
    )


@pytest.fixture
def admin_token() -> str:
    return make_token(UserRole.ADMIN)


@pytest.fixture
def instructor_token() -> str:
    return make_token(UserRole.INSTRUCTOR)


@pytest.fixture
def student_token() -> str:
    return make_token(UserRole.STUDENT)


@pytest.fixture
def client() -> TestClient:
    """Test client without lifespan: no database, no Redis."""
    from learnhub.main import app

    return TestClient(app)


@pytest.fixture
def token_for() -> Callable[..., str]:
    return make_token


@pytest.fixture
def cql() -> Callable[..., MagicMock]:
    """Factory for driver-like result sets."""
    return cql_result
