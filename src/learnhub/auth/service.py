# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""User directory service.

Business logic for:
- Looking up users by id or email
- Provisioning STUDENT accounts with a temporary credential
- Password authentication for the token endpoint
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learnhub.core.errors import ConflictError, EngineError, ValidationError

from .models import User, normalize_email
from .permissions import UserRole
from .security import generate_temporary_password, hash_password, verify_password
from .validators import validate_email


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class InvalidCredentialsError(EngineError):
    """Email or password is wrong, or the account is inactive."""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message, "invalid_credentials")


class UserExistsError(ConflictError):
    """Email already registered."""

    def __init__(self, message: str = "Email already registered"):
        super().__init__(message, "user_exists")


# ==============================================================================
# User Directory
# ==============================================================================


class UserDirectory:
    """Read and provision user accounts."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session.

        Args:
            session: Cassandra driver session (with aexecute support)
            keyspace: Keyspace name for queries
        """
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for better performance."""
        self._get_user_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE id = ?"
        )
        self._get_user_id_by_email = self.session.prepare(
            f"SELECT user_id FROM {self.keyspace}.users_by_email WHERE email = ?"
        )
        self._claim_email = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.users_by_email (email, user_id)
            VALUES (?, ?)
            IF NOT EXISTS
        """)
        self._insert_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.users
            (id, email, name, password_hash, role, is_active,
             must_change_password, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._update_password_hash = self.session.prepare(f"""
            UPDATE {self.keyspace}.users
            SET password_hash = ?, updated_at = ?
            WHERE id = ?
        """)

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def get_user(self, user_id: UUID) -> User | None:
        """Find user by ID."""
        result = await self.session.aexecute(self._get_user_by_id, [user_id])
        row = result.one()
        return User.from_row(row) if row else None

    async def get_user_by_email(self, email: str) -> User | None:
        """Find user by email address (case-insensitive)."""
        result = await self.session.aexecute(
            self._get_user_id_by_email, [normalize_email(email)]
        )
        row = result.one()
        if not row:
            return None
        return await self.get_user(row.user_id)

    # ==========================================================================
    # Provisioning
    # ==========================================================================

    async def create_student(self, email: str, name: str = "") -> tuple[User, str]:
        """Create a STUDENT account with a random temporary password.

        Args:
            email: Email address (validated here)
            name: Optional display name

        Returns:
            Tuple of (created user, plain temporary password)

        Raises:
            ValidationError: If the email is malformed
            UserExistsError: If the email is already registered
        """
        check = validate_email(email)
        if not check.valid:
            raise ValidationError(check.message or "Invalid email address", "invalid_email")

        temporary_password = generate_temporary_password()
        user = User(
            email=check.formatted or email,
            name=name,
            password_hash=hash_password(temporary_password),
            role=UserRole.STUDENT.value,
            is_active=True,
            must_change_password=True,
        )

        # Email uniqueness is claimed before the user row exists
        result = await self.session.aexecute(self._claim_email, [user.email, user.id])
        if not result.was_applied:
            raise UserExistsError

        await self.session.aexecute(
            self._insert_user,
            [
                user.id,
                user.email,
                user.name,
                user.password_hash,
                user.role,
                user.is_active,
                user.must_change_password,
                user.created_at,
                user.updated_at,
            ],
        )

        logger.info("student_account_created", user_id=str(user.id))
        return user, temporary_password

    # ==========================================================================
    # Authentication
    # ==========================================================================

    async def authenticate(self, email: str, password: str) -> User:
        """Authenticate user with email and password.

        Raises:
            InvalidCredentialsError: If email/password is wrong or account inactive
        """
        user = await self.get_user_by_email(email)
        if not user:
            raise InvalidCredentialsError

        is_valid, new_hash = verify_password(password, user.password_hash)
        if not is_valid or not user.is_active:
            raise InvalidCredentialsError

        if new_hash:
            await self.session.aexecute(
                self._update_password_hash,
                [new_hash, datetime.now(UTC), user.id],
            )
            user.password_hash = new_hash

        return user
