# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Scholarship resolver.

Business logic for:
- Generating unique codes (claimed with IF NOT EXISTS)
- Validating a code for a program and a student
- Redeeming a code exactly once (CAS on status)
- Single and bulk creation, updates, revocation and statistics
"""

import secrets
import time
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

import structlog

from learnhub.auth.models import normalize_email
from learnhub.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PriceQuote,
    UnavailableError,
    ValidationError,
)

from .models import DiscountType, Scholarship, ScholarshipStatus
from .pricing import compute_discount


if TYPE_CHECKING:
    from learnhub.auth.service import UserDirectory
    from learnhub.catalog.models import Program
    from learnhub.catalog.service import CatalogReader
    from learnhub.core.engine import EngineContext


logger = structlog.get_logger(__name__)

BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
CODE_RANDOM_BYTES = 5
MAX_PERCENTAGE = Decimal(100)


def to_base36(value: int) -> str:
    """Encode a non-negative integer in base 36 (lowercase)."""
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def make_code(prefix: str) -> str:
    """Build a candidate code: PREFIX-<base36 ms timestamp>-<random hex>."""
    timestamp = to_base36(int(time.time() * 1000)).upper()
    random_part = secrets.token_hex(CODE_RANDOM_BYTES).upper()
    return f"{prefix.upper()}-{timestamp}-{random_part}"


def validate_discount(discount_type: DiscountType, discount_value: Decimal) -> None:
    """Reject discount values that cannot be applied.

    Raises:
        ValidationError: If the value is not positive or a percentage exceeds 100
    """
    if discount_value <= 0:
        raise ValidationError("Discount value must be positive", "invalid_discount")
    if discount_type == DiscountType.PERCENTAGE and discount_value > MAX_PERCENTAGE:
        raise ValidationError(
            "Percentage discount cannot exceed 100", "invalid_discount"
        )


def describe_discount(scholarship: Scholarship, currency: str = "USD") -> str:
    """Human readable discount label used in emails."""
    if scholarship.discount_type == DiscountType.PERCENTAGE:
        return f"{scholarship.discount_value.normalize():f}% off"
    return f"{currency} {scholarship.discount_value:.2f} off"


class ScholarshipResolver:
    """Service for scholarship codes."""

    def __init__(
        self,
        ctx: "EngineContext",
        catalog: "CatalogReader",
        users: "UserDirectory | None" = None,
    ):
        """Initialize with engine context and collaborators.

        Args:
            ctx: Engine context (session, keyspace, settings, gateways)
            catalog: Catalog reader used for program lookups
            users: Optional user directory, checks restricted emails on create
        """
        self.ctx = ctx
        self.session = ctx.session
        self.keyspace = ctx.keyspace
        self.catalog = catalog
        self.users = users
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._insert = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.scholarships
            (id, code, program_id, student_email, discount_type, discount_value,
             status, expires_at, used_by, used_at, notes, created_by,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._claim_code = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.scholarships_by_code (code, scholarship_id)
            VALUES (?, ?)
            IF NOT EXISTS
        """)
        self._insert_by_program = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.scholarships_by_program
            (program_id, created_at, scholarship_id)
            VALUES (?, ?, ?)
        """)
        self._get_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.scholarships WHERE id = ?"
        )
        self._get_id_by_code = self.session.prepare(f"""
            SELECT scholarship_id FROM {self.keyspace}.scholarships_by_code
            WHERE code = ?
        """)
        self._list_by_program = self.session.prepare(f"""
            SELECT scholarship_id FROM {self.keyspace}.scholarships_by_program
            WHERE program_id = ?
        """)
        self._list_all = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.scholarships"
        )

        # Status transitions (CAS on current status)
        self._mark_used = self.session.prepare(f"""
            UPDATE {self.keyspace}.scholarships
            SET status = ?, used_by = ?, used_at = ?, updated_at = ?
            WHERE id = ?
            IF status = ?
        """)
        self._set_status = self.session.prepare(f"""
            UPDATE {self.keyspace}.scholarships
            SET status = ?, updated_at = ?
            WHERE id = ?
            IF status = ?
        """)
        self._update_fields = self.session.prepare(f"""
            UPDATE {self.keyspace}.scholarships
            SET student_email = ?, discount_type = ?, discount_value = ?,
                expires_at = ?, notes = ?, updated_at = ?
            WHERE id = ?
            IF status != ?
        """)

        # Delete
        self._delete = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.scholarships
            WHERE id = ?
            IF status != ?
        """)
        self._delete_code = self.session.prepare(
            f"DELETE FROM {self.keyspace}.scholarships_by_code WHERE code = ?"
        )
        self._delete_by_program = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.scholarships_by_program
            WHERE program_id = ? AND created_at = ? AND scholarship_id = ?
        """)

    # ==========================================================================
    # Codes
    # ==========================================================================

    async def generate_code(self, scholarship_id: UUID, prefix: str | None = None) -> str:
        """Generate and claim a unique code for a scholarship.

        Raises:
            ConflictError: If no free code was found within the retry budget
        """
        prefix = prefix or self.ctx.settings.scholarship_code_prefix
        max_attempts = self.ctx.settings.scholarship_code_max_attempts

        for attempt in range(1, max_attempts + 1):
            code = make_code(prefix)
            result = await self.session.aexecute(
                self._claim_code, [code, scholarship_id]
            )
            if result.was_applied:
                return code
            logger.debug("scholarship_code_collision", code=code, attempt=attempt)

        logger.error("scholarship_code_exhausted", attempts=max_attempts)
        raise ConflictError(
            "Could not generate a unique scholarship code", "code_generation_failed"
        )

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get(self, scholarship_id: UUID) -> Scholarship | None:
        """Get scholarship by ID."""
        result = await self.session.aexecute(self._get_by_id, [scholarship_id])
        row = result.one()
        return Scholarship.from_row(row) if row else None

    async def get_or_raise(self, scholarship_id: UUID) -> Scholarship:
        """Get scholarship by ID or raise NotFoundError."""
        scholarship = await self.get(scholarship_id)
        if not scholarship:
            raise NotFoundError("Scholarship not found", "scholarship_not_found")
        return scholarship

    async def get_by_code(self, code: str) -> Scholarship | None:
        """Get scholarship by code (case-insensitive)."""
        result = await self.session.aexecute(
            self._get_id_by_code, [code.strip().upper()]
        )
        row = result.one()
        if not row:
            return None
        return await self.get(row.scholarship_id)

    async def list_for_program(self, program_id: UUID) -> list[Scholarship]:
        """Scholarships of a program, newest first."""
        rows = await self.session.aexecute(self._list_by_program, [program_id])
        scholarships = []
        for row in rows:
            scholarship = await self.get(row.scholarship_id)
            if scholarship:
                scholarships.append(scholarship)
        return scholarships

    # ==========================================================================
    # Validation and Pricing
    # ==========================================================================

    async def validate(
        self,
        code: str,
        program_id: UUID,
        student_email: str | None = None,
    ) -> Scholarship:
        """Check that a code can be redeemed by a student for a program.

        Checks run in order: existence, program scope, redemption, status and
        expiry, email restriction.

        Raises:
            NotFoundError: Unknown code
            ValidationError: Code belongs to another program
            ConflictError: Code already used
            UnavailableError: Code revoked or expired
            ForbiddenError: Code restricted to a different email
        """
        scholarship = await self.get_by_code(code)
        if not scholarship:
            raise NotFoundError("Invalid scholarship code", "scholarship_not_found")

        if scholarship.program_id != program_id:
            raise ValidationError(
                "Scholarship code is not valid for this program",
                "scholarship_scope_mismatch",
            )

        if scholarship.status == ScholarshipStatus.USED or scholarship.used_by:
            raise ConflictError(
                "Scholarship code has already been used", "scholarship_used"
            )

        if scholarship.status == ScholarshipStatus.REVOKED:
            raise UnavailableError(
                "Scholarship code has been revoked", "scholarship_revoked"
            )

        if scholarship.status == ScholarshipStatus.EXPIRED or scholarship.is_expired():
            raise UnavailableError(
                "Scholarship code has expired", "scholarship_expired"
            )

        if scholarship.student_email and (
            student_email is None
            or normalize_email(scholarship.student_email)
            != normalize_email(student_email)
        ):
            raise ForbiddenError(
                "Scholarship code is assigned to a different student",
                "scholarship_email_mismatch",
            )

        return scholarship

    def compute_discount(self, scholarship: Scholarship, base_price: Decimal) -> PriceQuote:
        """Pricing breakdown for a base price (see pricing.compute_discount)."""
        return compute_discount(scholarship, base_price)

    # ==========================================================================
    # Redemption
    # ==========================================================================

    async def mark_used(self, scholarship_id: UUID, student_id: UUID) -> None:
        """Redeem a scholarship. Succeeds at most once per scholarship.

        Raises:
            NotFoundError: Unknown scholarship
            ConflictError: Scholarship no longer ACTIVE (lost the race or reused)
        """
        now = datetime.now(UTC)
        result = await self.session.aexecute(
            self._mark_used,
            [
                ScholarshipStatus.USED.value,
                student_id,
                now,
                now,
                scholarship_id,
                ScholarshipStatus.ACTIVE.value,
            ],
        )
        if not result.was_applied:
            if await self.get(scholarship_id) is None:
                raise NotFoundError("Scholarship not found", "scholarship_not_found")
            raise ConflictError(
                "Scholarship code has already been used", "scholarship_used"
            )

        logger.info(
            "scholarship_redeemed",
            scholarship_id=str(scholarship_id),
            student_id=str(student_id),
        )

    # ==========================================================================
    # Management
    # ==========================================================================

    async def create(
        self,
        program_id: UUID,
        discount_type: DiscountType,
        discount_value: Decimal,
        created_by: UUID | None = None,
        student_email: str | None = None,
        expires_at: datetime | None = None,
        notes: str | None = None,
        send_email: bool = True,
        program: "Program | None" = None,
    ) -> Scholarship:
        """Create a scholarship with a freshly claimed code.

        When restricted to an email, the student must exist and (with
        send_email) receives the award email.

        Raises:
            NotFoundError: Program or restricted student not found
            ValidationError: Invalid discount or past expiry
        """
        validate_discount(discount_type, discount_value)

        now = datetime.now(UTC)
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=UTC)
            if expires_at <= now:
                raise ValidationError(
                    "Expiry date must be in the future", "invalid_expiry"
                )

        program = program or await self.catalog.get_program(program_id)
        if not program:
            raise NotFoundError("Program not found", "program_not_found")

        if student_email:
            student_email = normalize_email(student_email)
            if self.users and not await self.users.get_user_by_email(student_email):
                raise NotFoundError(
                    "No student registered with this email", "student_not_found"
                )

        scholarship_id = uuid4()
        code = await self.generate_code(scholarship_id)
        scholarship = Scholarship(
            id=scholarship_id,
            code=code,
            program_id=program_id,
            discount_type=discount_type,
            discount_value=discount_value,
            status=ScholarshipStatus.ACTIVE,
            created_at=now,
            student_email=student_email,
            expires_at=expires_at,
            notes=notes,
            created_by=created_by,
            updated_at=now,
        )

        await self.session.aexecute(
            self._insert,
            [
                scholarship.id,
                scholarship.code,
                scholarship.program_id,
                scholarship.student_email,
                scholarship.discount_type.value,
                scholarship.discount_value,
                scholarship.status.value,
                scholarship.expires_at,
                None,
                None,
                scholarship.notes,
                scholarship.created_by,
                scholarship.created_at,
                scholarship.updated_at,
            ],
        )
        await self.session.aexecute(
            self._insert_by_program,
            [scholarship.program_id, scholarship.created_at, scholarship.id],
        )

        logger.info(
            "scholarship_created",
            scholarship_id=str(scholarship.id),
            program_id=str(program_id),
            discount_type=discount_type.value,
        )

        if send_email and student_email:
            await self.ctx.send_email(
                "send_scholarship_award",
                to_email=student_email,
                program_title=program.title,
                code=scholarship.code,
                discount_label=describe_discount(scholarship, program.currency),
                expires_at=scholarship.expires_at,
            )

        return scholarship

    async def bulk_generate(
        self,
        program_id: UUID,
        quantity: int,
        discount_type: DiscountType,
        discount_value: Decimal,
        created_by: UUID | None = None,
        expires_at: datetime | None = None,
    ) -> list[Scholarship]:
        """Generate `quantity` independent unrestricted codes for a program.

        Raises:
            ValidationError: Quantity outside [1, max] or invalid discount
            NotFoundError: Program not found
        """
        max_quantity = self.ctx.settings.scholarship_bulk_max_quantity
        if quantity < 1 or quantity > max_quantity:
            raise ValidationError(
                f"Quantity must be between 1 and {max_quantity}", "invalid_quantity"
            )
        validate_discount(discount_type, discount_value)

        program = await self.catalog.get_program(program_id)
        if not program:
            raise NotFoundError("Program not found", "program_not_found")

        scholarships = []
        for index in range(quantity):
            scholarship = await self.create(
                program_id=program_id,
                discount_type=discount_type,
                discount_value=discount_value,
                created_by=created_by,
                expires_at=expires_at,
                notes=f"Bulk generated scholarship {index + 1}/{quantity}",
                send_email=False,
                program=program,
            )
            scholarships.append(scholarship)

        logger.info(
            "scholarships_bulk_generated",
            program_id=str(program_id),
            quantity=quantity,
        )
        return scholarships

    async def update(
        self,
        scholarship_id: UUID,
        changes: dict[str, Any],
    ) -> Scholarship:
        """Update editable fields of a scholarship that was not used yet.

        Editable: student_email, discount_type, discount_value, expires_at, notes.

        Raises:
            NotFoundError: Unknown scholarship
            ConflictError: Scholarship already used
            ValidationError: Invalid discount
        """
        scholarship = await self.get_or_raise(scholarship_id)
        if scholarship.status == ScholarshipStatus.USED:
            raise ConflictError(
                "Cannot modify a used scholarship", "scholarship_used"
            )

        if "student_email" in changes:
            email = changes["student_email"]
            scholarship.student_email = normalize_email(email) if email else None
        if changes.get("discount_type") is not None:
            scholarship.discount_type = DiscountType(changes["discount_type"])
        if changes.get("discount_value") is not None:
            scholarship.discount_value = Decimal(str(changes["discount_value"]))
        if "expires_at" in changes:
            scholarship.expires_at = changes["expires_at"]
        if "notes" in changes:
            scholarship.notes = changes["notes"]

        validate_discount(scholarship.discount_type, scholarship.discount_value)
        scholarship.updated_at = datetime.now(UTC)

        result = await self.session.aexecute(
            self._update_fields,
            [
                scholarship.student_email,
                scholarship.discount_type.value,
                scholarship.discount_value,
                scholarship.expires_at,
                scholarship.notes,
                scholarship.updated_at,
                scholarship.id,
                ScholarshipStatus.USED.value,
            ],
        )
        if not result.was_applied:
            raise ConflictError(
                "Cannot modify a used scholarship", "scholarship_used"
            )

        logger.info("scholarship_updated", scholarship_id=str(scholarship_id))
        return scholarship

    async def revoke(self, scholarship_id: UUID) -> Scholarship:
        """Revoke an ACTIVE scholarship.

        Raises:
            NotFoundError: Unknown scholarship
            ConflictError: Scholarship not ACTIVE
        """
        scholarship = await self.get_or_raise(scholarship_id)
        now = datetime.now(UTC)

        result = await self.session.aexecute(
            self._set_status,
            [
                ScholarshipStatus.REVOKED.value,
                now,
                scholarship_id,
                ScholarshipStatus.ACTIVE.value,
            ],
        )
        if not result.was_applied:
            raise ConflictError(
                "Only active scholarships can be revoked", "scholarship_not_active"
            )

        scholarship.status = ScholarshipStatus.REVOKED
        scholarship.updated_at = now
        logger.info("scholarship_revoked", scholarship_id=str(scholarship_id))
        return scholarship

    async def delete(self, scholarship_id: UUID) -> None:
        """Delete a scholarship that was not used.

        Raises:
            NotFoundError: Unknown scholarship
            ConflictError: Scholarship already used
        """
        scholarship = await self.get_or_raise(scholarship_id)

        result = await self.session.aexecute(
            self._delete, [scholarship_id, ScholarshipStatus.USED.value]
        )
        if not result.was_applied:
            raise ConflictError(
                "Cannot delete a used scholarship", "scholarship_used"
            )

        await self.session.aexecute(self._delete_code, [scholarship.code])
        await self.session.aexecute(
            self._delete_by_program,
            [scholarship.program_id, scholarship.created_at, scholarship.id],
        )
        logger.info("scholarship_deleted", scholarship_id=str(scholarship_id))

    # ==========================================================================
    # Statistics
    # ==========================================================================

    async def stats(self, program_id: UUID | None = None) -> dict[str, Any]:
        """Totals per status, utilization rate and discount granted.

        total_discount_value sums the discount of USED scholarships against
        their program's current price.
        """
        if program_id:
            scholarships = await self.list_for_program(program_id)
        else:
            rows = await self.session.aexecute(self._list_all)
            scholarships = [Scholarship.from_row(row) for row in rows]

        counts = {status.value: 0 for status in ScholarshipStatus}
        for scholarship in scholarships:
            counts[scholarship.status.value] += 1

        total = len(scholarships)
        used = counts[ScholarshipStatus.USED.value]
        utilization_rate = round(used / total * 100) if total else 0

        prices: dict[UUID, Decimal] = {}
        total_discount = Decimal(0)
        for scholarship in scholarships:
            if scholarship.status != ScholarshipStatus.USED:
                continue
            if scholarship.program_id not in prices:
                program = await self.catalog.get_program(scholarship.program_id)
                prices[scholarship.program_id] = program.price if program else Decimal(0)
            quote = compute_discount(scholarship, prices[scholarship.program_id])
            total_discount += quote.discount_amount

        return {
            "total": total,
            "active": counts[ScholarshipStatus.ACTIVE.value],
            "used": used,
            "expired": counts[ScholarshipStatus.EXPIRED.value],
            "revoked": counts[ScholarshipStatus.REVOKED.value],
            "utilization_rate": utilization_rate,
            "total_discount_value": float(round(total_discount, 2)),
        }
