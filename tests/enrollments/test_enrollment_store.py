"""Tests for EnrollmentStore claims, status writes and the program seat counter."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from learnhub.core.errors import ConflictError, UnavailableError
from learnhub.enrollments.models import (
    CourseProgressEntry,
    CourseProgressStatus,
    Enrollment,
    EnrollmentStatus,
)
from learnhub.enrollments.store import EnrollmentStore


KEYSPACE = "learnhub_test"


class CapacityTable:
    """In-memory program_capacity row honoring the compare-and-set condition.

    `before_cas` callbacks run right before the next conditional update, which
    simulates another writer landing between the read and the write.
    """

    def __init__(self, cql: Callable[..., MagicMock], reserved: int | None = None):
        self.cql = cql
        self.reserved = reserved
        self.before_cas: list[Callable[[], None]] = []
        self.cas_calls = 0
        self.yield_between = False

    async def execute(self, stmt: str, params: list[Any] | None = None) -> MagicMock:
        if self.yield_between:
            await asyncio.sleep(0)

        if stmt.startswith(f"SELECT reserved FROM {KEYSPACE}.program_capacity"):
            rows = [] if self.reserved is None else [SimpleNamespace(reserved=self.reserved)]
            return self.cql(rows)

        if stmt.startswith(f"INSERT INTO {KEYSPACE}.program_capacity"):
            applied = self.reserved is None
            if applied:
                self.reserved = params[1]
            return self.cql(was_applied=applied)

        if stmt.startswith(f"UPDATE {KEYSPACE}.program_capacity"):
            self.cas_calls += 1
            if self.before_cas:
                self.before_cas.pop(0)()
            new_value, _, expected = params
            applied = self.reserved == expected
            if applied:
                self.reserved = new_value
            return self.cql(was_applied=applied)

        # Lookup tables are empty
        return self.cql()


@pytest.fixture
def table(cql) -> CapacityTable:
    return CapacityTable(cql)


@pytest.fixture
def store(session: MagicMock, table: CapacityTable) -> EnrollmentStore:
    session.aexecute = AsyncMock(side_effect=table.execute)
    return EnrollmentStore(session, KEYSPACE, cas_max_attempts=3)


# ==============================================================================
# Seat Counter
# ==============================================================================


class TestReserveSeat:
    """Tests for the capacity compare-and-set."""

    @pytest.mark.asyncio
    async def test_seeds_missing_counter_then_reserves(
        self, store: EnrollmentStore, table: CapacityTable
    ) -> None:
        """A program without a counter row starts from its holding enrollments."""
        await store.reserve_seat(uuid4(), limit=5)

        assert table.reserved == 1

    @pytest.mark.asyncio
    async def test_full_program_refuses(
        self, store: EnrollmentStore, table: CapacityTable
    ) -> None:
        table.reserved = 1

        with pytest.raises(UnavailableError) as exc_info:
            await store.reserve_seat(uuid4(), limit=1)

        assert exc_info.value.code == "program_full"
        assert table.reserved == 1
        assert table.cas_calls == 0

    @pytest.mark.asyncio
    async def test_no_limit_always_reserves(
        self, store: EnrollmentStore, table: CapacityTable
    ) -> None:
        table.reserved = 1000

        await store.reserve_seat(uuid4(), limit=None)

        assert table.reserved == 1001

    @pytest.mark.asyncio
    async def test_lost_race_is_retried(
        self, store: EnrollmentStore, table: CapacityTable
    ) -> None:
        """A concurrent writer between read and write forces a re-read."""
        table.reserved = 0

        def other_writer() -> None:
            table.reserved = 1

        table.before_cas.append(other_writer)

        await store.reserve_seat(uuid4(), limit=2)

        assert table.reserved == 2
        assert table.cas_calls == 2

    @pytest.mark.asyncio
    async def test_lost_race_rechecks_limit(
        self, store: EnrollmentStore, table: CapacityTable
    ) -> None:
        """The last seat taken by someone else turns the retry into program_full."""
        table.reserved = 0

        def other_writer() -> None:
            table.reserved = 1

        table.before_cas.append(other_writer)

        with pytest.raises(UnavailableError) as exc_info:
            await store.reserve_seat(uuid4(), limit=1)

        assert exc_info.value.code == "program_full"
        assert table.reserved == 1

    @pytest.mark.asyncio
    async def test_contention_exhausts_retry_budget(
        self, store: EnrollmentStore, table: CapacityTable
    ) -> None:
        table.reserved = 0

        def other_writer() -> None:
            table.reserved += 1

        table.before_cas.extend([other_writer] * store.cas_max_attempts)

        with pytest.raises(ConflictError) as exc_info:
            await store.reserve_seat(uuid4(), limit=None)

        assert exc_info.value.code == "capacity_contention"
        assert table.cas_calls == store.cas_max_attempts

    @pytest.mark.asyncio
    async def test_concurrent_reservations_for_last_seat(
        self, store: EnrollmentStore, table: CapacityTable
    ) -> None:
        """Two interleaved reservations on a 1-seat program: exactly one wins."""
        table.reserved = 0
        table.yield_between = True
        program_id = uuid4()

        results = await asyncio.gather(
            store.reserve_seat(program_id, limit=1),
            store.reserve_seat(program_id, limit=1),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert results.count(None) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], UnavailableError)
        assert failures[0].code == "program_full"
        assert table.reserved == 1


class TestReleaseSeat:
    """Tests for giving seats back."""

    @pytest.mark.asyncio
    async def test_release_decrements(
        self, store: EnrollmentStore, table: CapacityTable
    ) -> None:
        table.reserved = 3

        await store.release_seat(uuid4())

        assert table.reserved == 2

    @pytest.mark.asyncio
    async def test_release_never_goes_below_zero(
        self, store: EnrollmentStore, table: CapacityTable
    ) -> None:
        table.reserved = 0

        await store.release_seat(uuid4())

        assert table.reserved == 0
        assert table.cas_calls == 0

    @pytest.mark.asyncio
    async def test_release_without_counter_row_is_noop(
        self, store: EnrollmentStore, table: CapacityTable
    ) -> None:
        await store.release_seat(uuid4())

        assert table.reserved is None


# ==============================================================================
# Pair Claim and Snapshot Writes
# ==============================================================================


class TestClaimPair:
    """Tests for the (student, program) uniqueness claim."""

    @pytest.mark.asyncio
    async def test_claim_reports_lwt_outcome(self, session: MagicMock, cql) -> None:
        store = EnrollmentStore(session, KEYSPACE)
        session.aexecute = AsyncMock(
            side_effect=[cql(was_applied=True), cql(was_applied=False)]
        )

        first = await store.claim_pair(uuid4(), uuid4(), uuid4())
        second = await store.claim_pair(uuid4(), uuid4(), uuid4())

        assert first is True
        assert second is False

    @pytest.mark.asyncio
    async def test_claim_is_conditional_insert(self, session: MagicMock, cql) -> None:
        store = EnrollmentStore(session, KEYSPACE)
        session.aexecute = AsyncMock(return_value=cql())

        await store.claim_pair(uuid4(), uuid4(), uuid4())

        stmt = session.aexecute.call_args.args[0]
        assert stmt.startswith(f"INSERT INTO {KEYSPACE}.enrollments_by_pair")
        assert stmt.endswith("IF NOT EXISTS")



class StatusTable:
    """In-memory enrollments.status column honoring `IF status = ?`."""

    def __init__(self, cql: Callable[..., MagicMock], status: EnrollmentStatus):
        self.cql = cql
        self.status = status.value
        self.entry_writes = 0

    async def execute(self, stmt: str, params: list[Any] | None = None) -> MagicMock:
        # Interleave concurrent callers between every statement
        await asyncio.sleep(0)

        if stmt.startswith(f"UPDATE {KEYSPACE}.enrollments SET status"):
            new_status, _, _, _, expected = params
            applied = self.status == expected
            if applied:
                self.status = new_status
            return self.cql(was_applied=applied)

        if stmt.startswith(f"INSERT INTO {KEYSPACE}.enrollment_course_progress"):
            self.entry_writes += 1
        return self.cql()


def make_enrollment(
    statuses: list[CourseProgressStatus], enrollment_id=None
) -> Enrollment:
    course_ids = [uuid4() for _ in statuses]
    return Enrollment(
        id=enrollment_id or uuid4(),
        student_id=uuid4(),
        program_id=uuid4(),
        courses_progress=[
            CourseProgressEntry(course_id=course_id, position=i, status=status)
            for i, (course_id, status) in enumerate(zip(course_ids, statuses, strict=True))
        ],
    )


class TestCompleteEntry:
    """Tests for completing snapshot entries."""

    @pytest.mark.asyncio
    async def test_partial_completion_writes_entry_only(
        self, session: MagicMock, cql
    ) -> None:
        store = EnrollmentStore(session, KEYSPACE)
        session.aexecute = AsyncMock(return_value=cql())
        enrollment = make_enrollment(
            [CourseProgressStatus.PENDING, CourseProgressStatus.PENDING]
        )

        completed = await store.complete_entry(
            enrollment, enrollment.courses_progress[0], datetime.now(UTC)
        )

        assert completed is False
        assert enrollment.status == EnrollmentStatus.ACTIVE
        session.aexecute.assert_awaited_once()
        stmt = session.aexecute.call_args.args[0]
        assert stmt.startswith(f"INSERT INTO {KEYSPACE}.enrollment_course_progress")

    @pytest.mark.asyncio
    async def test_last_entry_completes_enrollment_conditionally(
        self, session: MagicMock, cql
    ) -> None:
        """Entry row first, then a compare-and-set from ACTIVE to COMPLETED."""
        store = EnrollmentStore(session, KEYSPACE)
        session.aexecute = AsyncMock(return_value=cql(was_applied=True))
        enrollment = make_enrollment(
            [CourseProgressStatus.COMPLETED, CourseProgressStatus.ACTIVE]
        )
        now = datetime.now(UTC)

        completed = await store.complete_entry(
            enrollment, enrollment.courses_progress[1], now
        )

        assert completed is True
        assert enrollment.status == EnrollmentStatus.COMPLETED
        assert enrollment.completion_date == now
        entry_write, status_write = session.aexecute.await_args_list
        assert entry_write.args[0].startswith(
            f"INSERT INTO {KEYSPACE}.enrollment_course_progress"
        )
        stmt, params = status_write.args
        assert stmt.startswith(f"UPDATE {KEYSPACE}.enrollments SET status")
        assert stmt.endswith("IF status = ?")
        assert params[0] == EnrollmentStatus.COMPLETED.value
        assert params[-1] == EnrollmentStatus.ACTIVE.value

    @pytest.mark.asyncio
    async def test_lost_completion_leaves_copy_untouched(
        self, session: MagicMock, cql
    ) -> None:
        """The stored status moved on (e.g. SUSPENDED): no completion reported."""
        store = EnrollmentStore(session, KEYSPACE)
        table = StatusTable(cql, EnrollmentStatus.SUSPENDED)
        session.aexecute = AsyncMock(side_effect=table.execute)
        enrollment = make_enrollment([CourseProgressStatus.ACTIVE])

        completed = await store.complete_entry(
            enrollment, enrollment.courses_progress[0], datetime.now(UTC)
        )

        assert completed is False
        assert enrollment.status == EnrollmentStatus.ACTIVE
        assert enrollment.completion_date is None
        assert table.status == EnrollmentStatus.SUSPENDED.value
        assert enrollment.courses_progress[0].is_completed

    @pytest.mark.asyncio
    async def test_concurrent_completions_complete_once(
        self, session: MagicMock, cql
    ) -> None:
        """Two stale copies finishing the last course: exactly one wins."""
        store = EnrollmentStore(session, KEYSPACE)
        table = StatusTable(cql, EnrollmentStatus.ACTIVE)
        session.aexecute = AsyncMock(side_effect=table.execute)
        first = make_enrollment([CourseProgressStatus.ACTIVE])
        second = make_enrollment([CourseProgressStatus.ACTIVE], enrollment_id=first.id)
        now = datetime.now(UTC)

        results = await asyncio.gather(
            store.complete_entry(first, first.courses_progress[0], now),
            store.complete_entry(second, second.courses_progress[0], now),
        )

        assert sorted(results) == [False, True]
        assert table.status == EnrollmentStatus.COMPLETED.value
        assert table.entry_writes == 2

    @pytest.mark.asyncio
    async def test_suspended_enrollment_is_not_auto_completed(
        self, session: MagicMock, cql
    ) -> None:
        store = EnrollmentStore(session, KEYSPACE)
        session.aexecute = AsyncMock(return_value=cql())
        enrollment = make_enrollment([CourseProgressStatus.ACTIVE])
        enrollment.status = EnrollmentStatus.SUSPENDED

        completed = await store.complete_entry(
            enrollment, enrollment.courses_progress[0], datetime.now(UTC)
        )

        assert completed is False
        assert enrollment.status == EnrollmentStatus.SUSPENDED
        assert enrollment.courses_progress[0].is_completed
        session.aexecute.assert_awaited_once()


class TestSetStatus:
    """Tests for the conditional status write."""

    @pytest.mark.asyncio
    async def test_write_is_conditional_on_previous_status(
        self, session: MagicMock, cql
    ) -> None:
        store = EnrollmentStore(session, KEYSPACE)
        session.aexecute = AsyncMock(return_value=cql(was_applied=True))
        enrollment = make_enrollment([CourseProgressStatus.ACTIVE])

        await store.set_status(enrollment, EnrollmentStatus.SUSPENDED)

        stmt, params = session.aexecute.call_args.args
        assert stmt.endswith("IF status = ?")
        assert params[0] == EnrollmentStatus.SUSPENDED.value
        assert params[-1] == EnrollmentStatus.ACTIVE.value
        assert enrollment.status == EnrollmentStatus.SUSPENDED

    @pytest.mark.asyncio
    async def test_changed_status_raises_conflict(
        self, session: MagicMock, cql
    ) -> None:
        """A copy read before another writer's change cannot overwrite it."""
        store = EnrollmentStore(session, KEYSPACE)
        table = StatusTable(cql, EnrollmentStatus.COMPLETED)
        session.aexecute = AsyncMock(side_effect=table.execute)
        stale = make_enrollment([CourseProgressStatus.ACTIVE])

        with pytest.raises(ConflictError) as exc_info:
            await store.set_status(stale, EnrollmentStatus.DROPPED)

        assert exc_info.value.code == "enrollment_status_changed"
        assert stale.status == EnrollmentStatus.ACTIVE
        assert table.status == EnrollmentStatus.COMPLETED.value
