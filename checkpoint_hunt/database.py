"""
Database operations for the checkpoint hunt.

Every public coroutine opens its own connection, so any number of service
instances can share one database file. Multi-record invariants go through
run_transaction(), which executes a unit of work under BEGIN IMMEDIATE and
re-runs the whole unit when SQLite reports a lock conflict.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, TypeVar

import aiosqlite

from .errors import DuplicateError, TransientStoreError
from .models import (
    CheckIn,
    Checkpoint,
    ManualSubmission,
    ReviewStatus,
    Submission,
    Team,
    TeamStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS teams (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        group_id TEXT,
        score INTEGER NOT NULL DEFAULT 0,
        checkpoints_completed INTEGER NOT NULL DEFAULT 0,
        time_penalty INTEGER NOT NULL DEFAULT 0,
        current_checkpoint INTEGER NOT NULL DEFAULT 1,
        status TEXT NOT NULL DEFAULT 'waiting',
        checkpoint_started_at REAL,
        last_check_in_at REAL,
        updated_at REAL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS checkpoints (
        id TEXT PRIMARY KEY,
        group_id TEXT NOT NULL,
        number INTEGER NOT NULL,
        title TEXT,
        description TEXT,
        base_points INTEGER NOT NULL DEFAULT 0,
        hint_type TEXT NOT NULL DEFAULT 'points',
        point_deduction INTEGER NOT NULL DEFAULT 0,
        time_penalty INTEGER NOT NULL DEFAULT 0,
        hints_available INTEGER NOT NULL DEFAULT 0,
        hints TEXT NOT NULL DEFAULT '[]',
        proof_id TEXT,
        location_clue TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        UNIQUE (group_id, number)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS checkpoint_secrets (
        checkpoint_id TEXT PRIMARY KEY,
        secret_hash TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS submissions (
        id TEXT PRIMARY KEY,
        team_id TEXT NOT NULL,
        checkpoint_id TEXT NOT NULL,
        status TEXT NOT NULL,
        base_score INTEGER NOT NULL,
        hints_used INTEGER NOT NULL,
        point_deduction INTEGER NOT NULL,
        time_penalty INTEGER NOT NULL,
        final_score INTEGER NOT NULL,
        time_taken INTEGER NOT NULL,
        total_time INTEGER NOT NULL,
        source TEXT NOT NULL,
        submitted_by TEXT,
        submitted_at REAL NOT NULL,
        manual_submission_id TEXT,
        reviewed_by TEXT,
        UNIQUE (team_id, checkpoint_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS manual_submissions (
        id TEXT PRIMARY KEY,
        team_id TEXT NOT NULL,
        checkpoint_id TEXT NOT NULL,
        secret TEXT NOT NULL,
        submitted_by TEXT,
        submitted_at REAL NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        reviewed_by TEXT,
        reviewed_at REAL,
        rejection_reason TEXT,
        score_awarded INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS hint_usage (
        team_id TEXT NOT NULL,
        checkpoint_id TEXT NOT NULL,
        hint_number INTEGER NOT NULL,
        used_at REAL NOT NULL,
        PRIMARY KEY (team_id, checkpoint_id, hint_number)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS check_ins (
        team_id TEXT NOT NULL,
        checkpoint_id TEXT NOT NULL,
        checkpoint_number INTEGER NOT NULL,
        checked_in_at REAL NOT NULL,
        PRIMARY KEY (team_id, checkpoint_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS leaderboard (
        team_id TEXT PRIMARY KEY,
        team_name TEXT NOT NULL,
        group_id TEXT,
        score INTEGER NOT NULL,
        checkpoints_completed INTEGER NOT NULL,
        total_time_penalty INTEGER NOT NULL,
        last_submission_at REAL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS event_config (
        id TEXT PRIMARY KEY,
        is_active INTEGER NOT NULL,
        current_phase TEXT NOT NULL,
        started_at REAL,
        ended_at REAL,
        updated_at REAL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS principals (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        role TEXT NOT NULL,
        team_id TEXT,
        group_id TEXT,
        token_hash TEXT UNIQUE
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_manual_team_checkpoint_status
    ON manual_submissions(team_id, checkpoint_id, status)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_leaderboard_group_score
    ON leaderboard(group_id, score DESC)
    """,
]

_TRANSIENT_MARKERS = ("locked", "busy")


def _is_transient(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


class DatabaseManager:
    """Manages hunt records on SQLite with transactional units of work."""

    def __init__(
        self,
        db_path: str,
        busy_timeout: float = 5.0,
        max_attempts: int = 5,
        retry_backoff: float = 0.025,
    ) -> None:
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff = retry_backoff

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Open an autocommit connection with mapping-style rows.

        @return: Async context yielding an aiosqlite connection
        """
        async with aiosqlite.connect(
            self.db_path, timeout=self.busy_timeout, isolation_level=None
        ) as db:
            db.row_factory = aiosqlite.Row
            yield db

    async def init_db(self) -> None:
        """
        Initialize the SQLite database schema and indexes.

        Safe to call on an existing database.
        """
        async with self.connect() as db:
            # WAL lets readers proceed while a transaction holds the write lock
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA synchronous=NORMAL")
            for statement in SCHEMA:
                await db.execute(statement)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Run a block as one atomic unit holding the database write lock.

        Commits when the block exits normally and rolls back on any exception.
        Lock conflicts are raised as TransientStoreError.

        @return: Async context yielding the connection of the open transaction
        """
        async with self.connect() as db:
            try:
                await db.execute("BEGIN IMMEDIATE")
            except aiosqlite.OperationalError as e:
                if _is_transient(e):
                    raise TransientStoreError("Datastore is busy") from e
                raise

            try:
                yield db
            except aiosqlite.OperationalError as e:
                if db.in_transaction:
                    await db.rollback()
                if _is_transient(e):
                    raise TransientStoreError("Datastore is busy") from e
                raise
            except BaseException:
                if db.in_transaction:
                    await db.rollback()
                raise

            try:
                await db.commit()
            except aiosqlite.OperationalError as e:
                if db.in_transaction:
                    await db.rollback()
                if _is_transient(e):
                    raise TransientStoreError("Datastore is busy") from e
                raise

    async def run_transaction(
        self,
        work: Callable[[aiosqlite.Connection], Awaitable[T]],
        description: str = "transaction",
    ) -> T:
        """
        Execute a unit of work atomically, retrying it on lock conflicts.

        The unit is re-run from its first read on every attempt, so it must
        compute all writes from what it reads inside the transaction.

        @param work: Coroutine function receiving the transaction connection
        @param description: Label used in log messages
        @return: Whatever the unit of work returns
        @raise TransientStoreError: When every attempt hit a conflict
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.transaction() as db:
                    return await work(db)
            except TransientStoreError:
                if attempt >= self.max_attempts:
                    logger.error(
                        "%s failed after %d attempts due to store conflicts",
                        description,
                        attempt,
                    )
                    raise
                logger.warning(
                    "%s hit a store conflict (attempt %d/%d), retrying",
                    description,
                    attempt,
                    self.max_attempts,
                )
                await asyncio.sleep(self.retry_backoff * attempt)

    # ------------------------------------------------------------------
    # Reads usable inside or outside a transaction
    # ------------------------------------------------------------------

    async def _fetch_one(
        self,
        db: aiosqlite.Connection,
        query: str,
        params: tuple,
    ) -> Optional[Any]:
        cursor = await db.execute(query, params)
        return await cursor.fetchone()

    async def fetch_team(
        self,
        db: aiosqlite.Connection,
        team_id: str,
    ) -> Optional[Team]:
        row = await self._fetch_one(db, "SELECT * FROM teams WHERE id = ?", (team_id,))
        return Team.from_row(row) if row else None

    async def fetch_checkpoint(
        self,
        db: aiosqlite.Connection,
        checkpoint_id: str,
    ) -> Optional[Checkpoint]:
        row = await self._fetch_one(
            db, "SELECT * FROM checkpoints WHERE id = ?", (checkpoint_id,)
        )
        return Checkpoint.from_row(row) if row else None

    async def fetch_submission(
        self,
        db: aiosqlite.Connection,
        team_id: str,
        checkpoint_id: str,
    ) -> Optional[Submission]:
        row = await self._fetch_one(
            db,
            "SELECT * FROM submissions WHERE team_id = ? AND checkpoint_id = ?",
            (team_id, checkpoint_id),
        )
        return Submission.from_row(row) if row else None

    async def fetch_check_in(
        self,
        db: aiosqlite.Connection,
        team_id: str,
        checkpoint_id: str,
    ) -> Optional[CheckIn]:
        row = await self._fetch_one(
            db,
            "SELECT * FROM check_ins WHERE team_id = ? AND checkpoint_id = ?",
            (team_id, checkpoint_id),
        )
        return CheckIn.from_row(row) if row else None

    async def fetch_hint_numbers(
        self,
        db: aiosqlite.Connection,
        team_id: str,
        checkpoint_id: str,
    ) -> List[int]:
        cursor = await db.execute(
            "SELECT hint_number FROM hint_usage "
            "WHERE team_id = ? AND checkpoint_id = ? ORDER BY used_at ASC",
            (team_id, checkpoint_id),
        )
        return [row["hint_number"] for row in await cursor.fetchall()]

    async def fetch_manual_submission(
        self,
        db: aiosqlite.Connection,
        submission_id: str,
    ) -> Optional[ManualSubmission]:
        row = await self._fetch_one(
            db, "SELECT * FROM manual_submissions WHERE id = ?", (submission_id,)
        )
        return ManualSubmission.from_row(row) if row else None

    async def fetch_pending_manual_submission(
        self,
        db: aiosqlite.Connection,
        team_id: str,
        checkpoint_id: str,
    ) -> Optional[ManualSubmission]:
        row = await self._fetch_one(
            db,
            "SELECT * FROM manual_submissions "
            "WHERE team_id = ? AND checkpoint_id = ? AND status = ? LIMIT 1",
            (team_id, checkpoint_id, ReviewStatus.PENDING),
        )
        return ManualSubmission.from_row(row) if row else None

    # ------------------------------------------------------------------
    # Writes used inside transactions
    # ------------------------------------------------------------------

    async def write_team(
        self,
        db: aiosqlite.Connection,
        team: Team,
    ) -> None:
        await db.execute(
            """
            UPDATE teams SET score = ?, checkpoints_completed = ?, time_penalty = ?,
                current_checkpoint = ?, status = ?, checkpoint_started_at = ?,
                last_check_in_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                team.score,
                team.checkpoints_completed,
                team.time_penalty,
                team.current_checkpoint,
                team.status,
                team.checkpoint_started_at,
                team.last_check_in_at,
                team.updated_at,
                team.id,
            ),
        )

    async def mark_solving(
        self,
        db: aiosqlite.Connection,
        team_id: str,
        now: float,
    ) -> bool:
        """
        Conditionally move a team from at_location to solving.

        @return: True if this call performed the transition
        """
        cursor = await db.execute(
            "UPDATE teams SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
            (TeamStatus.SOLVING, now, team_id, TeamStatus.AT_LOCATION),
        )
        return cursor.rowcount == 1

    async def insert_submission(
        self,
        db: aiosqlite.Connection,
        submission: Submission,
    ) -> None:
        fields = list(Submission.__dataclass_fields__)
        placeholders = ", ".join("?" for _ in fields)
        try:
            await db.execute(
                f"INSERT INTO submissions ({', '.join(fields)}) VALUES ({placeholders})",
                tuple(getattr(submission, name) for name in fields),
            )
        except aiosqlite.IntegrityError as e:
            raise DuplicateError(
                "This checkpoint has already been completed by your team"
            ) from e

    async def upsert_leaderboard(
        self,
        db: aiosqlite.Connection,
        team: Team,
        now: float,
    ) -> None:
        await db.execute(
            """
            INSERT INTO leaderboard (team_id, team_name, group_id, score,
                checkpoints_completed, total_time_penalty, last_submission_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(team_id) DO UPDATE SET
                team_name = excluded.team_name,
                group_id = excluded.group_id,
                score = excluded.score,
                checkpoints_completed = excluded.checkpoints_completed,
                total_time_penalty = excluded.total_time_penalty,
                last_submission_at = excluded.last_submission_at
            """,
            (
                team.id,
                team.name,
                team.group_id,
                team.score,
                team.checkpoints_completed,
                team.time_penalty,
                now,
            ),
        )

    async def insert_check_in(
        self,
        db: aiosqlite.Connection,
        check_in: CheckIn,
    ) -> bool:
        """
        Create a check-in unless one already exists for the pair.

        @return: True if a new record was written
        """
        cursor = await db.execute(
            "INSERT OR IGNORE INTO check_ins "
            "(team_id, checkpoint_id, checkpoint_number, checked_in_at) VALUES (?, ?, ?, ?)",
            (
                check_in.team_id,
                check_in.checkpoint_id,
                check_in.checkpoint_number,
                check_in.checked_in_at,
            ),
        )
        return cursor.rowcount == 1

    async def insert_hint_usage(
        self,
        db: aiosqlite.Connection,
        team_id: str,
        checkpoint_id: str,
        hint_number: int,
        used_at: float,
    ) -> bool:
        """
        Record a revealed hint unless that number was already recorded.

        @return: True if a new record was written
        """
        cursor = await db.execute(
            "INSERT OR IGNORE INTO hint_usage "
            "(team_id, checkpoint_id, hint_number, used_at) VALUES (?, ?, ?, ?)",
            (team_id, checkpoint_id, hint_number, used_at),
        )
        return cursor.rowcount == 1

    async def insert_manual_submission(
        self,
        db: aiosqlite.Connection,
        manual: ManualSubmission,
    ) -> None:
        fields = list(ManualSubmission.__dataclass_fields__)
        placeholders = ", ".join("?" for _ in fields)
        await db.execute(
            f"INSERT INTO manual_submissions ({', '.join(fields)}) VALUES ({placeholders})",
            tuple(getattr(manual, name) for name in fields),
        )

    async def finish_review(
        self,
        db: aiosqlite.Connection,
        submission_id: str,
        status: str,
        reviewed_by: str,
        reviewed_at: float,
        rejection_reason: Optional[str] = None,
        score_awarded: Optional[int] = None,
    ) -> bool:
        """
        Move a pending manual submission to a terminal status.

        @return: True if the record was still pending and is now updated
        """
        cursor = await db.execute(
            """
            UPDATE manual_submissions
            SET status = ?, reviewed_by = ?, reviewed_at = ?,
                rejection_reason = ?, score_awarded = ?
            WHERE id = ? AND status = ?
            """,
            (
                status,
                reviewed_by,
                reviewed_at,
                rejection_reason,
                score_awarded,
                submission_id,
                ReviewStatus.PENDING,
            ),
        )
        return cursor.rowcount == 1

    # ------------------------------------------------------------------
    # Point reads and queries on their own connection
    # ------------------------------------------------------------------

    async def get_team(self, team_id: str) -> Optional[Team]:
        async with self.connect() as db:
            return await self.fetch_team(db, team_id)

    async def get_checkpoint(self, checkpoint_id: str) -> Optional[Checkpoint]:
        async with self.connect() as db:
            return await self.fetch_checkpoint(db, checkpoint_id)

    async def get_submission(
        self,
        team_id: str,
        checkpoint_id: str,
    ) -> Optional[Submission]:
        async with self.connect() as db:
            return await self.fetch_submission(db, team_id, checkpoint_id)

    async def get_check_in(
        self,
        team_id: str,
        checkpoint_id: str,
    ) -> Optional[CheckIn]:
        async with self.connect() as db:
            return await self.fetch_check_in(db, team_id, checkpoint_id)

    async def get_hint_numbers(
        self,
        team_id: str,
        checkpoint_id: str,
    ) -> List[int]:
        async with self.connect() as db:
            return await self.fetch_hint_numbers(db, team_id, checkpoint_id)

    async def get_manual_submission(
        self,
        submission_id: str,
    ) -> Optional[ManualSubmission]:
        async with self.connect() as db:
            return await self.fetch_manual_submission(db, submission_id)

    async def get_secret_hash(self, checkpoint_id: str) -> Optional[str]:
        """
        Get the stored flag hash for a checkpoint.

        @param checkpoint_id: Checkpoint identifier
        @return: Hex hash string, or None if not configured
        """
        async with self.connect() as db:
            row = await self._fetch_one(
                db,
                "SELECT secret_hash FROM checkpoint_secrets WHERE checkpoint_id = ?",
                (checkpoint_id,),
            )
            return row["secret_hash"] if row else None

    async def find_checkpoint(
        self,
        group_id: str,
        number: int,
    ) -> Optional[Checkpoint]:
        """
        Find a checkpoint by its sequence number within a group.

        @param group_id: Group identifier
        @param number: Sequence number within the group
        @return: Checkpoint or None
        """
        async with self.connect() as db:
            row = await self._fetch_one(
                db,
                "SELECT * FROM checkpoints WHERE group_id = ? AND number = ?",
                (group_id, number),
            )
            return Checkpoint.from_row(row) if row else None

    async def list_manual_submissions(self, team_id: str) -> List[ManualSubmission]:
        """
        Get a team's manual submissions, newest first.

        @param team_id: Team identifier
        @return: List of manual submissions
        """
        async with self.connect() as db:
            cursor = await db.execute(
                "SELECT * FROM manual_submissions WHERE team_id = ? "
                "ORDER BY submitted_at DESC",
                (team_id,),
            )
            return [ManualSubmission.from_row(row) for row in await cursor.fetchall()]

    async def get_team_submissions(self, team_id: str) -> List[Submission]:
        async with self.connect() as db:
            cursor = await db.execute(
                "SELECT * FROM submissions WHERE team_id = ? ORDER BY submitted_at ASC",
                (team_id,),
            )
            return [Submission.from_row(row) for row in await cursor.fetchall()]

    async def get_leaderboard(
        self,
        group_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[dict]:
        """
        Get leaderboard rows ordered by score, then time penalty.

        @param group_id: Restrict to one group when given
        @param limit: Maximum number of rows
        @return: List of dictionaries with ranking information
        """
        query = "SELECT * FROM leaderboard"
        params: tuple = ()
        if group_id is not None:
            query += " WHERE group_id = ?"
            params = (group_id,)
        query += (
            " ORDER BY score DESC, total_time_penalty ASC, last_submission_at ASC LIMIT ?"
        )
        params = params + (limit,)

        async with self.connect() as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()

        return [
            {
                "rank": rank,
                "teamId": row["team_id"],
                "teamName": row["team_name"],
                "groupId": row["group_id"],
                "score": row["score"],
                "checkpointsCompleted": row["checkpoints_completed"],
                "totalTimePenalty": row["total_time_penalty"],
                "lastSubmissionAt": row["last_submission_at"],
            }
            for rank, row in enumerate(rows, 1)
        ]

    async def get_event_config(self) -> Optional[dict]:
        async with self.connect() as db:
            row = await self._fetch_one(
                db, "SELECT * FROM event_config WHERE id = 'main'", ()
            )
            return dict(row) if row else None

    async def get_principal_by_token_hash(self, token_hash: str) -> Optional[dict]:
        async with self.connect() as db:
            row = await self._fetch_one(
                db, "SELECT * FROM principals WHERE token_hash = ?", (token_hash,)
            )
            return dict(row) if row else None

    # ------------------------------------------------------------------
    # Admin writes
    # ------------------------------------------------------------------

    async def create_team(
        self,
        team_id: str,
        name: str,
        group_id: Optional[str],
        now: Optional[float] = None,
    ) -> Team:
        """
        Create a team in the waiting state at checkpoint 1.

        @raise DuplicateError: If the team id already exists
        """
        team = Team(id=team_id, name=name, group_id=group_id, updated_at=now)
        async with self.connect() as db:
            try:
                await db.execute(
                    "INSERT INTO teams (id, name, group_id, updated_at) VALUES (?, ?, ?, ?)",
                    (team_id, name, group_id, now),
                )
            except aiosqlite.IntegrityError as e:
                raise DuplicateError(f"Team {team_id} already exists") from e
        return team

    async def upsert_checkpoint(self, checkpoint: Checkpoint) -> None:
        async with self.connect() as db:
            await db.execute(
                """
                INSERT INTO checkpoints (id, group_id, number, title, description,
                    base_points, hint_type, point_deduction, time_penalty,
                    hints_available, hints, proof_id, location_clue, is_active)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    group_id = excluded.group_id,
                    number = excluded.number,
                    title = excluded.title,
                    description = excluded.description,
                    base_points = excluded.base_points,
                    hint_type = excluded.hint_type,
                    point_deduction = excluded.point_deduction,
                    time_penalty = excluded.time_penalty,
                    hints_available = excluded.hints_available,
                    hints = excluded.hints,
                    proof_id = excluded.proof_id,
                    location_clue = excluded.location_clue,
                    is_active = excluded.is_active
                """,
                (
                    checkpoint.id,
                    checkpoint.group_id,
                    checkpoint.number,
                    checkpoint.title,
                    checkpoint.description,
                    checkpoint.base_points,
                    checkpoint.hint_type,
                    checkpoint.point_deduction,
                    checkpoint.time_penalty,
                    checkpoint.hints_available,
                    checkpoint.hints_json(),
                    checkpoint.proof_id,
                    checkpoint.location_clue,
                    1 if checkpoint.is_active else 0,
                ),
            )

    async def set_checkpoint_secret(
        self,
        checkpoint_id: str,
        secret_hash: str,
    ) -> None:
        async with self.connect() as db:
            await db.execute(
                "INSERT INTO checkpoint_secrets (checkpoint_id, secret_hash) VALUES (?, ?) "
                "ON CONFLICT(checkpoint_id) DO UPDATE SET secret_hash = excluded.secret_hash",
                (checkpoint_id, secret_hash.lower()),
            )

    async def create_principal(
        self,
        principal_id: str,
        name: str,
        role: str,
        token_hash: Optional[str],
        team_id: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> None:
        async with self.connect() as db:
            await db.execute(
                """
                INSERT INTO principals (id, name, role, team_id, group_id, token_hash)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name, role = excluded.role,
                    team_id = excluded.team_id, group_id = excluded.group_id,
                    token_hash = excluded.token_hash
                """,
                (principal_id, name, role, team_id, group_id, token_hash),
            )

    async def set_event_phase(
        self,
        is_active: bool,
        phase: str,
        now: float,
    ) -> None:
        """
        Persist the event phase row read by DatabaseEventPhase.

        @param is_active: Whether scoring operations are permitted
        @param phase: "active", "paused", "completed" or "preparation"
        @param now: Current epoch seconds
        """
        started_at = now if phase == "active" else None
        ended_at = now if phase == "completed" else None
        async with self.connect() as db:
            await db.execute(
                """
                INSERT INTO event_config (id, is_active, current_phase, started_at,
                    ended_at, updated_at)
                VALUES ('main', ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    is_active = excluded.is_active,
                    current_phase = excluded.current_phase,
                    started_at = COALESCE(excluded.started_at, event_config.started_at),
                    ended_at = COALESCE(excluded.ended_at, event_config.ended_at),
                    updated_at = excluded.updated_at
                """,
                (1 if is_active else 0, phase, started_at, ended_at, now),
            )
