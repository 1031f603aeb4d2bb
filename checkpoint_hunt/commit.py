"""
The single commit path that awards a checkpoint to a team.

Both the automated flag path and the captain-approval path end here, so a
checkpoint is scored by the same rules and recorded at most once per team.
The duplicate check, the fresh team read, the score computation and every
dependent write run inside one transaction.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import aiosqlite

from . import state_machine
from .errors import DuplicateError, NotFoundError
from .models import Checkpoint, Submission, Team, submission_key
from .scoring import ScoreBreakdown, calculate_final_score, elapsed_minutes

logger = logging.getLogger(__name__)

CORRECT = "correct"


@dataclass
class CommitResult:
    submission: Submission
    breakdown: ScoreBreakdown
    team: Team

    @property
    def next_checkpoint(self) -> int:
        return self.team.current_checkpoint


class CommitProtocol:
    """Atomic check-then-write award of one (team, checkpoint) pair."""

    def __init__(
        self,
        db_manager: Any,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db = db_manager
        self.clock = clock

    async def apply(
        self,
        db: aiosqlite.Connection,
        team_id: str,
        checkpoint: Checkpoint,
        source: str,
        submitted_by: Optional[str],
        submitted_at: Optional[float] = None,
        manual_submission_id: Optional[str] = None,
        reviewed_by: Optional[str] = None,
    ) -> CommitResult:
        """
        Award the checkpoint inside an already open transaction.

        @param db: Connection of the caller's transaction
        @param team_id: Team being awarded
        @param checkpoint: Checkpoint being completed
        @param source: "automated" or "manual"
        @param submitted_by: Principal who submitted the flag
        @param submitted_at: Original submission time, defaults to now
        @param manual_submission_id: Review record this award came from
        @param reviewed_by: Reviewer who approved a manual submission
        @return: CommitResult with the new submission and the advanced team
        @raise DuplicateError: If the pair already has a correct submission
        @raise NotFoundError: If the team disappeared
        @raise StateConflictError: If the team is not solving this checkpoint
        """
        now = self.clock()

        existing = await self.db.fetch_submission(db, team_id, checkpoint.id)
        if existing is not None and existing.status == CORRECT:
            raise DuplicateError(
                "This checkpoint has already been completed by your team"
            )

        team = await self.db.fetch_team(db, team_id)
        if team is None:
            raise NotFoundError("Team not found")
        state_machine.ensure_same_group(team, checkpoint)

        hints_used = len(await self.db.fetch_hint_numbers(db, team_id, checkpoint.id))
        breakdown = calculate_final_score(
            base_score=checkpoint.base_points,
            hints_used=hints_used,
            point_deduction=checkpoint.point_deduction,
            time_taken=elapsed_minutes(team.checkpoint_started_at, now),
            time_penalty=checkpoint.time_penalty,
            hint_type=checkpoint.hint_type,
        )
        advanced = state_machine.complete_checkpoint(team, checkpoint, breakdown, now)

        submission = Submission(
            id=submission_key(team_id, checkpoint.id),
            team_id=team_id,
            checkpoint_id=checkpoint.id,
            status=CORRECT,
            base_score=breakdown.base_score,
            hints_used=breakdown.hints_used,
            point_deduction=breakdown.point_deduction,
            time_penalty=breakdown.time_penalty,
            final_score=breakdown.final_score,
            time_taken=breakdown.time_taken,
            total_time=breakdown.total_time,
            source=source,
            submitted_by=submitted_by,
            submitted_at=submitted_at if submitted_at is not None else now,
            manual_submission_id=manual_submission_id,
            reviewed_by=reviewed_by,
        )

        await self.db.insert_submission(db, submission)
        await self.db.write_team(db, advanced)
        await self.db.upsert_leaderboard(db, advanced, now)

        return CommitResult(submission=submission, breakdown=breakdown, team=advanced)

    async def commit(
        self,
        team_id: str,
        checkpoint: Checkpoint,
        source: str,
        submitted_by: Optional[str],
    ) -> CommitResult:
        """
        Award the checkpoint in its own transaction, retrying on conflicts.

        Each retry starts again from the duplicate check, so a retry after a
        concurrent winner ends in DuplicateError rather than a second award.
        """

        async def unit(db: aiosqlite.Connection) -> CommitResult:
            return await self.apply(db, team_id, checkpoint, source, submitted_by)

        result = await self.db.run_transaction(
            unit, description=f"commit {team_id}/{checkpoint.id}"
        )
        logger.info(
            "Score committed - Team: %s, Checkpoint: %s, Source: %s, Score: +%d, "
            "Time: %dmin, Hints: %d",
            team_id,
            checkpoint.id,
            source,
            result.breakdown.final_score,
            result.breakdown.time_taken,
            result.breakdown.hints_used,
        )
        return result
