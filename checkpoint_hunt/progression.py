"""
Check-in, checkpoint viewing and hint requests.

These operations feed the guards of the scoring path: a check-in proves
presence and starts the checkpoint clock, viewing the checkpoint moves the
team to solving, and hint usage records determine the hint penalty.
"""

import hmac
import logging
import time
from typing import Any, Callable

import aiosqlite

from . import state_machine
from .errors import (
    ConfigurationError,
    HuntError,
    NotFoundError,
    StateConflictError,
    TransientStoreError,
    require_text,
)
from .models import CheckIn, HintType, Team, TeamStatus
from .results import Outcome

logger = logging.getLogger(__name__)


class ProgressionService:
    """Handles the presence and hint side of team progression."""

    def __init__(
        self,
        db_manager: Any,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db = db_manager
        self.clock = clock

    async def _require_team(self, team_id: str) -> Team:
        team = await self.db.get_team(team_id)
        if team is None:
            raise NotFoundError("Team not found")
        return team

    async def _require_checkpoint(self, checkpoint_id: str):
        checkpoint = await self.db.get_checkpoint(checkpoint_id)
        if checkpoint is None:
            raise NotFoundError("Checkpoint not found")
        return checkpoint

    async def record_check_in(
        self,
        team_id: str,
        checkpoint_id: str,
        proof: str,
    ) -> Outcome:
        """
        Record a team's proof of presence at a checkpoint.

        An existing check-in for the pair is reported as already checked in
        without any transition. Otherwise the check-in record and the
        waiting|moving -> at_location transition are written together.

        @param team_id: Team checking in
        @param checkpoint_id: Checkpoint being checked in to
        @param proof: Proof identifier scanned at the location
        @return: Outcome with checkpoint number, title and check-in time
        """
        try:
            require_text(
                "Team ID, checkpoint ID, and proof are required",
                team_id,
                checkpoint_id,
                proof,
            )

            team = await self._require_team(team_id)
            checkpoint = await self._require_checkpoint(checkpoint_id)
            state_machine.ensure_same_group(team, checkpoint)

            if not checkpoint.proof_id:
                logger.error("No check-in proof configured for checkpoint %s", checkpoint.id)
                raise ConfigurationError("Checkpoint configuration error")
            if not hmac.compare_digest(
                str(proof).strip().encode("utf-8"), checkpoint.proof_id.encode("utf-8")
            ):
                raise StateConflictError(
                    "Invalid proof for this checkpoint. "
                    "Please scan the code at the physical location."
                )

            async def unit(db: aiosqlite.Connection) -> Outcome:
                existing = await self.db.fetch_check_in(db, team_id, checkpoint.id)
                if existing is not None:
                    return Outcome(
                        data={
                            "message": "Already checked in at this location",
                            "alreadyCheckedIn": True,
                            "checkpointId": checkpoint.id,
                            "checkpointNumber": checkpoint.number,
                            "checkpointTitle": checkpoint.title,
                            "checkedInAt": existing.checked_in_at,
                        }
                    )

                fresh = await self.db.fetch_team(db, team_id)
                if fresh is None:
                    raise NotFoundError("Team not found")

                now = self.clock()
                arrived = state_machine.check_in(fresh, checkpoint, now)
                await self.db.insert_check_in(
                    db,
                    CheckIn(
                        team_id=team_id,
                        checkpoint_id=checkpoint.id,
                        checkpoint_number=checkpoint.number,
                        checked_in_at=now,
                    ),
                )
                await self.db.write_team(db, arrived)
                return Outcome(
                    data={
                        "message": f"You have reached checkpoint {checkpoint.number}",
                        "alreadyCheckedIn": False,
                        "checkpointId": checkpoint.id,
                        "checkpointNumber": checkpoint.number,
                        "checkpointTitle": checkpoint.title,
                        "checkedInAt": now,
                    }
                )

            outcome = await self.db.run_transaction(
                unit, description=f"check-in {team_id}/{checkpoint_id}"
            )
            if not outcome.data["alreadyCheckedIn"]:
                logger.info(
                    "Check-in successful - Team: %s, Checkpoint: %d",
                    team_id,
                    checkpoint.number,
                )
            return outcome

        except TransientStoreError:
            raise
        except HuntError as e:
            logger.info(
                "Check-in refused - Team: %s, Checkpoint: %s: %s",
                team_id,
                checkpoint_id,
                e.message,
            )
            return Outcome.failure(e)

    async def get_current_checkpoint(self, team_id: str) -> Outcome:
        """
        Get the team's current checkpoint and start solving it.

        Viewing the checkpoint after check-in moves the team from at_location
        to solving. Viewing again later changes nothing.

        @param team_id: Team identifier
        @return: Outcome with the public checkpoint view and timer information
        """
        try:
            team = await self._require_team(team_id)
            if not team.group_id:
                raise StateConflictError("Team is not assigned to a group")

            checkpoint = await self.db.find_checkpoint(
                team.group_id, team.current_checkpoint
            )
            if checkpoint is None:
                return Outcome(
                    data={
                        "message": (
                            f"Checkpoint {team.current_checkpoint} not configured yet."
                        ),
                        "checkpoint": None,
                        "teamStatus": team.status,
                        "currentCheckpoint": team.current_checkpoint,
                    }
                )

            check_in = await self.db.get_check_in(team.id, checkpoint.id)
            now = self.clock()

            if team.status == TeamStatus.AT_LOCATION:
                solving = state_machine.start_solving(team, now)
                async with self.db.connect() as db:
                    if await self.db.mark_solving(db, team.id, now):
                        logger.info(
                            "Team %s started solving checkpoint %d",
                            team.id,
                            checkpoint.number,
                        )
                team = solving

            used = await self.db.get_hint_numbers(team.id, checkpoint.id)
            started = team.checkpoint_started_at
            return Outcome(
                data={
                    "checkpoint": checkpoint.public_view(used),
                    "teamStatus": team.status,
                    "isCheckedIn": check_in is not None,
                    "checkInTime": check_in.checked_in_at if check_in else None,
                    "timeElapsed": int(max(0, now - started)) if started else 0,
                }
            )

        except HuntError as e:
            return Outcome.failure(e)

    async def request_hint(
        self,
        team_id: str,
        checkpoint_id: str,
    ) -> Outcome:
        """
        Reveal the next unused hint of a checkpoint for a team.

        Hints are revealed lowest number first and each number is recorded at
        most once per team and checkpoint, so a repeated request never
        charges twice.

        @param team_id: Team requesting the hint
        @param checkpoint_id: Checkpoint the hint belongs to
        @return: Outcome with hint content, incremental penalty and hints remaining
        """
        try:
            require_text("Team ID and checkpoint ID are required", team_id, checkpoint_id)

            team = await self._require_team(team_id)
            checkpoint = await self._require_checkpoint(checkpoint_id)
            state_machine.ensure_same_group(team, checkpoint)

            if await self.db.get_check_in(team_id, checkpoint.id) is None:
                raise StateConflictError("You must check in at the location first")
            if await self.db.get_submission(team_id, checkpoint.id) is not None:
                raise StateConflictError("This checkpoint has already been completed")

            offered = sorted(
                (h for h in checkpoint.hints if 1 <= h.number <= checkpoint.hints_available),
                key=lambda h: h.number,
            )
            if not offered:
                raise NotFoundError("No hints available for this checkpoint")

            async def unit(db: aiosqlite.Connection):
                used = await self.db.fetch_hint_numbers(db, team_id, checkpoint.id)
                next_hint = next((h for h in offered if h.number not in used), None)
                if next_hint is None:
                    raise StateConflictError(
                        f"No more hints available. You have used {len(used)} "
                        f"of {checkpoint.hints_available} hints."
                    )
                created = await self.db.insert_hint_usage(
                    db, team_id, checkpoint.id, next_hint.number, self.clock()
                )
                return next_hint, created, len(used) + (1 if created else 0)

            hint, created, used_count = await self.db.run_transaction(
                unit, description=f"hint {team_id}/{checkpoint_id}"
            )

            points = 0
            minutes = 0
            if created:
                if checkpoint.hint_type == HintType.TIME:
                    minutes = checkpoint.time_penalty
                else:
                    points = checkpoint.point_deduction

            logger.info(
                "Hint requested - Team: %s, Checkpoint: %s, Hint: #%d, new=%s",
                team_id,
                checkpoint.id,
                hint.number,
                created,
            )
            return Outcome(
                data={
                    "hint": {"number": hint.number, "content": hint.content},
                    "penalty": {
                        "type": checkpoint.hint_type,
                        "points": points,
                        "time": minutes,
                    },
                    "hintsRemaining": max(0, checkpoint.hints_available - used_count),
                    "alreadyUsed": not created,
                }
            )

        except TransientStoreError:
            raise
        except HuntError as e:
            return Outcome.failure(e)

    async def team_stats(self, team_id: str) -> Outcome:
        """
        Get a team's score summary.

        @param team_id: Team identifier
        @return: Outcome with score, checkpoints completed and submission count
        """
        try:
            team = await self._require_team(team_id)
        except HuntError as e:
            return Outcome.failure(e)

        submissions = await self.db.get_team_submissions(team_id)
        return Outcome(
            data={
                "teamName": team.name,
                "score": team.score,
                "checkpointsCompleted": team.checkpoints_completed,
                "timePenalty": team.time_penalty,
                "currentCheckpoint": team.current_checkpoint,
                "status": team.status,
                "totalSubmissions": len(submissions),
            }
        )
