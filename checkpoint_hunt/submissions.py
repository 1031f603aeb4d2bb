"""
Automated flag submission.
"""

import logging
from typing import Any, Optional

from . import state_machine
from .auth import Principal, ensure_team_member
from .commit import CommitProtocol
from .errors import (
    DuplicateError,
    HuntError,
    NotFoundError,
    StateConflictError,
    TransientStoreError,
    require_text,
)
from .models import SubmissionSource
from .results import SubmitResult
from .secret_validator import SecretValidator

logger = logging.getLogger(__name__)


class SubmissionService:
    """Guards and scores flags submitted directly by a team."""

    def __init__(
        self,
        db_manager: Any,
        validator: SecretValidator,
        commit_protocol: CommitProtocol,
        event_phase: Any,
    ) -> None:
        self.db = db_manager
        self.validator = validator
        self.commit = commit_protocol
        self.events = event_phase

    async def submit_secret(
        self,
        principal: Optional[Principal],
        team_id: str,
        checkpoint_id: str,
        secret: str,
    ) -> SubmitResult:
        """
        Handle a flag submission for a team's current checkpoint.

        Guards run cheapest first and before the flag is checked. A prior
        correct submission is reported as a duplicate ahead of any state
        guard, so a retry after success reads "already completed".

        @param principal: Authenticated caller, None for trusted internal calls
        @param team_id: Team submitting the flag
        @param checkpoint_id: Checkpoint the flag is for
        @param secret: Submitted flag
        @return: SubmitResult describing the award, an incorrect flag, or a rejection
        @raise TransientStoreError: If the commit kept conflicting until retries ran out
        """
        try:
            require_text(
                "Team ID, checkpoint ID, and flag are required",
                team_id,
                checkpoint_id,
                secret,
            )
            self.validator.check_format(secret)

            if principal is not None:
                ensure_team_member(principal, team_id)
            submitted_by = principal.id if principal else None

            phase = await self.events.current()
            phase.ensure_active("Flag submissions")

            if await self.db.get_submission(team_id, checkpoint_id) is not None:
                raise DuplicateError(
                    "This checkpoint has already been completed by your team"
                )

            team = await self.db.get_team(team_id)
            if team is None:
                raise NotFoundError("Team not found")
            if not team.group_id:
                raise StateConflictError("Team is not assigned to a group")

            checkpoint = await self.db.get_checkpoint(checkpoint_id)
            if checkpoint is None:
                raise NotFoundError("Checkpoint not found")
            if not checkpoint.is_active:
                raise StateConflictError("This checkpoint is not currently active")
            state_machine.ensure_same_group(team, checkpoint)

            if await self.db.get_check_in(team_id, checkpoint_id) is None:
                raise StateConflictError(
                    "You must check in at the location first before submitting flags"
                )
            state_machine.ensure_current_checkpoint(team, checkpoint)
            state_machine.ensure_solving(team)

            if not await self.validator.validate(secret, checkpoint_id):
                logger.info(
                    "Invalid flag attempt - Team: %s, Checkpoint: %s",
                    team_id,
                    checkpoint_id,
                )
                return SubmitResult.incorrect()

            logger.info("Correct flag - Team: %s, Checkpoint: %s", team_id, checkpoint_id)
            committed = await self.commit.commit(
                team_id, checkpoint, SubmissionSource.AUTOMATED, submitted_by
            )

        except TransientStoreError:
            raise
        except HuntError as e:
            logger.info(
                "Flag submission refused - Team: %s, Checkpoint: %s: %s",
                team_id,
                checkpoint_id,
                e.message,
            )
            return SubmitResult.rejected(e)

        next_checkpoint = await self.db.find_checkpoint(
            team.group_id, committed.next_checkpoint
        )
        return SubmitResult(
            accepted=True,
            status="correct",
            score_awarded=committed.breakdown.final_score,
            breakdown=committed.breakdown,
            submission_id=committed.submission.id,
            next_checkpoint=committed.next_checkpoint,
            next_location_clue=next_checkpoint.location_clue if next_checkpoint else None,
        )
