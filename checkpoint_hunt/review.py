"""
Captain review of manually submitted flags.

A manual submission moves pending -> approved | rejected. Approval awards the
checkpoint through the same CommitProtocol as the automated path, inside the
transaction that re-checks the review record, so the two paths can never
both score a pair.
"""

import logging
import time
import uuid
from typing import Any, Callable, Optional

import aiosqlite

from . import state_machine
from .auth import Principal, ensure_can_view_team, ensure_reviewer, ensure_team_member
from .commit import CORRECT, CommitProtocol
from .errors import (
    DuplicateError,
    HuntError,
    NotFoundError,
    StateConflictError,
    TransientStoreError,
    ValidationError,
    require_text,
)
from .models import ManualSubmission, ReviewStatus, SubmissionSource
from .results import Outcome, ReviewResult
from .secret_validator import SecretValidator

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "Flag is incorrect"
ALREADY_COMPLETED_REASON = "Level already completed via another submission"


def _new_submission_id() -> str:
    return uuid.uuid4().hex


class ReviewCoordinator:
    """Creates, approves and rejects manual submissions."""

    def __init__(
        self,
        db_manager: Any,
        validator: SecretValidator,
        commit_protocol: CommitProtocol,
        event_phase: Any,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = _new_submission_id,
        default_rejection_reason: str = DEFAULT_REJECTION_REASON,
        already_completed_reason: str = ALREADY_COMPLETED_REASON,
    ) -> None:
        self.db = db_manager
        self.validator = validator
        self.commit = commit_protocol
        self.events = event_phase
        self.clock = clock
        self.id_factory = id_factory
        self.default_rejection_reason = default_rejection_reason
        self.already_completed_reason = already_completed_reason

    async def _load_pending(self, submission_id: str) -> ManualSubmission:
        if not submission_id:
            raise ValidationError("Submission ID is required")
        manual = await self.db.get_manual_submission(submission_id)
        if manual is None:
            raise NotFoundError("Submission not found")
        if manual.status != ReviewStatus.PENDING:
            raise StateConflictError(f"Submission has already been {manual.status}")
        return manual

    async def create_manual_submission(
        self,
        principal: Optional[Principal],
        team_id: str,
        checkpoint_id: str,
        secret: str,
    ) -> ReviewResult:
        """
        Queue a flag for captain review.

        The checks for an existing correct submission and for another pending
        review of the same pair run in the transaction that writes the record.

        @param principal: Authenticated caller, None for trusted internal calls
        @param team_id: Team submitting the flag
        @param checkpoint_id: Checkpoint the flag is for
        @param secret: Flag as typed by the team, kept for the reviewer
        @return: ReviewResult with the new submission id and status "pending"
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

            phase = await self.events.current()
            phase.ensure_active("Manual flag submissions")

            team = await self.db.get_team(team_id)
            if team is None:
                raise NotFoundError("Team not found")
            checkpoint = await self.db.get_checkpoint(checkpoint_id)
            if checkpoint is None:
                raise NotFoundError("Checkpoint not found")
            if not checkpoint.is_active:
                raise StateConflictError("This checkpoint is not currently active")
            state_machine.ensure_same_group(team, checkpoint)
            state_machine.ensure_current_checkpoint(team, checkpoint)
            if await self.db.get_check_in(team_id, checkpoint_id) is None:
                raise StateConflictError(
                    "You must check in at the location first before submitting flags"
                )
            state_machine.ensure_solving(team)

            manual = ManualSubmission(
                id=self.id_factory(),
                team_id=team_id,
                checkpoint_id=checkpoint_id,
                secret=secret,
                submitted_by=principal.id if principal else None,
                submitted_at=self.clock(),
            )

            async def unit(db: aiosqlite.Connection) -> None:
                existing = await self.db.fetch_submission(db, team_id, checkpoint_id)
                if existing is not None and existing.status == CORRECT:
                    raise DuplicateError(
                        "This checkpoint has already been completed by your team"
                    )
                if await self.db.fetch_pending_manual_submission(
                    db, team_id, checkpoint_id
                ):
                    raise DuplicateError(
                        "You already have a pending submission for this checkpoint. "
                        "Please wait for review."
                    )
                await self.db.insert_manual_submission(db, manual)

            await self.db.run_transaction(
                unit, description=f"manual submission {team_id}/{checkpoint_id}"
            )

        except TransientStoreError:
            raise
        except HuntError as e:
            return ReviewResult.rejected(e)

        logger.info(
            "New manual submission %s for team %s, checkpoint %s",
            manual.id,
            team_id,
            checkpoint_id,
        )
        return ReviewResult(submission_id=manual.id, status=ReviewStatus.PENDING)

    async def approve_manual_submission(
        self,
        reviewer: Principal,
        submission_id: str,
    ) -> ReviewResult:
        """
        Approve a pending manual submission and award the checkpoint.

        Inside one transaction: the record must still be pending; if the pair
        was already scored the record is rejected as already completed and a
        duplicate result is returned; the team must still be on the
        checkpoint's sequence number. Only then the shared commit runs.

        @param reviewer: Captain of the team's group, or an admin
        @param submission_id: Manual submission to approve
        @return: ReviewResult with status "approved" and the awarded score
        """
        try:
            manual = await self._load_pending(submission_id)
            team = await self.db.get_team(manual.team_id)
            if team is None:
                raise NotFoundError("Team not found")
            ensure_reviewer(reviewer, team)

            phase = await self.events.current()
            phase.ensure_active("Approvals")

            checkpoint = await self.db.get_checkpoint(manual.checkpoint_id)
            if checkpoint is None:
                raise NotFoundError("Checkpoint not found")
            if not checkpoint.is_active:
                raise StateConflictError("This checkpoint is not currently active")
            state_machine.ensure_same_group(team, checkpoint)

            async def unit(db: aiosqlite.Connection) -> ReviewResult:
                now = self.clock()
                current = await self.db.fetch_manual_submission(db, submission_id)
                if current is None:
                    raise NotFoundError("Submission not found")
                if current.status != ReviewStatus.PENDING:
                    raise StateConflictError("Submission has already been processed")

                existing = await self.db.fetch_submission(
                    db, current.team_id, current.checkpoint_id
                )
                if existing is not None and existing.status == CORRECT:
                    await self.db.finish_review(
                        db,
                        submission_id,
                        ReviewStatus.REJECTED,
                        reviewer.id,
                        now,
                        rejection_reason=self.already_completed_reason,
                    )
                    return ReviewResult.rejected(
                        DuplicateError(
                            "This checkpoint has already been completed by the team"
                        ),
                        submission_id=submission_id,
                        status=ReviewStatus.REJECTED,
                    )

                live = await self.db.fetch_team(db, current.team_id)
                if live is None:
                    raise NotFoundError("Team not found")
                if live.current_checkpoint != checkpoint.number:
                    raise StateConflictError(
                        f"Team progression mismatch: team at checkpoint "
                        f"{live.current_checkpoint}, submission for checkpoint "
                        f"{checkpoint.number}"
                    )

                committed = await self.commit.apply(
                    db,
                    current.team_id,
                    checkpoint,
                    SubmissionSource.MANUAL,
                    submitted_by=current.submitted_by,
                    submitted_at=current.submitted_at,
                    manual_submission_id=submission_id,
                    reviewed_by=reviewer.id,
                )
                await self.db.finish_review(
                    db,
                    submission_id,
                    ReviewStatus.APPROVED,
                    reviewer.id,
                    now,
                    score_awarded=committed.breakdown.final_score,
                )
                return ReviewResult(
                    submission_id=submission_id,
                    status=ReviewStatus.APPROVED,
                    score_awarded=committed.breakdown.final_score,
                )

            result = await self.db.run_transaction(
                unit, description=f"approve {submission_id}"
            )

        except TransientStoreError:
            raise
        except HuntError as e:
            return ReviewResult.rejected(e, submission_id=submission_id)

        if result.status == ReviewStatus.APPROVED:
            logger.info(
                "Submission %s approved by %s, +%d points",
                submission_id,
                reviewer.id,
                result.score_awarded,
            )
        else:
            logger.info(
                "Submission %s auto-rejected: checkpoint already completed",
                submission_id,
            )
        return result

    async def reject_manual_submission(
        self,
        reviewer: Principal,
        submission_id: str,
        reason: Optional[str] = None,
    ) -> ReviewResult:
        """
        Reject a pending manual submission. Team and ledger are untouched.

        @param reviewer: Captain of the team's group, or an admin
        @param submission_id: Manual submission to reject
        @param reason: Reason shown to the team
        @return: ReviewResult with status "rejected"
        """
        try:
            if reason is not None and not isinstance(reason, str):
                raise ValidationError("Rejection reason must be text")
            reason = (reason or "").strip() or self.default_rejection_reason
            manual = await self._load_pending(submission_id)
            team = await self.db.get_team(manual.team_id)
            if team is None:
                raise NotFoundError("Team not found")
            ensure_reviewer(reviewer, team)

            async with self.db.connect() as db:
                updated = await self.db.finish_review(
                    db,
                    submission_id,
                    ReviewStatus.REJECTED,
                    reviewer.id,
                    self.clock(),
                    rejection_reason=reason,
                )
            if not updated:
                raise StateConflictError("Submission has already been processed")

        except TransientStoreError:
            raise
        except HuntError as e:
            return ReviewResult.rejected(e, submission_id=submission_id)

        logger.info("Submission %s rejected by %s", submission_id, reviewer.id)
        return ReviewResult(
            submission_id=submission_id, status=ReviewStatus.REJECTED, reason=reason
        )

    async def list_team_manual_submissions(
        self,
        principal: Principal,
        team_id: str,
    ) -> Outcome:
        """
        List a team's manual submissions, newest first.

        @param principal: Player of the team, captain of its group, or admin
        @param team_id: Team identifier
        @return: Outcome with submissions and their count
        """
        try:
            require_text("Team ID is required", team_id)
            team = await self.db.get_team(team_id)
            if team is None:
                raise NotFoundError("Team not found")
            ensure_can_view_team(principal, team)
        except HuntError as e:
            return Outcome.failure(e)

        submissions = await self.db.list_manual_submissions(team_id)
        return Outcome(
            data={
                "submissions": [s.to_dict() for s in submissions],
                "count": len(submissions),
            }
        )
