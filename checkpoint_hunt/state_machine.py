"""
Team progression state machine.

    waiting --check-in--> at_location --view--> solving --score--> moving
    moving  --check-in--> at_location (next checkpoint) ...

Every transition here is pure: it takes a Team and returns a new Team, or
raises StateConflictError without touching the input. Callers persist the
result inside the same transaction that read the team.
"""

from dataclasses import replace

from .errors import StateConflictError
from .models import Checkpoint, Team, TeamStatus
from .scoring import ScoreBreakdown

CHECK_IN_FROM = (TeamStatus.WAITING, TeamStatus.MOVING)


def ensure_same_group(
    team: Team,
    checkpoint: Checkpoint,
) -> None:
    if not team.group_id:
        raise StateConflictError("Team is not assigned to a group")
    if checkpoint.group_id != team.group_id:
        raise StateConflictError("This checkpoint does not belong to your group")


def ensure_current_checkpoint(
    team: Team,
    checkpoint: Checkpoint,
) -> None:
    """
    Require the checkpoint to be exactly the team's unlocked one.

    @param team: Team record
    @param checkpoint: Checkpoint being acted on
    @raise StateConflictError: If the sequence numbers differ
    """
    if team.current_checkpoint != checkpoint.number:
        raise StateConflictError(
            f"Team is at checkpoint {team.current_checkpoint}, "
            f"not checkpoint {checkpoint.number}. Checkpoints must be completed in order."
        )


def ensure_solving(team: Team) -> None:
    if team.status != TeamStatus.SOLVING:
        raise StateConflictError(
            f"Invalid team state for flag submission (status: {team.status}). "
            "You must be actively solving the challenge."
        )


def check_in(
    team: Team,
    checkpoint: Checkpoint,
    now: float,
) -> Team:
    """
    waiting|moving -> at_location; starts the checkpoint clock.

    @param team: Team record read in the current transaction
    @param checkpoint: Checkpoint whose proof was verified
    @param now: Current epoch seconds
    @return: Updated team
    @raise StateConflictError: On group, sequence or status mismatch
    """
    ensure_same_group(team, checkpoint)
    if checkpoint.number > team.current_checkpoint:
        raise StateConflictError(
            "This location is not unlocked for your team. "
            f"Complete checkpoint {team.current_checkpoint} first."
        )
    if checkpoint.number < team.current_checkpoint:
        raise StateConflictError("This checkpoint has already been completed")
    if team.status not in CHECK_IN_FROM:
        raise StateConflictError(
            f"Cannot check in from '{team.status}' state. "
            "You must be in 'waiting' or 'moving' state."
        )
    return replace(
        team,
        status=TeamStatus.AT_LOCATION,
        checkpoint_started_at=now,
        last_check_in_at=now,
        updated_at=now,
    )


def start_solving(
    team: Team,
    now: float,
) -> Team:
    """
    at_location -> solving. Already solving is a no-op.

    @param team: Team record
    @param now: Current epoch seconds
    @return: Updated team, or the same team when nothing changes
    @raise StateConflictError: From any other status
    """
    if team.status == TeamStatus.SOLVING:
        return team
    if team.status != TeamStatus.AT_LOCATION:
        raise StateConflictError(
            f"Cannot start solving from '{team.status}' state. Check in first."
        )
    return replace(team, status=TeamStatus.SOLVING, updated_at=now)


def complete_checkpoint(
    team: Team,
    checkpoint: Checkpoint,
    award: ScoreBreakdown,
    now: float,
) -> Team:
    """
    solving -> moving; applies the award and unlocks the next checkpoint.

    @param team: Team record read in the commit transaction
    @param checkpoint: Checkpoint being scored
    @param award: Score computed for this completion
    @param now: Current epoch seconds
    @return: Updated team with current_checkpoint advanced by one
    @raise StateConflictError: If the team is not solving this checkpoint
    """
    ensure_current_checkpoint(team, checkpoint)
    ensure_solving(team)
    return replace(
        team,
        score=team.score + award.final_score,
        checkpoints_completed=team.checkpoints_completed + 1,
        time_penalty=team.time_penalty + award.time_penalty,
        current_checkpoint=team.current_checkpoint + 1,
        status=TeamStatus.MOVING,
        updated_at=now,
    )
