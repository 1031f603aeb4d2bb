"""
Record types stored by the hunt datastore.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class TeamStatus:
    WAITING = "waiting"
    AT_LOCATION = "at_location"
    SOLVING = "solving"
    MOVING = "moving"

    ALL = (WAITING, AT_LOCATION, SOLVING, MOVING)


class HintType:
    POINTS = "points"
    TIME = "time"

    ALL = (POINTS, TIME)


class ReviewStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SubmissionSource:
    AUTOMATED = "automated"
    MANUAL = "manual"


def submission_key(
    team_id: str,
    checkpoint_id: str,
) -> str:
    """
    Deterministic key of the authoritative submission for a pair.

    Repeated attempts for the same team and checkpoint collapse onto this key.

    @param team_id: Team identifier
    @param checkpoint_id: Checkpoint identifier
    @return: String key "<team>_<checkpoint>"
    """
    return f"{team_id}_{checkpoint_id}"


@dataclass
class Team:
    id: str
    name: str
    group_id: Optional[str]
    score: int = 0
    checkpoints_completed: int = 0
    time_penalty: int = 0
    current_checkpoint: int = 1
    status: str = TeamStatus.WAITING
    checkpoint_started_at: Optional[float] = None
    last_check_in_at: Optional[float] = None
    updated_at: Optional[float] = None

    @classmethod
    def from_row(cls, row: Any) -> "Team":
        return cls(
            id=row["id"],
            name=row["name"],
            group_id=row["group_id"],
            score=row["score"],
            checkpoints_completed=row["checkpoints_completed"],
            time_penalty=row["time_penalty"],
            current_checkpoint=row["current_checkpoint"],
            status=row["status"],
            checkpoint_started_at=row["checkpoint_started_at"],
            last_check_in_at=row["last_check_in_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "groupId": self.group_id,
            "score": self.score,
            "checkpointsCompleted": self.checkpoints_completed,
            "timePenalty": self.time_penalty,
            "currentCheckpoint": self.current_checkpoint,
            "status": self.status,
            "checkpointStartedAt": self.checkpoint_started_at,
        }


@dataclass
class Hint:
    number: int
    content: str


@dataclass
class Checkpoint:
    """Public checkpoint metadata. The secret hash lives in its own table."""

    id: str
    group_id: str
    number: int
    title: str = ""
    description: str = ""
    base_points: int = 0
    hint_type: str = HintType.POINTS
    point_deduction: int = 0
    time_penalty: int = 0
    hints_available: int = 0
    hints: List[Hint] = field(default_factory=list)
    proof_id: Optional[str] = None
    location_clue: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Any) -> "Checkpoint":
        hints = [
            Hint(number=int(h["number"]), content=str(h["content"]))
            for h in json.loads(row["hints"] or "[]")
        ]
        return cls(
            id=row["id"],
            group_id=row["group_id"],
            number=row["number"],
            title=row["title"] or "",
            description=row["description"] or "",
            base_points=row["base_points"],
            hint_type=row["hint_type"],
            point_deduction=row["point_deduction"],
            time_penalty=row["time_penalty"],
            hints_available=row["hints_available"],
            hints=hints,
            proof_id=row["proof_id"],
            location_clue=row["location_clue"],
            is_active=bool(row["is_active"]),
        )

    def hints_json(self) -> str:
        return json.dumps(
            [{"number": h.number, "content": h.content} for h in self.hints]
        )

    def public_view(
        self,
        used_hint_numbers: List[int],
    ) -> Dict[str, Any]:
        """
        Checkpoint details safe to show a team.

        @param used_hint_numbers: Hint numbers the team has already revealed
        @return: Dictionary without proof id or unrevealed hints
        """
        return {
            "id": self.id,
            "number": self.number,
            "title": self.title,
            "description": self.description,
            "basePoints": self.base_points,
            "hintType": self.hint_type,
            "hintsAvailable": self.hints_available,
            "hintsUsed": len(used_hint_numbers),
            "hintsUsedNumbers": sorted(used_hint_numbers),
            "hints": [
                {"number": h.number, "content": h.content}
                for h in self.hints
                if h.number in used_hint_numbers
            ],
            "isActive": self.is_active,
        }


@dataclass
class Submission:
    """The authoritative, at-most-once scoring record for a pair."""

    id: str
    team_id: str
    checkpoint_id: str
    status: str
    base_score: int
    hints_used: int
    point_deduction: int
    time_penalty: int
    final_score: int
    time_taken: int
    total_time: int
    source: str
    submitted_by: Optional[str]
    submitted_at: float
    manual_submission_id: Optional[str] = None
    reviewed_by: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "Submission":
        return cls(**{name: row[name] for name in cls.__dataclass_fields__})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "teamId": self.team_id,
            "checkpointId": self.checkpoint_id,
            "status": self.status,
            "baseScore": self.base_score,
            "hintsUsed": self.hints_used,
            "pointDeduction": self.point_deduction,
            "timePenalty": self.time_penalty,
            "finalScore": self.final_score,
            "timeTaken": self.time_taken,
            "totalTime": self.total_time,
            "source": self.source,
            "submittedBy": self.submitted_by,
            "submittedAt": self.submitted_at,
            "manualSubmissionId": self.manual_submission_id,
            "reviewedBy": self.reviewed_by,
        }


@dataclass
class ManualSubmission:
    """A candidate submission waiting for a captain's decision."""

    id: str
    team_id: str
    checkpoint_id: str
    secret: str
    submitted_by: Optional[str]
    submitted_at: float
    status: str = ReviewStatus.PENDING
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[float] = None
    rejection_reason: Optional[str] = None
    score_awarded: Optional[int] = None

    @classmethod
    def from_row(cls, row: Any) -> "ManualSubmission":
        return cls(**{name: row[name] for name in cls.__dataclass_fields__})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "teamId": self.team_id,
            "checkpointId": self.checkpoint_id,
            "flag": self.secret,
            "submittedBy": self.submitted_by,
            "submittedAt": self.submitted_at,
            "status": self.status,
            "reviewedBy": self.reviewed_by,
            "reviewedAt": self.reviewed_at,
            "rejectionReason": self.rejection_reason,
            "scoreAwarded": self.score_awarded,
        }


@dataclass
class CheckIn:
    team_id: str
    checkpoint_id: str
    checkpoint_number: int
    checked_in_at: float

    @classmethod
    def from_row(cls, row: Any) -> "CheckIn":
        return cls(**{name: row[name] for name in cls.__dataclass_fields__})
