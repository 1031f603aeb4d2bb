"""
Result values returned by service operations.

Expected failures (guards, duplicates, bad input) come back as a Rejection
inside these objects rather than as exceptions.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import HuntError, Rejection
from .scoring import ScoreBreakdown


@dataclass
class Outcome:
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[Rejection] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: HuntError) -> "Outcome":
        return cls(error=error.to_rejection())


@dataclass
class SubmitResult:
    """Outcome of an automated flag submission."""

    accepted: bool
    status: str  # correct | incorrect | rejected
    score_awarded: Optional[int] = None
    breakdown: Optional[ScoreBreakdown] = None
    submission_id: Optional[str] = None
    next_checkpoint: Optional[int] = None
    next_location_clue: Optional[str] = None
    error: Optional[Rejection] = None

    @classmethod
    def incorrect(cls) -> "SubmitResult":
        return cls(accepted=False, status="incorrect")

    @classmethod
    def rejected(cls, error: HuntError) -> "SubmitResult":
        return cls(accepted=False, status="rejected", error=error.to_rejection())

    def to_dict(self) -> Dict[str, Any]:
        if self.accepted:
            return {
                "success": True,
                "status": self.status,
                "scoreAwarded": self.score_awarded,
                "breakdown": self.breakdown.to_dict() if self.breakdown else None,
                "submissionId": self.submission_id,
                "nextCheckpoint": self.next_checkpoint,
                "nextLocationClue": self.next_location_clue,
            }
        if self.status == "incorrect":
            return {"success": False, "status": "incorrect", "message": "Incorrect flag"}
        status = "already_completed" if self.error.kind == "duplicate" else self.status
        return {
            "success": False,
            "status": status,
            "error": self.error.message,
            "kind": self.error.kind,
        }


@dataclass
class ReviewResult:
    """Outcome of creating, approving or rejecting a manual submission."""

    submission_id: Optional[str]
    status: Optional[str]
    score_awarded: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[Rejection] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def rejected(
        cls,
        error: HuntError,
        submission_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> "ReviewResult":
        return cls(
            submission_id=submission_id, status=status, error=error.to_rejection()
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.ok,
            "data": {"submissionId": self.submission_id, "status": self.status},
        }
        if self.score_awarded is not None:
            data["data"]["scoreAwarded"] = self.score_awarded
        if self.reason is not None:
            data["data"]["reason"] = self.reason
        if self.error is not None:
            data["error"] = self.error.message
            data["kind"] = self.error.kind
        return data
