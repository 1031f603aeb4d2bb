"""
Score computation shared by the automated and manual-review paths.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict

from .models import HintType


@dataclass(frozen=True)
class ScoreBreakdown:
    """Result of scoring one checkpoint completion."""

    base_score: int
    hints_used: int
    point_deduction: int
    time_penalty: int
    final_score: int
    time_taken: int
    total_time: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseScore": self.base_score,
            "hintsUsed": self.hints_used,
            "pointDeduction": self.point_deduction,
            "timePenalty": self.time_penalty,
            "finalScore": self.final_score,
            "timeTaken": self.time_taken,
            "totalTime": self.total_time,
        }


def _non_negative(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number or number < 0:
        return 0.0
    return number


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_final_score(
    base_score: Any,
    hints_used: Any = 0,
    point_deduction: Any = 0,
    time_taken: Any = 0,
    time_penalty: Any = 0,
    hint_type: str = HintType.POINTS,
) -> ScoreBreakdown:
    """
    Calculate the award for a completed checkpoint.

    Inputs are clamped to non-negative numbers and an unknown hint type is
    treated as points mode. In points mode each hint deducts from the base
    score, floored at zero. In time mode the score is untouched and each hint
    adds minutes to the team's time penalty instead.

    @param base_score: Base points of the checkpoint
    @param hints_used: Number of hints the team revealed
    @param point_deduction: Points deducted per hint (points mode)
    @param time_taken: Elapsed minutes since the checkpoint clock started
    @param time_penalty: Minutes added per hint (time mode)
    @param hint_type: "points" or "time"
    @return: ScoreBreakdown with rounded integer fields
    """
    base = int(_non_negative(base_score))
    hints = int(_non_negative(hints_used))
    per_hint_points = _non_negative(point_deduction)
    elapsed = _non_negative(time_taken)
    per_hint_minutes = _non_negative(time_penalty)
    if hint_type not in HintType.ALL:
        hint_type = HintType.POINTS

    final = float(base)
    total_deduction = 0.0
    total_penalty = 0.0

    if hint_type == HintType.POINTS:
        total_deduction = hints * per_hint_points
        final = max(0.0, base - total_deduction)
    else:
        total_penalty = hints * per_hint_minutes

    return ScoreBreakdown(
        base_score=base,
        hints_used=hints,
        point_deduction=_round_half_up(total_deduction),
        time_penalty=_round_half_up(total_penalty),
        final_score=_round_half_up(final),
        time_taken=_round_half_up(elapsed),
        total_time=_round_half_up(elapsed + total_penalty),
    )


def elapsed_minutes(
    started_at: Any,
    now: float,
) -> int:
    """
    Whole minutes between the checkpoint clock start and now.

    @param started_at: Epoch seconds when the clock started, or None
    @param now: Current epoch seconds
    @return: Non-negative whole minutes, 0 when the clock never started
    """
    if started_at is None:
        return 0
    return max(0, int((now - float(started_at)) // 60))
