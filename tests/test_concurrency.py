"""
Races between independent requests against one database file.
"""

import asyncio

from checkpoint_hunt.models import ReviewStatus
from checkpoint_hunt.secret_validator import SecretValidator
from checkpoint_hunt.submissions import SubmissionService

from conftest import CAPTAIN_G1, FLAGS, PLAYER_A, PLAYER_B, bring_to_solving


class Gate:
    """Validator sleep that releases callers only once `parties` have arrived."""

    def __init__(self, parties: int) -> None:
        self.parties = parties
        self.arrived = 0
        self.open = asyncio.Event()

    async def __call__(self, seconds: float) -> None:
        self.arrived += 1
        if self.arrived >= self.parties:
            self.open.set()
        await asyncio.wait_for(self.open.wait(), timeout=5)


async def count_submissions(db, team_id):
    return len(await db.get_team_submissions(team_id))


async def test_double_submit_awards_once(db, progression, commit, event):
    await bring_to_solving(progression, "team-a", "g1-cp1")
    gate = Gate(parties=2)
    validator = SecretValidator(db, min_delay=0, max_delay=0, sleep=gate)
    service = SubmissionService(db, validator, commit, event)

    results = await asyncio.gather(
        service.submit_secret(PLAYER_A, "team-a", "g1-cp1", FLAGS["g1-cp1"]),
        service.submit_secret(PLAYER_A, "team-a", "g1-cp1", FLAGS["g1-cp1"]),
    )

    accepted = [r for r in results if r.accepted]
    refused = [r for r in results if not r.accepted]
    assert len(accepted) == 1
    assert len(refused) == 1
    assert refused[0].error.kind == "duplicate"

    team = await db.get_team("team-a")
    assert team.score == 500
    assert team.checkpoints_completed == 1
    assert team.current_checkpoint == 2
    assert await count_submissions(db, "team-a") == 1


async def test_many_submits_award_once(db, progression, submissions):
    await bring_to_solving(progression, "team-a", "g1-cp1")

    results = await asyncio.gather(
        *[
            submissions.submit_secret(PLAYER_A, "team-a", "g1-cp1", FLAGS["g1-cp1"])
            for _ in range(8)
        ]
    )

    assert sum(1 for r in results if r.accepted) == 1
    assert all(r.error is not None for r in results if not r.accepted)
    team = await db.get_team("team-a")
    assert team.score == 500
    assert team.checkpoints_completed == 1
    assert await count_submissions(db, "team-a") == 1


async def test_submit_races_approval(db, progression, submissions, review):
    await bring_to_solving(progression, "team-a", "g1-cp1")
    queued = await review.create_manual_submission(
        PLAYER_A, "team-a", "g1-cp1", FLAGS["g1-cp1"]
    )

    automated, approval = await asyncio.gather(
        submissions.submit_secret(PLAYER_A, "team-a", "g1-cp1", FLAGS["g1-cp1"]),
        review.approve_manual_submission(CAPTAIN_G1, queued.submission_id),
    )

    assert automated.accepted != (approval.status == ReviewStatus.APPROVED)
    manual = await db.get_manual_submission(queued.submission_id)
    assert manual.status in (ReviewStatus.APPROVED, ReviewStatus.REJECTED)

    team = await db.get_team("team-a")
    assert team.score == 500
    assert team.checkpoints_completed == 1
    assert await count_submissions(db, "team-a") == 1


async def test_teams_score_independently(db, progression, submissions):
    await bring_to_solving(progression, "team-a", "g1-cp1")
    await bring_to_solving(progression, "team-b", "g1-cp1")

    results = await asyncio.gather(
        submissions.submit_secret(PLAYER_A, "team-a", "g1-cp1", FLAGS["g1-cp1"]),
        submissions.submit_secret(PLAYER_B, "team-b", "g1-cp1", FLAGS["g1-cp1"]),
    )

    assert all(r.accepted for r in results)
    board = await db.get_leaderboard("g1")
    assert {row["teamId"] for row in board} == {"team-a", "team-b"}


async def test_concurrent_hint_requests_reveal_distinct_hints(db, progression):
    await bring_to_solving(progression, "team-a", "g1-cp1")

    outcomes = await asyncio.gather(
        *[progression.request_hint("team-a", "g1-cp1") for _ in range(3)]
    )

    assert all(o.ok for o in outcomes)
    assert sorted(o.data["hint"]["number"] for o in outcomes) == [1, 2, 3]
    assert sorted(await db.get_hint_numbers("team-a", "g1-cp1")) == [1, 2, 3]


async def test_concurrent_check_ins_transition_once(db, progression, clock):
    outcomes = await asyncio.gather(
        *[
            progression.record_check_in("team-a", "g1-cp1", "QR-G1-ONE")
            for _ in range(4)
        ]
    )

    assert all(o.ok for o in outcomes)
    assert sum(1 for o in outcomes if not o.data["alreadyCheckedIn"]) == 1
    team = await db.get_team("team-a")
    assert team.status == "at_location"
