import pytest

from checkpoint_hunt.auth import (
    DatabaseTokenVerifier,
    ensure_can_view_team,
    ensure_reviewer,
    ensure_team_member,
)
from checkpoint_hunt.errors import ForbiddenError, StateConflictError, UnauthorizedError
from checkpoint_hunt.events import DatabaseEventPhase, EventPhase, Phase
from checkpoint_hunt.models import Team

from conftest import ADMIN, CAPTAIN_G1, CAPTAIN_G2, PLAYER_A, PLAYER_B, TOKENS

TEAM_A = Team("team-a", "Alpha", "g1")


async def test_verifier_resolves_token(db):
    principal = await DatabaseTokenVerifier(db).verify(TOKENS["player-a"])

    assert principal == PLAYER_A


@pytest.mark.parametrize("token", [None, "", "not-a-token"])
async def test_verifier_rejects_unknown_tokens(db, token):
    with pytest.raises(UnauthorizedError):
        await DatabaseTokenVerifier(db).verify(token)


def test_team_membership():
    ensure_team_member(PLAYER_A, "team-a")
    ensure_team_member(ADMIN, "team-a")

    with pytest.raises(ForbiddenError):
        ensure_team_member(PLAYER_B, "team-a")
    with pytest.raises(ForbiddenError):
        ensure_team_member(CAPTAIN_G1, "team-a")


def test_reviewer_rules():
    ensure_reviewer(CAPTAIN_G1, TEAM_A)
    ensure_reviewer(ADMIN, TEAM_A)

    with pytest.raises(ForbiddenError, match="your group"):
        ensure_reviewer(CAPTAIN_G2, TEAM_A)
    with pytest.raises(ForbiddenError, match="Only captains"):
        ensure_reviewer(PLAYER_A, TEAM_A)


def test_view_rules():
    for principal in (PLAYER_A, CAPTAIN_G1, ADMIN):
        ensure_can_view_team(principal, TEAM_A)

    for principal in (PLAYER_B, CAPTAIN_G2):
        with pytest.raises(ForbiddenError):
            ensure_can_view_team(principal, TEAM_A)


def test_inactive_phase_refuses_scoring():
    with pytest.raises(StateConflictError, match=r"Event is not active \(paused\)"):
        EventPhase(is_active=False, current_phase=Phase.PAUSED).ensure_active()

    EventPhase(is_active=True, current_phase=Phase.ACTIVE).ensure_active()


async def test_missing_event_row_uses_default(db):
    closed = await DatabaseEventPhase(db).current()
    opened = await DatabaseEventPhase(db, default_active=True).current()

    assert closed == EventPhase(False, Phase.PREPARATION)
    assert opened == EventPhase(True, Phase.ACTIVE)


async def test_event_lifecycle(db, clock):
    events = DatabaseEventPhase(db, clock=clock)

    await events.start_event()
    assert await events.current() == EventPhase(True, Phase.ACTIVE)

    await events.pause_event()
    assert await events.current() == EventPhase(False, Phase.PAUSED)

    await events.start_event()
    clock.advance(3600)
    await events.stop_event()
    assert await events.current() == EventPhase(False, Phase.COMPLETED)

    row = await db.get_event_config()
    assert row["ended_at"] == clock.now
