"""
Shared fixtures: a fresh SQLite file per test, a seeded hunt, a fake clock
and services wired with a zero validator delay.
"""

import pytest

from checkpoint_hunt.auth import Principal, Role, hash_token
from checkpoint_hunt.commit import CommitProtocol
from checkpoint_hunt.database import DatabaseManager
from checkpoint_hunt.events import StaticEventPhase
from checkpoint_hunt.models import Checkpoint, Hint, HintType
from checkpoint_hunt.progression import ProgressionService
from checkpoint_hunt.review import ReviewCoordinator
from checkpoint_hunt.secret_validator import SecretValidator, hash_secret
from checkpoint_hunt.submissions import SubmissionService

START = 1_700_000_000.0

FLAGS = {
    "g1-cp1": "CSBC{first_light}",
    "g1-cp2": "CSBC{second_wind}",
    "g1-cp3": "CSBC{third_time}",
    "g2-cp1": "CSBC{other_group}",
}

PROOFS = {
    "g1-cp1": "QR-G1-ONE",
    "g1-cp2": "QR-G1-TWO",
    "g1-cp3": "QR-G1-THREE",
    "g2-cp1": "QR-G2-ONE",
}

TOKENS = {
    "player-a": "token-player-a",
    "player-b": "token-player-b",
    "captain-g1": "token-captain-g1",
    "captain-g2": "token-captain-g2",
    "admin": "token-admin",
}

PLAYER_A = Principal("player-a", "Ada", Role.PLAYER, team_id="team-a", group_id="g1")
PLAYER_B = Principal("player-b", "Bo", Role.PLAYER, team_id="team-b", group_id="g1")
CAPTAIN_G1 = Principal("captain-g1", "Cy", Role.CAPTAIN, group_id="g1")
CAPTAIN_G2 = Principal("captain-g2", "Di", Role.CAPTAIN, group_id="g2")
ADMIN = Principal("admin", "Root", Role.ADMIN)


class FakeClock:
    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def build_checkpoints():
    return [
        Checkpoint(
            id="g1-cp1",
            group_id="g1",
            number=1,
            title="Clock Tower",
            description="Find the year on the bell.",
            base_points=500,
            hint_type=HintType.POINTS,
            point_deduction=50,
            hints_available=3,
            hints=[
                Hint(1, "Look up."),
                Hint(2, "It is engraved."),
                Hint(3, "Four digits."),
            ],
            proof_id=PROOFS["g1-cp1"],
            location_clue="Where the hours are kept.",
        ),
        Checkpoint(
            id="g1-cp2",
            group_id="g1",
            number=2,
            title="Old Library",
            base_points=100,
            hint_type=HintType.TIME,
            time_penalty=5,
            hints_available=2,
            hints=[Hint(1, "Second floor."), Hint(2, "Blue spine.")],
            proof_id=PROOFS["g1-cp2"],
            location_clue="Quiet please.",
        ),
        Checkpoint(
            id="g1-cp3",
            group_id="g1",
            number=3,
            title="Fountain",
            base_points=200,
            proof_id=PROOFS["g1-cp3"],
            location_clue="Follow the water.",
        ),
        Checkpoint(
            id="g2-cp1",
            group_id="g2",
            number=1,
            title="Harbour",
            base_points=300,
            proof_id=PROOFS["g2-cp1"],
        ),
    ]


async def seed(db: DatabaseManager) -> None:
    for checkpoint in build_checkpoints():
        await db.upsert_checkpoint(checkpoint)
        await db.set_checkpoint_secret(checkpoint.id, hash_secret(FLAGS[checkpoint.id]))

    await db.create_team("team-a", "Alpha", "g1", now=START)
    await db.create_team("team-b", "Bravo", "g1", now=START)
    await db.create_team("team-c", "Charlie", "g2", now=START)
    await db.create_team("team-x", "Unassigned", None, now=START)

    for principal in (PLAYER_A, PLAYER_B, CAPTAIN_G1, CAPTAIN_G2, ADMIN):
        await db.create_principal(
            principal.id,
            principal.name,
            principal.role,
            hash_token(TOKENS[principal.id]),
            team_id=principal.team_id,
            group_id=principal.group_id,
        )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
async def db(tmp_path):
    manager = DatabaseManager(
        str(tmp_path / "hunt.db"), busy_timeout=5.0, max_attempts=5, retry_backoff=0.001
    )
    await manager.init_db()
    await seed(manager)
    return manager


@pytest.fixture
def event():
    return StaticEventPhase(is_active=True)


@pytest.fixture
def validator(db, sleep):
    return SecretValidator(db, min_delay=0, max_delay=0, sleep=sleep)


@pytest.fixture
def commit(db, clock):
    return CommitProtocol(db, clock=clock)


@pytest.fixture
def progression(db, clock):
    return ProgressionService(db, clock=clock)


@pytest.fixture
def submissions(db, validator, commit, event):
    return SubmissionService(db, validator, commit, event)


@pytest.fixture
def review(db, validator, commit, event, clock):
    counter = iter(range(1, 1000))
    return ReviewCoordinator(
        db,
        validator,
        commit,
        event,
        clock=clock,
        id_factory=lambda: f"ms-{next(counter)}",
    )


async def bring_to_solving(progression, team_id: str, checkpoint_id: str) -> None:
    """Check a team in and view the checkpoint so it is solving."""
    outcome = await progression.record_check_in(
        team_id, checkpoint_id, PROOFS[checkpoint_id]
    )
    assert outcome.ok, outcome.error
    current = await progression.get_current_checkpoint(team_id)
    assert current.ok, current.error
    assert current.data["teamStatus"] == "solving"
