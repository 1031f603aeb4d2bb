import pytest

from checkpoint_hunt.database import DatabaseManager
from checkpoint_hunt.errors import DuplicateError, TransientStoreError
from checkpoint_hunt.models import Submission, Team, TeamStatus


def make_submission(team_id="team-a", checkpoint_id="g1-cp1", score=500):
    return Submission(
        id=f"{team_id}_{checkpoint_id}",
        team_id=team_id,
        checkpoint_id=checkpoint_id,
        status="correct",
        base_score=score,
        hints_used=0,
        point_deduction=0,
        time_penalty=0,
        final_score=score,
        time_taken=0,
        total_time=0,
        source="automated",
        submitted_by="player-a",
        submitted_at=1.0,
    )


async def test_init_db_is_idempotent(db):
    await db.init_db()

    assert (await db.get_team("team-a")).name == "Alpha"


async def test_secret_hash_is_not_part_of_checkpoint(db):
    checkpoint = await db.get_checkpoint("g1-cp1")

    assert not hasattr(checkpoint, "secret_hash")
    assert len(await db.get_secret_hash("g1-cp1")) == 64


async def test_transaction_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        async with db.transaction() as conn:
            team = await db.fetch_team(conn, "team-a")
            team.score = 999
            await db.write_team(conn, team)
            raise RuntimeError("boom")

    assert (await db.get_team("team-a")).score == 0


async def test_second_submission_for_pair_is_duplicate(db):
    async with db.transaction() as conn:
        await db.insert_submission(conn, make_submission())

    with pytest.raises(DuplicateError):
        async with db.transaction() as conn:
            await db.insert_submission(conn, make_submission(score=1))

    assert (await db.get_submission("team-a", "g1-cp1")).final_score == 500


async def test_create_team_twice(db):
    with pytest.raises(DuplicateError):
        await db.create_team("team-a", "Again", "g1")


async def test_run_transaction_retries_transient_errors(db):
    attempts = []

    async def unit(conn):
        attempts.append(1)
        if len(attempts) < 3:
            raise TransientStoreError("Datastore is busy")
        return "done"

    assert await db.run_transaction(unit) == "done"
    assert len(attempts) == 3


async def test_run_transaction_gives_up(db):
    manager = DatabaseManager(db.db_path, max_attempts=2, retry_backoff=0)
    attempts = []

    async def unit(conn):
        attempts.append(1)
        raise TransientStoreError("Datastore is busy")

    with pytest.raises(TransientStoreError):
        await manager.run_transaction(unit)
    assert len(attempts) == 2


async def test_held_write_lock_surfaces_as_transient(db):
    contender = DatabaseManager(
        db.db_path, busy_timeout=0.05, max_attempts=2, retry_backoff=0
    )

    async def unit(conn):
        return await contender.fetch_team(conn, "team-a")

    async with db.transaction():
        with pytest.raises(TransientStoreError):
            await contender.run_transaction(unit)


async def test_mark_solving_is_conditional(db):
    async with db.transaction() as conn:
        team = await db.fetch_team(conn, "team-a")
        team.status = TeamStatus.AT_LOCATION
        await db.write_team(conn, team)

    async with db.connect() as conn:
        assert await db.mark_solving(conn, "team-a", 10.0) is True
        assert await db.mark_solving(conn, "team-a", 11.0) is False

    assert (await db.get_team("team-a")).status == TeamStatus.SOLVING


async def test_leaderboard_ordering_and_group_filter(db):
    async with db.transaction() as conn:
        await db.upsert_leaderboard(
            conn, Team("team-a", "Alpha", "g1", score=300, time_penalty=10), 5.0
        )
        await db.upsert_leaderboard(
            conn, Team("team-b", "Bravo", "g1", score=300, time_penalty=0), 6.0
        )
        await db.upsert_leaderboard(
            conn, Team("team-c", "Charlie", "g2", score=900), 7.0
        )

    group = await db.get_leaderboard("g1")
    everyone = await db.get_leaderboard()

    assert [row["teamId"] for row in group] == ["team-b", "team-a"]
    assert [row["rank"] for row in group] == [1, 2]
    assert everyone[0]["teamId"] == "team-c"
    assert len(await db.get_leaderboard(limit=1)) == 1


async def test_event_phase_row(db):
    assert await db.get_event_config() is None

    await db.set_event_phase(True, "active", 100.0)
    await db.set_event_phase(False, "paused", 200.0)

    row = await db.get_event_config()
    assert row["is_active"] == 0
    assert row["current_phase"] == "paused"
    assert row["started_at"] == 100.0
