import pytest
from aiohttp.test_utils import TestClient, TestServer

from checkpoint_hunt.config import HuntConfig
from checkpoint_hunt.errors import TransientStoreError
from checkpoint_hunt.hunt import HuntSystem

from conftest import FLAGS, PROOFS, TOKENS, seed


def auth(principal_id):
    return {"Authorization": f"Bearer {TOKENS[principal_id]}"}


@pytest.fixture
async def system(tmp_path, clock, sleep):
    hunt = HuntSystem(
        db_path=str(tmp_path / "hunt.db"),
        config=HuntConfig(None),
        clock=clock,
        sleep=sleep,
    )
    await hunt.init_db()
    await seed(hunt.db)
    await hunt.events.start_event()
    return hunt


@pytest.fixture
async def client(system):
    async with TestClient(TestServer(system.build_app())) as test_client:
        yield test_client


async def solve_ready(client, team="team-a", player="player-a", checkpoint="g1-cp1"):
    resp = await client.post(
        "/api/participant/check-in",
        json={"teamId": team, "checkpointId": checkpoint, "proof": PROOFS[checkpoint]},
        headers=auth(player),
    )
    assert resp.status == 200
    resp = await client.get(
        f"/api/participant/current-checkpoint/{team}", headers=auth(player)
    )
    assert resp.status == 200
    assert (await resp.json())["teamStatus"] == "solving"


async def test_health_needs_no_token(client):
    resp = await client.get("/api/health")

    assert resp.status == 200
    assert (await resp.json())["status"] == "ok"


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer nope"}, {"Authorization": "Basic abc"}])
async def test_requests_without_valid_token(client, headers):
    resp = await client.get("/api/leaderboard", headers=headers)

    assert resp.status == 401
    assert (await resp.json())["kind"] == "unauthorized"


async def test_full_participant_flow(client):
    await solve_ready(client)

    resp = await client.post(
        "/api/participant/request-hint",
        json={"teamId": "team-a", "checkpointId": "g1-cp1"},
        headers=auth("player-a"),
    )
    hint = await resp.json()
    assert resp.status == 200
    assert hint["hint"]["number"] == 1
    assert hint["penalty"]["points"] == 50

    resp = await client.post(
        "/api/submit-flag",
        json={"teamId": "team-a", "levelId": "g1-cp1", "flag": FLAGS["g1-cp1"]},
        headers=auth("player-a"),
    )
    body = await resp.json()
    assert resp.status == 200
    assert body["success"] is True
    assert body["scoreAwarded"] == 450
    assert body["breakdown"]["hintsUsed"] == 1
    assert body["submissionId"] == "team-a_g1-cp1"
    assert body["nextCheckpoint"] == 2
    assert body["nextLocationClue"] == "Quiet please."

    resp = await client.get("/api/team/team-a/stats", headers=auth("player-a"))
    stats = (await resp.json())["stats"]
    assert stats["score"] == 450
    assert stats["currentCheckpoint"] == 2
    assert stats["totalSubmissions"] == 1

    resp = await client.get("/api/leaderboard?groupId=g1", headers=auth("player-b"))
    board = (await resp.json())["leaderboard"]
    assert board[0]["teamId"] == "team-a"
    assert board[0]["score"] == 450


async def test_incorrect_flag_is_200_with_failure(client):
    await solve_ready(client)

    resp = await client.post(
        "/api/submit-flag",
        json={"teamId": "team-a", "checkpointId": "g1-cp1", "flag": "CSBC{nope}"},
        headers=auth("player-a"),
    )

    assert resp.status == 200
    assert await resp.json() == {
        "success": False,
        "status": "incorrect",
        "message": "Incorrect flag",
    }


async def test_duplicate_submission_is_409(client):
    await solve_ready(client)
    payload = {"teamId": "team-a", "checkpointId": "g1-cp1", "flag": FLAGS["g1-cp1"]}
    await client.post("/api/submit-flag", json=payload, headers=auth("player-a"))

    resp = await client.post("/api/submit-flag", json=payload, headers=auth("player-a"))

    assert resp.status == 409
    assert (await resp.json())["status"] == "already_completed"


async def test_status_mapping(client):
    cases = [
        ("/api/submit-flag", {"teamId": "team-a", "checkpointId": "g1-cp1", "flag": "x"}, 400),
        ("/api/submit-flag", {"teamId": "team-b", "checkpointId": "g1-cp1", "flag": FLAGS["g1-cp1"]}, 403),
        ("/api/submit-flag", {"teamId": "team-a", "checkpointId": "g1-cp1", "flag": FLAGS["g1-cp1"]}, 403),
        ("/api/submit-flag", {"teamId": "team-a", "checkpointId": "nowhere", "flag": FLAGS["g1-cp1"]}, 404),
    ]
    for path, payload, status in cases:
        resp = await client.post(path, json=payload, headers=auth("player-a"))
        assert resp.status == status, payload


async def test_malformed_json_is_400(client):
    resp = await client.post(
        "/api/submit-flag", data="{oops", headers=auth("player-a")
    )

    assert resp.status == 400
    assert (await resp.json())["kind"] == "validation"


@pytest.mark.parametrize(
    "path, payload",
    [
        (
            "/api/submit-flag",
            {"teamId": "team-a", "checkpointId": ["g1-cp1"], "flag": FLAGS["g1-cp1"]},
        ),
        (
            "/api/participant/check-in",
            {"teamId": "team-a", "checkpointId": {"x": 1}, "proof": PROOFS["g1-cp1"]},
        ),
        ("/api/participant/request-hint", {"teamId": "team-a", "checkpointId": [1]}),
        (
            "/api/manual-submissions",
            {"teamId": "team-a", "checkpointId": "g1-cp1", "flag": ["CSBC{x}"]},
        ),
    ],
)
async def test_wrongly_typed_fields_are_400(client, path, payload):
    resp = await client.post(path, json=payload, headers=auth("player-a"))
    body = await resp.json()

    assert resp.status == 400
    assert body["kind"] == "validation"


async def test_admin_with_list_team_id_is_400(client):
    resp = await client.post(
        "/api/submit-flag",
        json={"teamId": ["team-a"], "checkpointId": "g1-cp1", "flag": FLAGS["g1-cp1"]},
        headers=auth("admin"),
    )

    assert resp.status == 400
    assert (await resp.json())["kind"] == "validation"


async def test_player_cannot_read_other_team(client):
    resp = await client.get(
        "/api/participant/current-checkpoint/team-b", headers=auth("player-a")
    )
    stats = await client.get("/api/team/team-b/stats", headers=auth("player-a"))

    assert resp.status == 403
    assert stats.status == 403


async def test_paused_event_refuses_submissions(client, system):
    await solve_ready(client)
    await system.events.pause_event()

    resp = await client.post(
        "/api/submit-flag",
        json={"teamId": "team-a", "checkpointId": "g1-cp1", "flag": FLAGS["g1-cp1"]},
        headers=auth("player-a"),
    )

    assert resp.status == 403
    assert "Event is not active" in (await resp.json())["error"]


async def test_manual_review_flow(client):
    await solve_ready(client)

    resp = await client.post(
        "/api/manual-submissions",
        json={"teamId": "team-a", "checkpointId": "g1-cp1", "flag": FLAGS["g1-cp1"]},
        headers=auth("player-a"),
    )
    assert resp.status == 201
    submission_id = (await resp.json())["data"]["submissionId"]

    resp = await client.get(
        "/api/manual-submissions/team?teamId=team-a", headers=auth("captain-g1")
    )
    listed = await resp.json()
    assert listed["count"] == 1
    assert listed["submissions"][0]["status"] == "pending"

    resp = await client.post(
        f"/api/manual-submissions/{submission_id}/approve", headers=auth("captain-g2")
    )
    assert resp.status == 403

    resp = await client.post(
        f"/api/manual-submissions/{submission_id}/approve", headers=auth("captain-g1")
    )
    body = await resp.json()
    assert resp.status == 200
    assert body["data"] == {
        "submissionId": submission_id,
        "status": "approved",
        "scoreAwarded": 500,
    }


async def test_reject_route(client):
    await solve_ready(client)
    resp = await client.post(
        "/api/manual-submissions",
        json={"teamId": "team-a", "checkpointId": "g1-cp1", "flag": "CSBC{guess}"},
        headers=auth("player-a"),
    )
    submission_id = (await resp.json())["data"]["submissionId"]

    resp = await client.post(
        f"/api/manual-submissions/{submission_id}/reject",
        json={"reason": "Not the flag"},
        headers=auth("admin"),
    )
    body = await resp.json()
    assert resp.status == 200
    assert body["data"]["status"] == "rejected"
    assert body["data"]["reason"] == "Not the flag"

    resp = await client.post(
        "/api/manual-submissions/unknown/reject", headers=auth("admin")
    )
    assert resp.status == 404


async def test_exhausted_store_retries_are_503(client, system, monkeypatch):
    async def busy(*args, **kwargs):
        raise TransientStoreError("Datastore is busy")

    monkeypatch.setattr(system.submissions, "submit_secret", busy)

    resp = await client.post(
        "/api/submit-flag",
        json={"teamId": "team-a", "checkpointId": "g1-cp1", "flag": FLAGS["g1-cp1"]},
        headers=auth("player-a"),
    )

    assert resp.status == 503
    assert (await resp.json())["success"] is False


async def test_unexpected_errors_are_generic_500(client, system, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("secret internals")

    monkeypatch.setattr(system.progression, "team_stats", broken)

    resp = await client.get("/api/team/team-a/stats", headers=auth("player-a"))
    body = await resp.json()

    assert resp.status == 500
    assert body["error"] == "Request processing failed"
    assert "secret internals" not in str(body)
