"""
Main HuntSystem class that orchestrates all components.
"""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import aiohttp_cors
from aiohttp import web, web_runner

from .auth import DatabaseTokenVerifier, Role, hash_token
from .commit import CommitProtocol
from .config import HuntConfig
from .database import DatabaseManager
from .errors import DuplicateError, ValidationError
from .events import DatabaseEventPhase
from .models import Checkpoint, Hint, HintType
from .progression import ProgressionService
from .review import ReviewCoordinator
from .secret_validator import SecretFormat, SecretValidator, hash_secret
from .submissions import SubmissionService
from .web_handlers import WebHandlers

logger = logging.getLogger(__name__)


def checkpoint_from_dict(data: Dict[str, Any]) -> Checkpoint:
    """
    Build a checkpoint from its mission-file form.

    @param data: Checkpoint entry using camelCase keys
    @return: Checkpoint record
    @raise ValidationError: If a required key is missing or the hint type is unknown
    """
    try:
        checkpoint_id = str(data["id"])
        group_id = str(data["groupId"])
        number = int(data["number"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Checkpoint entry needs id, groupId and number: {e}")

    hint_type = data.get("hintType", HintType.POINTS)
    if hint_type not in HintType.ALL:
        raise ValidationError(f"Checkpoint {checkpoint_id}: unknown hintType {hint_type}")

    hints = [
        Hint(number=int(h.get("number", i + 1)), content=str(h["content"]))
        for i, h in enumerate(data.get("hints", []))
    ]
    return Checkpoint(
        id=checkpoint_id,
        group_id=group_id,
        number=number,
        title=data.get("title", ""),
        description=data.get("description", ""),
        base_points=int(data.get("basePoints", 0)),
        hint_type=hint_type,
        point_deduction=int(data.get("pointDeduction", 0)),
        time_penalty=int(data.get("timePenalty", 0)),
        hints_available=int(data.get("hintsAvailable", len(hints))),
        hints=hints,
        proof_id=data.get("proofId"),
        location_clue=data.get("locationClue"),
        is_active=bool(data.get("isActive", True)),
    )


class HuntSystem:
    """Checkpoint hunt service with an HTTP JSON interface."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        web_port: int = 8081,
        db_path: str = "hunt.db",
        config_path: Optional[str] = "hunt_config.json",
        config: Optional[HuntConfig] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self.host = host
        self.web_port = web_port
        self.db_path = db_path

        # Load configuration
        self.config = config or HuntConfig(config_path)

        # Initialize components
        self.db = DatabaseManager(
            db_path,
            busy_timeout=self.config.get("store", "busy_timeout"),
            max_attempts=self.config.get("store", "max_commit_attempts"),
            retry_backoff=self.config.get("store", "retry_backoff_ms") / 1000.0,
        )
        self.events = DatabaseEventPhase(
            self.db,
            default_active=self.config.get("event", "default_active"),
            clock=clock,
        )
        min_delay, max_delay = self.config.get_delay_range()
        self.validator = SecretValidator(
            self.db,
            SecretFormat(
                prefix=self.config.get("secrets", "prefix"),
                suffix=self.config.get("secrets", "suffix"),
                max_length=self.config.get("secrets", "max_length"),
            ),
            min_delay=min_delay,
            max_delay=max_delay,
            sleep=sleep,
        )
        self.commit = CommitProtocol(self.db, clock=clock)
        self.progression = ProgressionService(self.db, clock=clock)
        self.submissions = SubmissionService(
            self.db, self.validator, self.commit, self.events
        )
        self.review = ReviewCoordinator(
            self.db,
            self.validator,
            self.commit,
            self.events,
            clock=clock,
            default_rejection_reason=self.config.get(
                "review", "default_rejection_reason"
            ),
            already_completed_reason=self.config.get(
                "review", "already_completed_reason"
            ),
        )
        self.web_handlers = WebHandlers(
            self.db,
            DatabaseTokenVerifier(self.db),
            self.progression,
            self.submissions,
            self.review,
            self.config,
        )
        self.clock = clock

    async def init_db(self) -> None:
        """
        Initialize the database.

        Creates database tables and performs any necessary setup.
        """
        await self.db.init_db()

    def build_app(self) -> web.Application:
        """
        Build the aiohttp application with all API routes and CORS.

        @return: Configured application
        """
        handlers = self.web_handlers
        app = web.Application(
            middlewares=[handlers.error_middleware, handlers.auth_middleware]
        )

        # Setup CORS
        cors = aiohttp_cors.setup(
            app,
            defaults={
                "*": aiohttp_cors.ResourceOptions(
                    allow_credentials=True,
                    expose_headers="*",
                    allow_headers="*",
                    allow_methods="*",
                )
            },
        )

        app.router.add_get("/api/health", handlers.api_health)

        # Participant routes
        app.router.add_post("/api/submit-flag", handlers.api_submit_flag)
        app.router.add_post("/api/participant/check-in", handlers.api_check_in)
        app.router.add_get(
            "/api/participant/current-checkpoint/{team_id}",
            handlers.api_current_checkpoint,
        )
        app.router.add_post(
            "/api/participant/request-hint", handlers.api_request_hint
        )
        app.router.add_get("/api/team/{team_id}/stats", handlers.api_team_stats)
        app.router.add_get("/api/leaderboard", handlers.api_leaderboard)

        # Manual review routes
        app.router.add_post(
            "/api/manual-submissions", handlers.api_create_manual_submission
        )
        app.router.add_get(
            "/api/manual-submissions/team", handlers.api_team_manual_submissions
        )
        app.router.add_post(
            "/api/manual-submissions/{submission_id}/approve",
            handlers.api_approve_manual_submission,
        )
        app.router.add_post(
            "/api/manual-submissions/{submission_id}/reject",
            handlers.api_reject_manual_submission,
        )

        # Add CORS to all routes
        for route in list(app.router.routes()):
            cors.add(route)

        return app

    async def start_web_server(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> web_runner.AppRunner:
        """
        Start the web server.

        @param host: Host address to bind the server to (default uses configured host)
        @param port: Port number to use (default uses configured web_port)
        @return: AppRunner instance for the web server
        """
        if host is None:
            host = self.host
        if port is None:
            port = self.web_port

        app_runner = web_runner.AppRunner(self.build_app())
        await app_runner.setup()

        site = web_runner.TCPSite(app_runner, host, port)
        await site.start()

        logger.info("Web server running on http://%s:%d", host, port)
        return app_runner

    async def run_server(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> None:
        """
        Run the HTTP API until cancelled.

        @param host: Host address (default uses configured host)
        @param port: Port (default uses configured web_port)
        """
        runner = await self.start_web_server(host, port)
        phase = await self.events.current()
        logger.info(
            "%s running, event phase: %s",
            self.config.get("event_name"),
            phase.current_phase,
        )

        try:
            await asyncio.Event().wait()
        finally:
            logger.info("Shutting down web server...")
            await runner.cleanup()

    async def load_mission(self, path: str) -> Dict[str, int]:
        """
        Seed checkpoints, secrets, teams and principals from a JSON file.

        Checkpoints and principals are upserted; teams that already exist
        are left untouched so their progress survives a reload. A checkpoint
        entry may carry a plaintext "flag" or a precomputed "secretHash".

        @param path: Mission file path
        @return: Counts of loaded records per kind
        @raise ValidationError: If the file is not a JSON object or an entry is malformed
        """
        try:
            with open(Path(path), "r", encoding="utf-8") as f:
                mission = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Mission file {path} is not valid JSON: {e}")
        if not isinstance(mission, dict):
            raise ValidationError("Mission file must contain a JSON object")

        counts = {"checkpoints": 0, "secrets": 0, "teams": 0, "principals": 0}

        for entry in mission.get("checkpoints", []):
            checkpoint = checkpoint_from_dict(entry)
            await self.db.upsert_checkpoint(checkpoint)
            counts["checkpoints"] += 1

            if entry.get("secretHash"):
                secret_hash = str(entry["secretHash"])
            elif entry.get("flag"):
                self.validator.check_format(entry["flag"])
                secret_hash = hash_secret(entry["flag"])
            else:
                logger.warning("Checkpoint %s has no flag configured", checkpoint.id)
                continue
            await self.db.set_checkpoint_secret(checkpoint.id, secret_hash)
            counts["secrets"] += 1

        for entry in mission.get("teams", []):
            try:
                await self.db.create_team(
                    entry["id"], entry.get("name", entry["id"]), entry.get("groupId"),
                    now=self.clock(),
                )
                counts["teams"] += 1
            except DuplicateError:
                logger.info("Team %s already exists, skipping", entry["id"])

        for entry in mission.get("principals", []):
            role = entry.get("role", Role.PLAYER)
            if role not in (Role.PLAYER, Role.CAPTAIN, Role.ADMIN):
                raise ValidationError(f"Principal {entry.get('id')}: unknown role {role}")
            token = entry.get("token")
            await self.db.create_principal(
                entry["id"],
                entry.get("name", entry["id"]),
                role,
                hash_token(token) if token else None,
                team_id=entry.get("teamId"),
                group_id=entry.get("groupId"),
            )
            counts["principals"] += 1

        logger.info(
            "Mission loaded: %d checkpoints, %d secrets, %d teams, %d principals",
            counts["checkpoints"],
            counts["secrets"],
            counts["teams"],
            counts["principals"],
        )
        return counts
