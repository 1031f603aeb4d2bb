"""
Web route handlers for the checkpoint hunt API.
"""

import json
import logging
from typing import Any, Dict, Optional

from aiohttp import web

from .auth import Principal, ensure_can_view_team, ensure_team_member
from .errors import (
    HuntError,
    NotFoundError,
    Rejection,
    TransientStoreError,
    UnauthorizedError,
    ValidationError,
)
from .results import Outcome, ReviewResult, SubmitResult

logger = logging.getLogger(__name__)

PUBLIC_PATHS = {"/api/health"}


def _first(body: Dict[str, Any], *names: str) -> Any:
    for name in names:
        value = body.get(name)
        if value not in (None, ""):
            return value
    return None


class WebHandlers:
    """Handles API routes and maps service results to HTTP responses."""

    def __init__(
        self,
        db_manager: Any,
        verifier: Any,
        progression: Any,
        submissions: Any,
        review: Any,
        config: Any,
    ) -> None:
        self.db = db_manager
        self.verifier = verifier
        self.progression = progression
        self.submissions = submissions
        self.review = review
        self.config = config

    # ------------------------------------------------------------------
    # Middleware
    # ------------------------------------------------------------------

    @web.middleware
    async def error_middleware(
        self,
        request: web.Request,
        handler: Any,
    ) -> web.StreamResponse:
        """
        Convert unexpected failures into generic JSON errors.

        @param request: Incoming request
        @param handler: Next handler in the chain
        @return: Handler response, or a 503/500 JSON error
        """
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except TransientStoreError:
            logger.error("Store conflicts exhausted retries on %s", request.path)
            return web.json_response(
                {"success": False, "error": "Service busy, please try again"},
                status=503,
            )
        except Exception:
            logger.exception("Unhandled error on %s %s", request.method, request.path)
            return web.json_response(
                {"success": False, "error": "Request processing failed"}, status=500
            )

    @web.middleware
    async def auth_middleware(
        self,
        request: web.Request,
        handler: Any,
    ) -> web.StreamResponse:
        """
        Resolve the bearer token to a principal for every non-public route.

        @param request: Incoming request
        @param handler: Next handler in the chain
        @return: Handler response, or 401 JSON error
        """
        if request.method == "OPTIONS" or request.path in PUBLIC_PATHS:
            return await handler(request)

        header = request.headers.get("Authorization", "")
        token = header[len("Bearer ") :].strip() if header.startswith("Bearer ") else None
        try:
            request["principal"] = await self.verifier.verify(token)
        except UnauthorizedError as e:
            return self._error(e.to_rejection())
        return await handler(request)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _error(self, rejection: Rejection) -> web.Response:
        return web.json_response(
            {"success": False, "error": rejection.message, "kind": rejection.kind},
            status=rejection.status_code,
        )

    def _outcome(
        self,
        outcome: Outcome,
        status: int = 200,
    ) -> web.Response:
        if outcome.error is not None:
            return self._error(outcome.error)
        return web.json_response({"success": True, **outcome.data}, status=status)

    def _review(
        self,
        result: ReviewResult,
        status: int = 200,
    ) -> web.Response:
        code = status if result.ok else result.error.status_code
        return web.json_response(result.to_dict(), status=code)

    async def _read_json(self, request: web.Request) -> Dict[str, Any]:
        """
        Parse a JSON object body.

        @param request: Incoming request
        @return: Parsed body
        @raise ValidationError: If the body is not a JSON object
        """
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError("Request body must be valid JSON")
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")
        return body

    def _principal(self, request: web.Request) -> Principal:
        return request["principal"]

    # ------------------------------------------------------------------
    # Participant routes
    # ------------------------------------------------------------------

    async def api_health(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Liveness endpoint.

        @param _: Unused request parameter
        @return: JSON response with service name
        """
        return web.json_response(
            {"status": "ok", "event": self.config.get("event_name")}
        )

    async def api_submit_flag(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Submit a flag for the team's current checkpoint.

        @param request: HTTP request with teamId, checkpointId (or levelId) and flag
        @return: JSON response with award details, incorrect status, or error
        """
        try:
            body = await self._read_json(request)
        except ValidationError as e:
            return self._error(e.to_rejection())

        result: SubmitResult = await self.submissions.submit_secret(
            self._principal(request),
            _first(body, "teamId"),
            _first(body, "checkpointId", "levelId"),
            _first(body, "flag", "secret"),
        )
        status = 200 if result.error is None else result.error.status_code
        return web.json_response(result.to_dict(), status=status)

    async def api_check_in(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Record a check-in at a checkpoint location.

        @param request: HTTP request with teamId, checkpointId and proof
        @return: JSON response with check-in details or error
        """
        try:
            body = await self._read_json(request)
            team_id = _first(body, "teamId")
            ensure_team_member(self._principal(request), team_id)
        except HuntError as e:
            return self._error(e.to_rejection())

        outcome = await self.progression.record_check_in(
            team_id,
            _first(body, "checkpointId", "levelId"),
            _first(body, "proof", "qrCode"),
        )
        return self._outcome(outcome)

    async def api_current_checkpoint(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Get the team's current checkpoint; starts solving after check-in.

        @param request: HTTP request containing team_id
        @return: JSON response with checkpoint details or error
        """
        team_id = request.match_info["team_id"]
        try:
            ensure_team_member(self._principal(request), team_id)
        except HuntError as e:
            return self._error(e.to_rejection())
        return self._outcome(await self.progression.get_current_checkpoint(team_id))

    async def api_request_hint(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Reveal the next hint of a checkpoint.

        @param request: HTTP request with teamId and checkpointId
        @return: JSON response with hint and penalty or error
        """
        try:
            body = await self._read_json(request)
            team_id = _first(body, "teamId")
            ensure_team_member(self._principal(request), team_id)
        except HuntError as e:
            return self._error(e.to_rejection())

        outcome = await self.progression.request_hint(
            team_id, _first(body, "checkpointId", "levelId")
        )
        return self._outcome(outcome)

    async def api_team_stats(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Get score statistics for a team.

        @param request: HTTP request containing team_id
        @return: JSON response with stats or error
        """
        team_id = request.match_info["team_id"]
        team = await self.db.get_team(team_id)
        try:
            if team is None:
                raise NotFoundError("Team not found")
            ensure_can_view_team(self._principal(request), team)
        except HuntError as e:
            return self._error(e.to_rejection())

        outcome = await self.progression.team_stats(team_id)
        if outcome.error is not None:
            return self._error(outcome.error)
        return web.json_response({"success": True, "stats": outcome.data})

    async def api_leaderboard(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Leaderboard projection, optionally for one group.

        @param request: HTTP request with optional groupId and limit query params
        @return: JSON response containing ranked teams
        """
        group_id: Optional[str] = request.query.get("groupId") or None
        try:
            limit = int(request.query.get("limit", 100))
        except ValueError:
            return self._error(
                ValidationError("limit must be an integer").to_rejection()
            )
        leaderboard = await self.db.get_leaderboard(group_id, max(1, min(limit, 500)))
        return web.json_response(
            {"success": True, "groupId": group_id, "leaderboard": leaderboard}
        )

    # ------------------------------------------------------------------
    # Manual review routes
    # ------------------------------------------------------------------

    async def api_create_manual_submission(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Submit a flag for captain review.

        @param request: HTTP request with teamId, checkpointId and flag
        @return: 201 JSON response with submission id, or error
        """
        try:
            body = await self._read_json(request)
        except ValidationError as e:
            return self._error(e.to_rejection())

        result = await self.review.create_manual_submission(
            self._principal(request),
            _first(body, "teamId"),
            _first(body, "checkpointId", "levelId"),
            _first(body, "flag", "secret"),
        )
        return self._review(result, status=201)

    async def api_team_manual_submissions(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        List a team's manual submissions.

        @param request: HTTP request with teamId query param
        @return: JSON response containing submissions
        """
        outcome = await self.review.list_team_manual_submissions(
            self._principal(request), request.query.get("teamId", "")
        )
        return self._outcome(outcome)

    async def api_approve_manual_submission(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Approve a pending manual submission.

        @param request: HTTP request containing submission id
        @return: JSON response with awarded score, or error
        """
        result = await self.review.approve_manual_submission(
            self._principal(request), request.match_info["submission_id"]
        )
        return self._review(result)

    async def api_reject_manual_submission(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Reject a pending manual submission.

        @param request: HTTP request containing submission id and optional reason
        @return: JSON response with the new status, or error
        """
        reason = None
        if request.can_read_body:
            try:
                body = await self._read_json(request)
            except ValidationError as e:
                return self._error(e.to_rejection())
            reason = body.get("reason")

        result = await self.review.reject_manual_submission(
            self._principal(request), request.match_info["submission_id"], reason
        )
        return self._review(result)
