"""
Principal resolution and authorisation rules.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Optional

from .errors import ForbiddenError, UnauthorizedError
from .models import Team

logger = logging.getLogger(__name__)


class Role:
    PLAYER = "player"
    CAPTAIN = "captain"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    id: str
    name: str
    role: str
    team_id: Optional[str] = None
    group_id: Optional[str] = None


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class DatabaseTokenVerifier:
    """Resolves bearer tokens against the principals table."""

    def __init__(self, db_manager: Any) -> None:
        self.db = db_manager

    async def verify(self, token: Optional[str]) -> Principal:
        """
        Resolve a bearer credential to a principal.

        @param token: Raw bearer token
        @return: Verified principal
        @raise UnauthorizedError: If the token is missing or unknown
        """
        if not token:
            raise UnauthorizedError("Unauthorized: Missing or invalid token")
        row = await self.db.get_principal_by_token_hash(hash_token(token))
        if row is None:
            raise UnauthorizedError("Unauthorized: Invalid token")
        return Principal(
            id=row["id"],
            name=row["name"],
            role=row["role"],
            team_id=row["team_id"],
            group_id=row["group_id"],
        )


def ensure_team_member(
    principal: Principal,
    team_id: str,
) -> None:
    """
    Require a player to act only for their own team. Admins may act for any.

    @raise ForbiddenError: If the principal may not act for the team
    """
    if principal.role == Role.ADMIN:
        return
    if principal.role != Role.PLAYER or principal.team_id != team_id:
        logger.warning(
            "Principal %s attempted to act for team %s (belongs to %s)",
            principal.id,
            team_id,
            principal.team_id or "none",
        )
        raise ForbiddenError("Forbidden: You can only act for your own team")


def ensure_reviewer(
    principal: Principal,
    team: Team,
) -> None:
    """
    Require a captain of the team's group, or an admin.

    @raise ForbiddenError: If the principal may not review the team's submissions
    """
    if principal.role == Role.ADMIN:
        return
    if principal.role != Role.CAPTAIN:
        raise ForbiddenError("Forbidden: Only captains can review submissions")
    if not principal.group_id or team.group_id != principal.group_id:
        raise ForbiddenError("Forbidden: Team does not belong to your group")


def ensure_can_view_team(
    principal: Principal,
    team: Team,
) -> None:
    if principal.role == Role.ADMIN:
        return
    if principal.role == Role.PLAYER and principal.team_id == team.id:
        return
    if principal.role == Role.CAPTAIN and principal.group_id == team.group_id:
        return
    raise ForbiddenError("Forbidden: You cannot view this team")
