"""
Event phase providers.

Services take a provider and read one EventPhase snapshot per request.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from .errors import StateConflictError

logger = logging.getLogger(__name__)


class Phase:
    PREPARATION = "preparation"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass(frozen=True)
class EventPhase:
    is_active: bool
    current_phase: str = Phase.PREPARATION

    def ensure_active(self, action: str = "Flag submissions") -> None:
        """
        @raise StateConflictError: If scoring operations are not permitted
        """
        if not self.is_active:
            raise StateConflictError(
                f"Event is not active ({self.current_phase}). {action} are not allowed."
            )


class StaticEventPhase:
    """Fixed event phase, for tests and single-node setups."""

    def __init__(self, is_active: bool = True) -> None:
        self.phase = EventPhase(
            is_active=is_active,
            current_phase=Phase.ACTIVE if is_active else Phase.PREPARATION,
        )

    async def current(self) -> EventPhase:
        return self.phase


class DatabaseEventPhase:
    """Reads the event phase row; a missing row means the default phase."""

    def __init__(
        self,
        db_manager: Any,
        default_active: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db = db_manager
        self.default_active = default_active
        self.clock = clock

    async def current(self) -> EventPhase:
        row = await self.db.get_event_config()
        if row is None:
            return EventPhase(
                is_active=self.default_active,
                current_phase=Phase.ACTIVE if self.default_active else Phase.PREPARATION,
            )
        return EventPhase(
            is_active=bool(row["is_active"]), current_phase=row["current_phase"]
        )

    async def start_event(self) -> None:
        await self.db.set_event_phase(True, Phase.ACTIVE, self.clock())
        logger.info("Event started")

    async def pause_event(self) -> None:
        await self.db.set_event_phase(False, Phase.PAUSED, self.clock())
        logger.info("Event paused")

    async def stop_event(self) -> None:
        await self.db.set_event_phase(False, Phase.COMPLETED, self.clock())
        logger.info("Event stopped")
