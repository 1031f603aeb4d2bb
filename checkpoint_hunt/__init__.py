"""
Checkpoint Hunt - scoring service for location-based capture-the-flag hunts.

This package provides:
- Team progression through ordered checkpoints (check-in, solving, moving)
- Flag validation against stored hashes with a uniform response delay
- Hint and time penalties with a single authoritative score per checkpoint
- Captain review of manually submitted flags
- aiohttp JSON API over a SQLite datastore
"""

from .config import HuntConfig
from .database import DatabaseManager
from .errors import HuntError, Rejection, TransientStoreError
from .hunt import HuntSystem
from .scoring import ScoreBreakdown, calculate_final_score
from .web_handlers import WebHandlers

__version__ = "1.0.0"
__author__ = "Checkpoint Hunt Contributors"

__all__ = [
    "HuntConfig",
    "DatabaseManager",
    "HuntError",
    "Rejection",
    "TransientStoreError",
    "HuntSystem",
    "ScoreBreakdown",
    "calculate_final_score",
    "WebHandlers",
]
