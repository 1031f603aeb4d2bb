"""
Flag validation against stored one-way hashes.
"""

import asyncio
import hashlib
import hmac
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from .errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)


def hash_secret(secret: str) -> str:
    """
    Hex SHA-256 digest of a flag, the form stored in checkpoint_secrets.

    @param secret: Plaintext flag
    @return: Lowercase hex digest
    """
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SecretFormat:
    """Public envelope every flag must match, e.g. CSBC{...}."""

    prefix: str = "CSBC{"
    suffix: str = "}"
    max_length: int = 1000

    def is_valid(self, secret: Any) -> bool:
        if not secret or not isinstance(secret, str):
            return False
        if len(secret) > self.max_length:
            return False
        if not secret.startswith(self.prefix) or not secret.endswith(self.suffix):
            return False
        inner = secret[len(self.prefix) : len(secret) - len(self.suffix)]
        return len(inner) > 0

    def describe(self) -> str:
        return f"{self.prefix}...{self.suffix}"


class SecretValidator:
    """Validates submitted flags in constant time with a uniform delay."""

    def __init__(
        self,
        db_manager: Any,
        secret_format: Optional[SecretFormat] = None,
        min_delay: float = 0.1,
        max_delay: float = 0.15,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.db = db_manager
        self.secret_format = secret_format or SecretFormat()
        self.min_delay = min_delay
        self.max_delay = max(min_delay, max_delay)
        self._sleep = sleep

    def check_format(self, secret: Any) -> None:
        """
        Reject a flag that does not match the public envelope.

        @param secret: Submitted flag
        @raise ValidationError: If the envelope or inner content is wrong
        """
        if not self.secret_format.is_valid(secret):
            raise ValidationError(
                f"Invalid flag format. Expected: {self.secret_format.describe()}"
            )

    async def _delay(self) -> None:
        await self._sleep(random.uniform(self.min_delay, self.max_delay))

    async def validate(
        self,
        secret: Any,
        checkpoint_id: str,
    ) -> bool:
        """
        Check a flag against the checkpoint's stored hash.

        A format error fails immediately. Every attempt that reaches the hash
        lookup is followed by the same random delay, whatever its outcome.

        @param secret: Submitted flag
        @param checkpoint_id: Checkpoint the flag is submitted for
        @return: True if the flag is correct, False otherwise
        @raise ValidationError: If the flag does not match the public format
        @raise ConfigurationError: If no usable hash is stored for the checkpoint
        """
        self.check_format(secret)

        try:
            stored_hash = await self.db.get_secret_hash(checkpoint_id)
            if not stored_hash:
                logger.error("No flag hash configured for checkpoint %s", checkpoint_id)
                raise ConfigurationError("Checkpoint configuration error")
            try:
                expected = bytes.fromhex(stored_hash)
            except ValueError:
                logger.error(
                    "Malformed flag hash configured for checkpoint %s", checkpoint_id
                )
                raise ConfigurationError("Checkpoint configuration error")

            actual = hashlib.sha256(secret.encode("utf-8")).digest()
            return hmac.compare_digest(actual, expected)
        finally:
            await self._delay()
