"""
Code generation, normalization and lookup.

Redemption codes look like ``REWARD-7KQ2-M9XD``: a prefix followed by
groups drawn from an alphabet without the easily confused 0/O and 1/I.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from apps.common.types import Err, Ok, Result

from .exceptions import Conflict, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ===============================================================================
# Constants
# ===============================================================================

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REDEMPTION_CODE_PREFIX = "REWARD"
CODE_NOT_FOUND = "CODE_NOT_FOUND"


def normalize_code(raw: str | None) -> str:
    """Normalize a user-supplied code to uppercase and trimmed."""
    if raw is None:
        return ""
    return str(raw).strip().upper()


@dataclass(frozen=True)
class VerifiedCode(Generic[T]):
    """A code that matched a stored record, usable or not."""

    code: str
    record: T
    status: str
    is_usable: bool


class CodeCodec(Generic[T]):
    """
    Generates unique codes and resolves user input back to records.

    Args:
        exists: Returns True if a code is already taken.
        lookup: Returns the record stored under a normalized code, or None.
        describe: Returns the record's current status label.
        usable_status: Label meaning the record can still be used.
    """

    def __init__(  # noqa: PLR0913
        self,
        exists: Callable[[str], bool],
        lookup: Callable[[str], T | None] | None = None,
        describe: Callable[[T], str] | None = None,
        *,
        prefix: str = REDEMPTION_CODE_PREFIX,
        groups: int = 2,
        group_size: int = 4,
        max_attempts: int = 10,
        usable_status: str = "active",
    ) -> None:
        self.exists = exists
        self.lookup = lookup
        self.describe = describe
        self.prefix = prefix
        self.groups = groups
        self.group_size = group_size
        self.max_attempts = max_attempts
        self.usable_status = usable_status

    def candidate(self) -> str:
        parts = ["".join(secrets.choice(CODE_ALPHABET) for _ in range(self.group_size)) for _ in range(self.groups)]
        if self.prefix:
            parts.insert(0, self.prefix)
        return "-".join(parts)

    def generate(self) -> str:
        """Generate a code not yet taken, giving up after ``max_attempts``."""
        for attempt in range(1, self.max_attempts + 1):
            code = self.candidate()
            if not self.exists(code):
                return code
            logger.debug("Code collision on attempt %d", attempt)

        logger.error("Failed to generate a unique code after %d attempts", self.max_attempts)
        raise Conflict(
            f"Could not generate a unique code after {self.max_attempts} attempts", "CODE_GENERATION_FAILED"
        )

    def verify(self, raw: str | None) -> Result[VerifiedCode[T], str]:
        """
        Resolve user input to a stored record.

        Returns Err(CODE_NOT_FOUND) when nothing matches, and Ok with the
        record and its status otherwise, even when it can no longer be used.
        """
        code = normalize_code(raw)
        if not code:
            raise ValidationError("Code is required", "CODE_REQUIRED")
        if self.lookup is None or self.describe is None:
            raise TypeError("CodeCodec.verify needs lookup and describe callables")

        record = self.lookup(code)
        if record is None:
            return Err(CODE_NOT_FOUND)

        status = str(self.describe(record))
        return Ok(VerifiedCode(code=code, record=record, status=status, is_usable=status == self.usable_status))
