"""
Ticket Value Objects
====================

Immutable value objects for the ticket domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

from config import Priority, VALID_PRIORITIES

DEFAULT_SLA_HOURS: Dict[str, float] = {
    Priority.CRITICAL.value: 4,
    Priority.HIGH.value: 12,
    Priority.MEDIUM.value: 24,
    Priority.LOW.value: 48,
}
FALLBACK_SLA_HOURS = 24


class SLAPolicy(BaseModel):
    """
    Resolution targets per priority, loaded from YAML.

    Missing priorities fall back to the default table; priorities that are
    not recognised at all get ``fallback_hours``.
    """
    model_config = {"frozen": True}

    resolution_hours: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_SLA_HOURS),
        description="Hours from reference time to SLA deadline, by priority"
    )
    fallback_hours: float = Field(
        default=FALLBACK_SLA_HOURS,
        gt=0,
        description="Offset for unrecognised priorities"
    )

    @field_validator("resolution_hours")
    @classmethod
    def fill_missing_priorities(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Reject unknown priorities and non-positive offsets, fill the rest with defaults."""
        unknown = set(v) - set(VALID_PRIORITIES)
        if unknown:
            raise ValueError(f"unknown priorities in SLA policy: {sorted(unknown)}")
        for priority, hours in v.items():
            if hours <= 0:
                raise ValueError(f"SLA offset for '{priority}' must be positive")
        merged = dict(DEFAULT_SLA_HOURS)
        merged.update(v)
        return merged

    def offset_for(self, priority: Optional[str]) -> timedelta:
        """Offset between reference time and deadline for a priority."""
        key = priority.value if isinstance(priority, Priority) else priority
        hours = self.resolution_hours.get(key, self.fallback_hours)
        return timedelta(hours=hours)


DEFAULT_SLA_POLICY = SLAPolicy()


class SLACalculator:
    """
    Pure functions for SLA calculations.

    All deadline arithmetic lives here so the entity, the services and the
    metrics all agree.
    """

    @staticmethod
    def calculate_deadline(
        priority: Optional[str],
        reference_time: Optional[datetime] = None,
        policy: SLAPolicy = DEFAULT_SLA_POLICY
    ) -> datetime:
        """
        Calculate the SLA deadline for a ticket.

        Args:
            priority: Ticket priority (unrecognised values get the fallback offset)
            reference_time: When the clock starts (defaults to now, UTC)
            policy: Offsets to use

        Returns:
            reference_time + offset(priority)
        """
        if reference_time is None:
            reference_time = datetime.now(timezone.utc)
        return reference_time + policy.offset_for(priority)

    @staticmethod
    def is_overdue(deadline: Optional[datetime], current_time: datetime) -> bool:
        """A deadline is overdue once it is strictly before the current time."""
        return deadline is not None and deadline < current_time

    @staticmethod
    def resolved_within(deadline: Optional[datetime], resolved_at: Optional[datetime]) -> Optional[bool]:
        """Whether resolution met the deadline; None when either side is missing."""
        if deadline is None or resolved_at is None:
            return None
        return resolved_at <= deadline


_TICKET_ID_PATTERN = re.compile(r"^TK-(\d{4})-(\d{3,})$")


@dataclass(frozen=True)
class TicketIdentifier:
    """Human-readable, year-scoped ticket identifier: ``TK-<year>-<seq>``."""
    year: int
    sequence: int

    def __post_init__(self):
        if self.sequence < 1:
            raise ValueError("sequence must be positive")
        if not 1000 <= self.year <= 9999:
            raise ValueError("year must have four digits")

    def __str__(self) -> str:
        return f"TK-{self.year}-{self.sequence:03d}"

    @classmethod
    def parse(cls, value: str) -> "TicketIdentifier":
        match = _TICKET_ID_PATTERN.match(value)
        if not match:
            raise ValueError(f"not a ticket identifier: {value!r}")
        return cls(year=int(match.group(1)), sequence=int(match.group(2)))

    @staticmethod
    def is_valid(value: str) -> bool:
        return bool(_TICKET_ID_PATTERN.match(value))
