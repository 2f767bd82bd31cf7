"""Priority Value Objects for waitlist entries and staff notifications."""

from enum import Enum


class WaitlistPriority(str, Enum):
    """Waitlist tiers, highest first."""

    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def age_multiplier(self) -> int:
        """Weight applied to hours-in-queue when ranking entries."""
        return {"urgent": 4, "high": 3, "normal": 2, "low": 1}[self.value]

    @property
    def match_bonus(self) -> float:
        """Bonus added to a slot match score."""
        return {"urgent": 0.15, "high": 0.12, "normal": 0.08, "low": 0.05}[self.value]


class NotificationPriority(str, Enum):
    """Staff notification priority."""

    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank, 0 is most urgent."""
        return {"critical": 0, "high": 1, "normal": 2, "low": 3}[self.value]

    def is_urgent(self) -> bool:
        """Whether the notice belongs on the urgent queue."""
        return self in (NotificationPriority.CRITICAL, NotificationPriority.HIGH)
