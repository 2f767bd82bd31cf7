"""Waitlist entry and notification states."""

from enum import Enum


class WaitlistEntryStatus(str, Enum):
    """Lifecycle of a standing waitlist request."""

    ACTIVE = "active"
    NOTIFIED = "notified"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    WITHDRAWN = "withdrawn"

    def is_final(self) -> bool:
        return self.value in ["accepted", "expired", "withdrawn"]


class WaitlistNotificationStatus(str, Enum):
    """Delivery state of a single slot offer."""

    SENT = "sent"
    DELIVERED = "delivered"
    RESPONDED = "responded"
    EXPIRED = "expired"

    def is_final(self) -> bool:
        return self.value in ["responded", "expired"]


class WaitlistResponse(str, Enum):
    """Patient answer to a slot offer."""

    ACCEPTED = "accepted"
    DECLINED = "declined"
    NO_RESPONSE = "no_response"
