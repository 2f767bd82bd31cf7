from .waitlist_expiry_scheduler import WaitlistExpiryScheduler

__all__ = ["WaitlistExpiryScheduler"]
