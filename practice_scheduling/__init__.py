"""
Practice scheduling lifecycle service.

Cancellation policy, waitlist rebalancing, multi-channel confirmations and
staff routing for appointments booked in an OpenEMR system of record.
"""

__version__ = "0.1.0"
