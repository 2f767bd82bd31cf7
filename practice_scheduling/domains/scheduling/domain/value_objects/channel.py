"""Delivery Channel Value Object."""

from enum import Enum


class Channel(str, Enum):
    """Patient notification channels. Voice is the live call."""

    VOICE = "voice"
    SMS = "sms"
    EMAIL = "email"
