"""Scheduling domain: post-booking appointment lifecycle."""
