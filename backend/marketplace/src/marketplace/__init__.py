"""Booking lifecycle and payment reconciliation core for the guide marketplace."""

__version__ = "0.1.0"
