"""Cortex: conversation-processing and appointment-booking engine."""

__version__ = "1.0.0"
