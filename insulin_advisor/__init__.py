"""Insulin Advisor: AI-assisted insulin dose recommendations for caregivers."""

__version__ = "0.1.0"
