"""Validate, schedule and execute graphs of typed task nodes."""

__version__ = "1.0.0"
