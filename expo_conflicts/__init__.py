"""
Conflict detection and assignment-resolution engine for trade-show events.

Detects scheduling collisions between programmed activities, competing
claims on exhibition stands, and drives both through a review workflow.
"""

__version__ = "0.1.0"
