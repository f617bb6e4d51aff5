"""Duty collections and fetching."""

from .duty_set import DutySet, RECENT_PAST_PROPOSALS
from .fetcher import DutyFetcher

__all__ = [
    "DutySet",
    "DutyFetcher",
    "RECENT_PAST_PROPOSALS",
]
