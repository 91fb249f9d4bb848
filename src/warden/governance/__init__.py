from warden.governance.roster import RosterCache
from warden.governance.synchronizer import StateSynchronizer
from warden.governance.tracks import API_REVIEW, DEPRECATION_REVIEW, TRACKS, TrackSpec
from warden.governance.types import (
    ApprovalTally,
    GovernanceConfig,
    GuardOutcome,
    ReviewDecision,
    ReviewEvent,
    ReviewState,
    TrackOutcome,
)

__all__ = [
    "API_REVIEW",
    "DEPRECATION_REVIEW",
    "TRACKS",
    "ApprovalTally",
    "GovernanceConfig",
    "GuardOutcome",
    "ReviewDecision",
    "ReviewEvent",
    "ReviewState",
    "RosterCache",
    "StateSynchronizer",
    "TrackOutcome",
    "TrackSpec",
]
