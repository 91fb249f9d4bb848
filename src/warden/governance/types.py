from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping, Optional, Protocol, Sequence

from warden.github.model import IssueComment, Review


class GovernanceConfig(Protocol):
    BOT_USER_NAME: str
    EXCLUDED_AUTHORS: Sequence[str]
    MINIMUM_PATCH_OPEN_TIME: float
    MINIMUM_MINOR_OPEN_TIME: float
    MINIMUM_MAJOR_OPEN_TIME: float
    API_REVIEW_TEAM: str
    DEPRECATION_REVIEW_TEAM: Optional[str]
    DEFAULT_BRANCH_ONLY: bool


class ReviewState(Enum):
    none = "none"
    requested = "requested"
    approved = "approved"
    declined = "declined"


class Vote(Enum):
    approve = "approve"
    decline = "decline"
    request_changes = "request_changes"


class ReviewDecision(Enum):
    requested = "requested"
    approved = "approved"
    declined = "declined"


class GuardOutcome(Enum):
    allowed = "allowed"
    reverted = "reverted"
    not_applicable = "not_applicable"


@dataclass(frozen=True)
class ReviewEvent:
    login: str
    body: str
    timestamp: datetime
    state: Optional[str] = None

    @classmethod
    def from_review(cls, review: Review) -> Optional[ReviewEvent]:
        if review.user is None or review.submitted_at is None:
            return None
        return cls(
            login=review.user.login,
            body=review.body or "",
            state=review.state,
            timestamp=review.submitted_at,
        )

    @classmethod
    def from_comment(cls, comment: IssueComment) -> Optional[ReviewEvent]:
        if comment.user is None:
            return None
        return cls(
            login=comment.user.login,
            body=comment.body or "",
            timestamp=comment.updated_at or comment.created_at,
        )


@dataclass(frozen=True)
class ApprovalTally:
    approved: frozenset[str] = frozenset()
    declined: frozenset[str] = frozenset()
    requested_changes: frozenset[str] = frozenset()
    votes: Mapping[str, ReviewEvent] = field(default_factory=dict)


@dataclass(frozen=True)
class LabelPlan:
    add: tuple[str, ...] = ()
    remove: tuple[str, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.add and not self.remove


@dataclass(frozen=True)
class TrackOutcome:
    track: str
    previous: ReviewState
    target: ReviewState
    labels_added: tuple[str, ...] = ()
    labels_removed: tuple[str, ...] = ()
    check_run: str = "skipped"
    tally: Optional[ApprovalTally] = None

    @property
    def changed(self) -> bool:
        return bool(
            self.labels_added
            or self.labels_removed
            or self.check_run in ("created", "updated")
        )
