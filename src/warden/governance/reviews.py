"""Turns review and comment activity into an approval tally.

Only working-group members vote. Each member's most recent qualifying review
or comment is their vote, so a later ``API CHANGES REQUESTED`` replaces an
earlier ``API LGTM`` from the same person and the other way around.
"""

from __future__ import annotations

from datetime import datetime
from typing import Collection, Dict, Iterable, List, Optional

from warden.governance.constants import (
    API_CHANGES_REQUESTED_RE,
    API_DECLINED_RE,
    API_LGTM_RE,
    DEPRECATION_CHECKLIST_HEADER,
    UNCHECKED_ITEM_RE,
)
from warden.governance.types import ApprovalTally, ReviewDecision, ReviewEvent, Vote

APPROVAL_THRESHOLD = 2


def classify(event: ReviewEvent) -> Optional[Vote]:
    if event.state == "CHANGES_REQUESTED":
        return Vote.request_changes
    if API_DECLINED_RE.search(event.body):
        return Vote.decline
    if API_CHANGES_REQUESTED_RE.search(event.body):
        return Vote.request_changes
    if API_LGTM_RE.search(event.body):
        return Vote.approve
    return None


def has_review_marker(body: str) -> bool:
    return any(
        regex.search(body)
        for regex in (API_LGTM_RE, API_DECLINED_RE, API_CHANGES_REQUESTED_RE)
    )


def without_self_approvals(
    events: Iterable[ReviewEvent], author: str
) -> List[ReviewEvent]:
    return [
        e for e in events if not (e.login == author and classify(e) == Vote.approve)
    ]


def aggregate(
    roster: Collection[str],
    reviews: Iterable[ReviewEvent],
    comments: Iterable[ReviewEvent],
    *,
    since: Optional[datetime] = None,
) -> ApprovalTally:
    """Tally the latest vote of each roster member.

    Activity before ``since`` is ignored; a re-requested review starts from
    an empty tally.
    """
    latest: Dict[str, tuple[ReviewEvent, Vote]] = {}
    for event in [*reviews, *comments]:
        if event.login not in roster:
            continue
        if since is not None and event.timestamp < since:
            continue
        vote = classify(event)
        if vote is None:
            continue
        current = latest.get(event.login)
        if current is None or event.timestamp >= current[0].timestamp:
            latest[event.login] = (event, vote)

    def logins(vote: Vote) -> frozenset[str]:
        return frozenset(login for login, (_, v) in latest.items() if v == vote)

    return ApprovalTally(
        approved=logins(Vote.approve),
        declined=logins(Vote.decline),
        requested_changes=logins(Vote.request_changes),
        votes={login: event for login, (event, _) in latest.items()},
    )


def decide(tally: ApprovalTally) -> ReviewDecision:
    if len(tally.declined) >= 1:
        return ReviewDecision.declined
    if len(tally.approved) >= APPROVAL_THRESHOLD and not tally.requested_changes:
        return ReviewDecision.approved
    return ReviewDecision.requested


def is_checklist_comment(event: ReviewEvent, bot_login: str) -> bool:
    return event.login == bot_login and event.body.startswith(
        DEPRECATION_CHECKLIST_HEADER
    )


def checklist_complete(body: str) -> bool:
    return UNCHECKED_ITEM_RE.search(body) is None
