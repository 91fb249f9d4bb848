"""Minimum-open-time gate.

A pull request has to stay open for a while before it is considered
mergeable-age. The window depends on its semver label; draft time does not
count. Everything here is pure: callers fetch the timeline and pass ``now``.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Sequence

from warden.github.model import PullRequest, TimelineEvent
from warden.governance.constants import (
    BACKPORT_TITLE_RE,
    EXCLUDE_LABELS,
    EXCLUDE_PREFIXES,
    SEMVER_MAJOR_LABEL,
    SEMVER_MINOR_LABEL,
    SEMVER_NONE_LABEL,
    SEMVER_PATCH_LABEL,
)
from warden.governance.types import GovernanceConfig


def minimum_open_time(labels: Iterable[str], config: GovernanceConfig) -> timedelta:
    names = set(labels)
    if SEMVER_MAJOR_LABEL in names:
        return timedelta(seconds=config.MINIMUM_MAJOR_OPEN_TIME)
    if SEMVER_MINOR_LABEL in names:
        return timedelta(seconds=config.MINIMUM_MINOR_OPEN_TIME)
    if SEMVER_PATCH_LABEL in names or SEMVER_NONE_LABEL in names:
        return timedelta(seconds=config.MINIMUM_PATCH_OPEN_TIME)
    # Unlabeled PRs are treated as the riskiest class.
    return timedelta(seconds=config.MINIMUM_MAJOR_OPEN_TIME)


def effective_opened_at(
    pr: PullRequest, timeline_events: Sequence[TimelineEvent]
) -> datetime:
    ready = [
        e.created_at
        for e in timeline_events
        if e.event == "ready_for_review" and e.created_at is not None
    ]
    if ready:
        return max(ready)
    return pr.created_at


def title_prefix(title: str) -> str:
    return title.split(":")[0].strip().lower()


def exclusion_reason(pr: PullRequest, config: GovernanceConfig) -> str | None:
    """Return why the gate does not apply to ``pr``, or ``None`` if it does."""
    if pr.is_merged:
        return "merged"
    if title_prefix(pr.title) in EXCLUDE_PREFIXES:
        return "title_prefix"
    if any(name in EXCLUDE_LABELS for name in pr.label_names):
        return "exclusion_label"
    if BACKPORT_TITLE_RE.search(pr.title):
        return "backport_title"
    if pr.user.login in config.EXCLUDED_AUTHORS or pr.user.login == config.BOT_USER_NAME:
        return "automation_author"
    return None


def is_within_gate(
    pr: PullRequest,
    timeline_events: Sequence[TimelineEvent],
    now: datetime,
    config: GovernanceConfig,
) -> bool:
    opened_at = effective_opened_at(pr, timeline_events)
    return now - opened_at < minimum_open_time(pr.label_names, config)


def should_have_new_pr_label(
    pr: PullRequest,
    timeline_events: Sequence[TimelineEvent],
    now: datetime,
    config: GovernanceConfig,
) -> bool:
    if exclusion_reason(pr, config) is not None:
        return False
    return is_within_gate(pr, timeline_events, now, config)


def ready_on(
    pr: PullRequest,
    timeline_events: Sequence[TimelineEvent],
    config: GovernanceConfig,
) -> date:
    opened_at = effective_opened_at(pr, timeline_events)
    ready_at = opened_at + minimum_open_time(pr.label_names, config)
    if ready_at.tzinfo is not None:
        ready_at = ready_at.astimezone(timezone.utc)
    return ready_at.date()
