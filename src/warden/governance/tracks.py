from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Mapping, Optional

from tabulate import tabulate

from warden.github.model import (
    CheckRunOutput,
    CheckRunPayload,
    PullRequest,
    TimelineEvent,
)
from warden.governance.constants import (
    API_REVIEW_APPROVED_LABEL,
    API_REVIEW_CHECK_NAME,
    API_REVIEW_DECLINED_LABEL,
    API_REVIEW_REQUESTED_LABEL,
    DEPRECATION_REVIEW_CHECK_NAME,
    DEPRECATION_REVIEW_COMPLETE_LABEL,
    DEPRECATION_REVIEW_REQUESTED_LABEL,
    EXCLUDE_LABELS,
    NEW_PR_LABEL,
    SEMVER_LABELS,
    SEMVER_MAJOR_LABEL,
    SEMVER_MINOR_LABEL,
)
from warden.governance.reviews import APPROVAL_THRESHOLD
from warden.governance.types import (
    ApprovalTally,
    GovernanceConfig,
    LabelPlan,
    ReviewDecision,
    ReviewState,
    Vote,
)


@dataclass(frozen=True, eq=False)
class TrackSpec:
    key: str
    check_name: str
    labels: Mapping[ReviewState, str]
    # Labels that put a PR into review. Empty means humans start the review
    # by adding the requested label themselves.
    trigger_labels: frozenset[str]
    roster_setting: str
    titles: Mapping[ReviewState, str]
    summaries: Mapping[ReviewState, str]

    @property
    def human_requestable(self) -> bool:
        return not self.trigger_labels

    @property
    def requested_label(self) -> str:
        return self.labels[ReviewState.requested]

    @property
    def all_labels(self) -> tuple[str, ...]:
        return tuple(self.labels.values())

    def label_for(self, state: ReviewState) -> Optional[str]:
        return self.labels.get(state)

    def state_for(self, label: str) -> Optional[ReviewState]:
        for state, name in self.labels.items():
            if name == label:
                return state
        return None

    def __str__(self) -> str:
        return self.check_name


API_REVIEW = TrackSpec(
    key="api",
    check_name=API_REVIEW_CHECK_NAME,
    labels={
        ReviewState.requested: API_REVIEW_REQUESTED_LABEL,
        ReviewState.approved: API_REVIEW_APPROVED_LABEL,
        ReviewState.declined: API_REVIEW_DECLINED_LABEL,
    },
    trigger_labels=frozenset({SEMVER_MINOR_LABEL, SEMVER_MAJOR_LABEL}),
    roster_setting="API_REVIEW_TEAM",
    titles={
        ReviewState.approved: "Approved",
        ReviewState.declined: "Declined",
    },
    summaries={
        ReviewState.approved: "API review has been approved by the working group",
        ReviewState.declined: "API review has been declined by the working group",
    },
)

DEPRECATION_REVIEW = TrackSpec(
    key="deprecation",
    check_name=DEPRECATION_REVIEW_CHECK_NAME,
    labels={
        ReviewState.requested: DEPRECATION_REVIEW_REQUESTED_LABEL,
        ReviewState.approved: DEPRECATION_REVIEW_COMPLETE_LABEL,
    },
    trigger_labels=frozenset(),
    roster_setting="DEPRECATION_REVIEW_TEAM",
    titles={
        ReviewState.requested: "Pending",
        ReviewState.approved: "Complete",
    },
    summaries={
        ReviewState.requested: "Review in-progress",
        ReviewState.approved: "All review items have been checked off",
    },
)

TRACKS = (API_REVIEW, DEPRECATION_REVIEW)

_STATE_PRECEDENCE = (
    ReviewState.declined,
    ReviewState.approved,
    ReviewState.requested,
)


def track_for_label(label: str) -> Optional[TrackSpec]:
    for track in TRACKS:
        if label in track.all_labels:
            return track
    return None


def track_by_key(key: str) -> TrackSpec:
    for track in TRACKS:
        if track.key == key:
            return track
    raise KeyError(f"Unknown review track {key!r}")


def label_should_be_checked(label: str) -> bool:
    return (
        label == NEW_PR_LABEL
        or label in SEMVER_LABELS
        or label in EXCLUDE_LABELS
        or track_for_label(label) is not None
    )


def current_state(track: TrackSpec, labels: Iterable[str]) -> ReviewState:
    names = set(labels)
    # Terminal labels win if several are present; the sync removes the rest.
    for state in _STATE_PRECEDENCE:
        label = track.label_for(state)
        if label is not None and label in names:
            return state
    return ReviewState.none


def review_required(
    track: TrackSpec, pr: PullRequest, config: GovernanceConfig
) -> bool:
    if pr.is_merged:
        return False
    names = set(pr.label_names)
    if track.human_requestable:
        return current_state(track, names) != ReviewState.none
    if not names & track.trigger_labels:
        return False
    if names & EXCLUDE_LABELS:
        return False
    if pr.draft:
        return False
    if config.DEFAULT_BRANCH_ONLY and not pr.targets_default_branch:
        return False
    return True


def target_state(
    track: TrackSpec,
    pr: PullRequest,
    config: GovernanceConfig,
    decision: Optional[ReviewDecision] = None,
) -> ReviewState:
    if not review_required(track, pr, config):
        return ReviewState.none
    current = current_state(track, pr.label_names)
    if current == ReviewState.none:
        return ReviewState.requested
    if current == ReviewState.requested and decision is not None:
        state = ReviewState(decision.value)
        if track.label_for(state) is not None:
            return state
    return current


def plan_transition(
    track: TrackSpec, labels: Iterable[str], target: ReviewState
) -> LabelPlan:
    names = list(labels)
    target_label = track.label_for(target)
    add: tuple[str, ...] = ()
    if target_label is not None and target_label not in names:
        add = (target_label,)
    remove = tuple(
        label
        for label in track.all_labels
        if label in names and label != target_label
    )
    return LabelPlan(add=add, remove=remove)


def rerequested_at(
    track: TrackSpec, timeline_events: Iterable[TimelineEvent], bot_login: str
) -> Optional[datetime]:
    """When the automation last moved ``track`` out of a terminal state.

    A re-request adds the requested label while the terminal label is still
    present. Votes and checklist edits from before that moment no longer
    count.
    """
    terminal = {
        track.label_for(state)
        for state in (ReviewState.approved, ReviewState.declined)
    } - {None}
    events = sorted(
        (e for e in timeline_events if e.label is not None and e.created_at is not None),
        key=lambda e: e.created_at,
    )

    present: set[str] = set()
    result = None
    for event in events:
        name = event.label.name
        if event.event == "unlabeled":
            present.discard(name)
        elif event.event == "labeled":
            if (
                name == track.requested_label
                and present
                and event.actor is not None
                and event.actor.login == bot_login
            ):
                result = event.created_at
            if name in terminal:
                present.add(name)
    return result


_VOTE_DISPLAY = {
    Vote.approve: ":white_check_mark: LGTM",
    Vote.decline: ":x: declined",
    Vote.request_changes: ":yellow_circle: changes requested",
}


def _tally_table(tally: ApprovalTally) -> str:
    rows = []
    for login in sorted(tally.votes):
        if login in tally.approved:
            vote = Vote.approve
        elif login in tally.declined:
            vote = Vote.decline
        else:
            vote = Vote.request_changes
        rows.append((f"@{login}", _VOTE_DISPLAY[vote]))
    if not rows:
        return "No working group member has voted yet."
    return tabulate(rows, headers=("Reviewer", "Vote"), tablefmt="github")


def check_run_payload(
    track: TrackSpec,
    state: ReviewState,
    *,
    tally: Optional[ApprovalTally] = None,
    ready_on: Optional[date] = None,
) -> CheckRunPayload:
    if state == ReviewState.none:
        return CheckRunPayload(
            name=track.check_name,
            status="completed",
            conclusion="neutral",
            output=CheckRunOutput(
                title="Outdated",
                summary=f"PR no longer requires {track.check_name}",
            ),
        )

    if state == ReviewState.requested:
        status, conclusion = "in_progress", None
    elif state == ReviewState.approved:
        status, conclusion = "completed", "success"
    else:
        status, conclusion = "completed", "failure"

    title = track.titles.get(state)
    summary = track.summaries.get(state)
    if track is API_REVIEW and state == ReviewState.requested:
        approvals = len(tally.approved) if tally is not None else 0
        title = f"Pending ({approvals}/{APPROVAL_THRESHOLD} LGTMs"
        if ready_on is not None:
            title += f" - ready on {ready_on.isoformat()}"
        title += ")"
        summary = "API review in progress.\n\n" + _tally_table(
            tally or ApprovalTally()
        )

    return CheckRunPayload(
        name=track.check_name,
        status=status,
        conclusion=conclusion,
        output=CheckRunOutput(title=title, summary=summary),
    )
