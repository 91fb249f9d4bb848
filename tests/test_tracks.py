from datetime import date, timedelta

from warden.github.model import TimelineEvent
from warden.governance import tracks
from warden.governance.tracks import API_REVIEW, DEPRECATION_REVIEW
from warden.governance.types import (
    ApprovalTally,
    ReviewDecision,
    ReviewEvent,
    ReviewState,
)

from fakes import BOT, NOW, label_event, make_config, make_pr

REQUESTED = API_REVIEW.label_for(ReviewState.requested)
APPROVED = API_REVIEW.label_for(ReviewState.approved)
DECLINED = API_REVIEW.label_for(ReviewState.declined)


def test_current_state_precedence():
    assert tracks.current_state(API_REVIEW, []) == ReviewState.none
    assert tracks.current_state(API_REVIEW, [REQUESTED]) == ReviewState.requested
    assert (
        tracks.current_state(API_REVIEW, [REQUESTED, APPROVED]) == ReviewState.approved
    )
    assert (
        tracks.current_state(API_REVIEW, [APPROVED, DECLINED]) == ReviewState.declined
    )


def test_api_review_required_conditions():
    config = make_config()
    assert tracks.review_required(API_REVIEW, make_pr(labels=["semver/minor"]), config)
    assert tracks.review_required(API_REVIEW, make_pr(labels=["semver/major"]), config)
    assert not tracks.review_required(
        API_REVIEW, make_pr(labels=["semver/patch"]), config
    )
    assert not tracks.review_required(
        API_REVIEW, make_pr(labels=["semver/minor"], draft=True), config
    )
    assert not tracks.review_required(
        API_REVIEW, make_pr(labels=["semver/minor", "backport"]), config
    )
    assert not tracks.review_required(
        API_REVIEW, make_pr(labels=["semver/minor"], merged=True), config
    )


def test_default_branch_enforcement_is_configurable():
    pr = make_pr(labels=["semver/minor"], base_ref="30-x-y")
    assert not tracks.review_required(API_REVIEW, pr, make_config())
    assert tracks.review_required(
        API_REVIEW, pr, make_config(DEFAULT_BRANCH_ONLY=False)
    )


def test_deprecation_review_is_entered_by_label_only():
    config = make_config()
    requested = DEPRECATION_REVIEW.requested_label
    assert not tracks.review_required(DEPRECATION_REVIEW, make_pr(), config)
    assert tracks.review_required(
        DEPRECATION_REVIEW, make_pr(labels=[requested], draft=True), config
    )


def test_target_state_transitions():
    config = make_config()
    fresh = make_pr(labels=["semver/minor"])
    assert tracks.target_state(API_REVIEW, fresh, config) == ReviewState.requested
    # Votes do not count until the review has actually been requested.
    assert (
        tracks.target_state(API_REVIEW, fresh, config, ReviewDecision.approved)
        == ReviewState.requested
    )

    requested = make_pr(labels=["semver/minor", REQUESTED])
    assert (
        tracks.target_state(API_REVIEW, requested, config, ReviewDecision.approved)
        == ReviewState.approved
    )
    assert (
        tracks.target_state(API_REVIEW, requested, config, ReviewDecision.declined)
        == ReviewState.declined
    )

    approved = make_pr(labels=["semver/minor", APPROVED])
    assert (
        tracks.target_state(API_REVIEW, approved, config, ReviewDecision.declined)
        == ReviewState.approved
    )

    dropped = make_pr(labels=["semver/patch", APPROVED])
    assert tracks.target_state(API_REVIEW, dropped, config) == ReviewState.none


def test_deprecation_track_has_no_declined_state():
    config = make_config()
    pr = make_pr(labels=[DEPRECATION_REVIEW.requested_label])
    assert (
        tracks.target_state(DEPRECATION_REVIEW, pr, config, ReviewDecision.declined)
        == ReviewState.requested
    )


def test_plan_transition():
    plan = tracks.plan_transition(
        API_REVIEW, ["semver/minor", REQUESTED], ReviewState.approved
    )
    assert plan.add == (APPROVED,)
    assert plan.remove == (REQUESTED,)

    plan = tracks.plan_transition(
        API_REVIEW, [REQUESTED, APPROVED, "semver/minor"], ReviewState.none
    )
    assert plan.add == ()
    assert set(plan.remove) == {REQUESTED, APPROVED}

    assert tracks.plan_transition(
        API_REVIEW, ["semver/minor", REQUESTED], ReviewState.requested
    ).empty


def test_api_requested_payload_title_and_table():
    vote = ReviewEvent(login="alice", body="API LGTM", timestamp=NOW)
    tally = ApprovalTally(approved=frozenset({"alice"}), votes={"alice": vote})
    payload = tracks.check_run_payload(
        API_REVIEW, ReviewState.requested, tally=tally, ready_on=date(2026, 10, 24)
    )
    assert payload.status == "in_progress"
    assert payload.conclusion is None
    assert payload.output.title == "Pending (1/2 LGTMs - ready on 2026-10-24)"
    assert "@alice" in payload.output.summary
    assert "| Reviewer" in payload.output.summary


def test_terminal_and_outdated_payloads():
    approved = tracks.check_run_payload(API_REVIEW, ReviewState.approved)
    assert (approved.status, approved.conclusion) == ("completed", "success")

    declined = tracks.check_run_payload(API_REVIEW, ReviewState.declined)
    assert (declined.status, declined.conclusion) == ("completed", "failure")

    outdated = tracks.check_run_payload(DEPRECATION_REVIEW, ReviewState.none)
    assert (outdated.status, outdated.conclusion) == ("completed", "neutral")
    assert outdated.output.title == "Outdated"
    assert outdated.output.summary == "PR no longer requires Deprecation Review"

    pending = tracks.check_run_payload(DEPRECATION_REVIEW, ReviewState.requested)
    assert pending.output.title == "Pending"
    assert pending.output.summary == "Review in-progress"


def test_label_should_be_checked():
    assert tracks.label_should_be_checked("new-pr 🌱")
    assert tracks.label_should_be_checked("semver/minor")
    assert tracks.label_should_be_checked("fast-track 🚅")
    assert tracks.label_should_be_checked(APPROVED)
    assert tracks.label_should_be_checked(DEPRECATION_REVIEW.requested_label)
    assert not tracks.label_should_be_checked("documentation :notebook:")


def test_track_lookup():
    assert tracks.track_for_label(DECLINED) is API_REVIEW
    assert tracks.track_for_label("semver/minor") is None
    assert tracks.track_by_key("deprecation") is DEPRECATION_REVIEW


def test_rerequested_at_finds_bot_request_over_terminal_label():
    hour = timedelta(hours=1)
    timeline = [
        label_event("labeled", REQUESTED, at=NOW - 5 * hour),
        label_event("labeled", APPROVED, at=NOW - 4 * hour),
        label_event("unlabeled", REQUESTED, at=NOW - 4 * hour),
        label_event("labeled", REQUESTED, at=NOW - 2 * hour),
        label_event("unlabeled", APPROVED, at=NOW - 2 * hour),
    ]

    assert tracks.rerequested_at(API_REVIEW, timeline, BOT) == NOW - 2 * hour
    assert tracks.rerequested_at(API_REVIEW, timeline[:3], BOT) is None


def test_rerequested_at_ignores_plain_requests_and_humans():
    timeline = [
        TimelineEvent(event="ready_for_review", created_at=NOW - timedelta(hours=4)),
        label_event("labeled", REQUESTED, at=NOW - timedelta(hours=3)),
        label_event("labeled", DECLINED, actor="mallory", at=NOW - timedelta(hours=2)),
        label_event("labeled", REQUESTED, actor="mallory", at=NOW - timedelta(hours=1)),
    ]

    assert tracks.rerequested_at(API_REVIEW, timeline, BOT) is None
    assert tracks.rerequested_at(DEPRECATION_REVIEW, timeline, BOT) is None
