import pytest

from warden.dispatcher import EventDispatcher
from warden.events import (
    InvalidEventPayload,
    InvariantViolation,
    UnsupportedEvent,
    WebhookEnvelope,
)
from warden.governance.constants import DEPRECATION_CHECKLIST
from warden.governance.synchronizer import StateSynchronizer
from warden.governance.tracks import API_REVIEW, DEPRECATION_REVIEW
from warden.governance.types import GuardOutcome, ReviewState

from fakes import (
    BOT,
    NOW,
    FakeAPI,
    comment,
    make_config,
    make_pr,
    pull_request_payload,
    repository_payload,
)

REQUESTED = API_REVIEW.labels[ReviewState.requested]
APPROVED = API_REVIEW.labels[ReviewState.approved]
DEP_REQUESTED = DEPRECATION_REVIEW.labels[ReviewState.requested]
DEP_COMPLETE = DEPRECATION_REVIEW.labels[ReviewState.approved]


def make_dispatcher(api):
    requested = []

    async def api_factory(installation_id):
        requested.append(installation_id)
        return api

    dispatcher = EventDispatcher(
        synchronizer=StateSynchronizer(config=make_config(), clock=lambda: NOW),
        api_factory=api_factory,
    )
    return dispatcher, requested


def envelope(event_name, action, sender="octocat", **payload):
    data = {
        "action": action,
        "installation": {"id": 99},
        "repository": repository_payload(),
        "sender": {"login": sender},
    }
    data.update(payload)
    return WebhookEnvelope(event_name=event_name, payload=data, delivery_id="d1")


def issue_payload(number=42, *, pull_request=True, state="open"):
    data = {"number": number, "state": state, "labels": []}
    if pull_request:
        data["pull_request"] = {"url": f"https://api.github.com/pulls/{number}"}
    return data


@pytest.mark.asyncio
async def test_unknown_event_is_unsupported():
    dispatcher, _ = make_dispatcher(FakeAPI())
    with pytest.raises(UnsupportedEvent):
        await dispatcher.dispatch(WebhookEnvelope(event_name="ping", payload={}))


@pytest.mark.asyncio
async def test_malformed_payload_is_rejected():
    dispatcher, _ = make_dispatcher(FakeAPI())
    with pytest.raises(InvalidEventPayload):
        await dispatcher.dispatch(
            WebhookEnvelope(event_name="pull_request", payload={"action": "opened"})
        )


@pytest.mark.asyncio
async def test_labeled_without_label_violates_invariant():
    dispatcher, requested = make_dispatcher(FakeAPI())
    with pytest.raises(InvariantViolation):
        await dispatcher.dispatch(
            envelope("pull_request", "labeled", pull_request=pull_request_payload())
        )
    assert requested == []


@pytest.mark.asyncio
async def test_opened_runs_full_pipeline():
    api = FakeAPI(labels=["semver/minor"])
    dispatcher, requested = make_dispatcher(api)

    result = await dispatcher.dispatch(
        envelope(
            "pull_request",
            "opened",
            pull_request=pull_request_payload(labels=["semver/minor"]),
        )
    )

    assert result.result == "processed"
    assert requested == [99]
    assert REQUESTED in api.labels
    assert api.check_run("API Review") is not None
    assert api.check_run("Semver Label Enforcement") is not None


@pytest.mark.asyncio
async def test_closed_pull_request_is_skipped():
    dispatcher, requested = make_dispatcher(FakeAPI())

    result = await dispatcher.dispatch(
        envelope(
            "pull_request",
            "edited",
            pull_request=pull_request_payload(state="closed", merged=True),
        )
    )

    assert result.result == "skipped:closed"
    assert requested == []


@pytest.mark.asyncio
async def test_irrelevant_label_is_filtered_before_api_access():
    dispatcher, requested = make_dispatcher(FakeAPI())

    result = await dispatcher.dispatch(
        envelope(
            "pull_request",
            "labeled",
            pull_request=pull_request_payload(),
            label={"name": "documentation :notebook:"},
        )
    )

    assert result.result == "skipped:irrelevant_label"
    assert requested == []


@pytest.mark.asyncio
async def test_human_approval_label_is_reverted_then_state_machine_runs():
    labels = ["semver/minor", REQUESTED, APPROVED]
    api = FakeAPI(labels=labels)
    dispatcher, _ = make_dispatcher(api)

    result = await dispatcher.dispatch(
        envelope(
            "pull_request",
            "labeled",
            sender="mallory",
            pull_request=pull_request_payload(labels=labels),
            label={"name": APPROVED},
        )
    )

    assert result.guard == GuardOutcome.reverted
    assert api.labels == ["semver/minor", REQUESTED]
    api_outcome = next(o for o in result.outcomes if o.track == "api")
    assert api_outcome.target == ReviewState.requested


@pytest.mark.asyncio
async def test_review_submission_updates_tracks_only():
    labels = ["semver/minor", REQUESTED]
    api = FakeAPI(
        labels=labels,
        team_members={"wg-api": ["alice", "bob"]},
        comments=[comment("alice", "API LGTM", id=1), comment("bob", "API LGTM", id=2)],
    )
    dispatcher, _ = make_dispatcher(api)

    await dispatcher.dispatch(
        envelope(
            "pull_request_review",
            "submitted",
            pull_request=pull_request_payload(labels=labels),
            review={"id": 1, "user": {"login": "bob"}, "state": "COMMENTED", "body": "API LGTM"},
        )
    )

    assert api.labels == ["semver/minor", APPROVED]
    assert api.check_run("Semver Label Enforcement") is None


@pytest.mark.asyncio
async def test_marker_comment_triggers_api_track():
    labels = ["semver/minor", REQUESTED]
    pr = make_pr(labels=labels)
    api = FakeAPI(
        labels=labels,
        team_members={"wg-api": ["alice", "bob"]},
        comments=[comment("alice", "API LGTM", id=1), comment("bob", "API LGTM", id=2)],
        pulls={"org/repo": [pr]},
    )
    dispatcher, _ = make_dispatcher(api)

    result = await dispatcher.dispatch(
        envelope(
            "issue_comment",
            "created",
            issue=issue_payload(),
            comment={
                "id": 2,
                "user": {"login": "bob"},
                "body": "API LGTM",
                "created_at": NOW.isoformat(),
            },
        )
    )

    assert [o.track for o in result.outcomes] == ["api"]
    assert api.labels == ["semver/minor", APPROVED]


@pytest.mark.asyncio
async def test_plain_comment_and_issue_comments_are_skipped():
    dispatcher, requested = make_dispatcher(FakeAPI())
    body = {
        "id": 3,
        "user": {"login": "alice"},
        "body": "thanks!",
        "created_at": NOW.isoformat(),
    }

    result = await dispatcher.dispatch(
        envelope("issue_comment", "created", issue=issue_payload(), comment=body)
    )
    assert result.result == "skipped:no_marker"

    result = await dispatcher.dispatch(
        envelope(
            "issue_comment",
            "created",
            issue=issue_payload(pull_request=False),
            comment=dict(body, body="API LGTM"),
        )
    )
    assert result.result == "skipped:not_pull_request"
    assert requested == []


@pytest.mark.asyncio
async def test_checklist_edit_completes_deprecation_review():
    labels = [DEP_REQUESTED]
    completed = DEPRECATION_CHECKLIST.replace("- [ ] ", "- [x] ")
    pr = make_pr(labels=labels)
    api = FakeAPI(
        labels=labels,
        comments=[comment(BOT, completed, id=5)],
        pulls={"org/repo": [pr]},
    )
    dispatcher, _ = make_dispatcher(api)

    result = await dispatcher.dispatch(
        envelope(
            "issue_comment",
            "edited",
            sender="alice",
            issue=issue_payload(),
            comment={
                "id": 5,
                "user": {"login": BOT},
                "body": completed,
                "created_at": NOW.isoformat(),
            },
        )
    )

    assert [o.track for o in result.outcomes] == ["deprecation"]
    assert api.labels == [DEP_COMPLETE]
