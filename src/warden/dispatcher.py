from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple

from sanic.log import logger

from warden.events import (
    GovernanceEvent,
    InvariantViolation,
    IssueCommentEvent,
    PullRequestEvent,
    PullRequestReviewEvent,
    WebhookEnvelope,
    parse_event,
)
from warden.github.api import API
from warden.governance.reviews import has_review_marker, is_checklist_comment
from warden.governance.synchronizer import StateSynchronizer
from warden.governance.tracks import (
    API_REVIEW,
    DEPRECATION_REVIEW,
    TrackSpec,
    label_should_be_checked,
)
from warden.governance.types import GuardOutcome, ReviewEvent, TrackOutcome
from warden.metric import webhook_skipped_counter


@dataclass(frozen=True)
class DispatchResult:
    result: str
    outcomes: Tuple[TrackOutcome, ...] = ()
    guard: Optional[GuardOutcome] = None


class EventDispatcher:
    _PULL_REQUEST_ACTIONS = frozenset(
        {
            "opened",
            "reopened",
            "synchronize",
            "edited",
            "ready_for_review",
            "converted_to_draft",
        }
    )
    _TRIAGE_ACTIONS = frozenset({"opened", "edited"})
    _LABEL_ACTIONS = frozenset({"labeled", "unlabeled"})
    _REVIEW_ACTIONS = frozenset({"submitted", "edited", "dismissed"})
    _COMMENT_ACTIONS = frozenset({"created", "edited"})

    def __init__(
        self,
        *,
        synchronizer: StateSynchronizer,
        api_factory: Callable[[int], Awaitable[API]],
    ):
        self.synchronizer = synchronizer
        self.api_factory = api_factory

    async def dispatch(self, envelope: WebhookEnvelope) -> DispatchResult:
        """Handle one webhook delivery.

        Returns once every mutation the event implies has been attempted.
        Raises ``UnsupportedEvent`` / ``InvalidEventPayload`` for payloads that
        cannot be handled and ``InvariantViolation`` for malformed ones.
        """
        event = parse_event(envelope)
        logger.debug(
            "Dispatching event=%s action=%s delivery=%s",
            envelope.event_name,
            event.action,
            envelope.delivery_id,
        )

        if isinstance(event, PullRequestEvent):
            return await self._on_pull_request(envelope.event_name, event)
        if isinstance(event, PullRequestReviewEvent):
            return await self._on_review(envelope.event_name, event)
        return await self._on_issue_comment(envelope.event_name, event)

    def _skip(self, event_name: str, event: GovernanceEvent, reason: str):
        logger.debug(
            "Skipping event=%s action=%s reason=%s", event_name, event.action, reason
        )
        webhook_skipped_counter.labels(event=event_name, reason=reason).inc()
        return DispatchResult(result=f"skipped:{reason}")

    async def _on_pull_request(
        self, event_name: str, event: PullRequestEvent
    ) -> DispatchResult:
        pr = event.pull_request
        if event.action in self._LABEL_ACTIONS:
            if event.label is None:
                raise InvariantViolation(
                    f"pull_request.{event.action} without label for {pr}"
                )
            if pr.state != "open" or pr.is_merged:
                return self._skip(event_name, event, "closed")
            if not label_should_be_checked(event.label.name):
                return self._skip(event_name, event, "irrelevant_label")

            api = await self.api_factory(event.installation.id)
            guard = await self.synchronizer.guard_label_change(
                api, pr, event.label.name, event.action, event.sender.login
            )
            outcomes = await self.synchronizer.process_pull_request(api, pr)
            return DispatchResult("processed", tuple(outcomes), guard)

        if event.action not in self._PULL_REQUEST_ACTIONS:
            return self._skip(event_name, event, "action")
        if pr.state != "open" or pr.is_merged:
            return self._skip(event_name, event, "closed")

        api = await self.api_factory(event.installation.id)
        outcomes = await self.synchronizer.process_pull_request(
            api, pr, triage=event.action in self._TRIAGE_ACTIONS
        )
        return DispatchResult("processed", tuple(outcomes))

    async def _on_review(
        self, event_name: str, event: PullRequestReviewEvent
    ) -> DispatchResult:
        pr = event.pull_request
        if event.action not in self._REVIEW_ACTIONS:
            return self._skip(event_name, event, "action")
        if pr.state != "open" or pr.is_merged:
            return self._skip(event_name, event, "closed")

        api = await self.api_factory(event.installation.id)
        outcomes = await self.synchronizer.process_pull_request(
            api, pr, time_gate=False, semver=False
        )
        return DispatchResult("processed", tuple(outcomes))

    async def _on_issue_comment(
        self, event_name: str, event: IssueCommentEvent
    ) -> DispatchResult:
        if not event.issue.is_pull_request:
            return self._skip(event_name, event, "not_pull_request")
        if event.action not in self._COMMENT_ACTIONS:
            return self._skip(event_name, event, "action")
        if event.issue.state != "open":
            return self._skip(event_name, event, "closed")

        tracks: List[TrackSpec] = []
        comment = ReviewEvent.from_comment(event.comment)
        if (
            event.action == "edited"
            and comment is not None
            and is_checklist_comment(comment, self.synchronizer.config.BOT_USER_NAME)
        ):
            tracks.append(DEPRECATION_REVIEW)
        if has_review_marker(event.comment.body or ""):
            tracks.append(API_REVIEW)
        if not tracks:
            return self._skip(event_name, event, "no_marker")

        api = await self.api_factory(event.installation.id)
        pr = await api.get_pull(
            event.repository.owner.login, event.repository.name, event.issue.number
        )
        outcomes = await self.synchronizer.process_pull_request(
            api, pr, time_gate=False, semver=False, tracks=tracks
        )
        return DispatchResult("processed", tuple(outcomes))
