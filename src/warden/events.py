from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Type, Union

import pydantic

from warden.github.model import (
    Installation,
    IssueComment,
    Label,
    Model,
    PullRequest,
    Repository,
    Review,
    User,
)


class UnsupportedEvent(Exception):
    """The webhook event name is not one the governance bot handles."""

    def __init__(self, event_name: str):
        self.event_name = event_name
        super().__init__(f"Unsupported event {event_name!r}")


class InvalidEventPayload(Exception):
    def __init__(self, event_name: str, detail: str):
        self.event_name = event_name
        self.detail = detail
        super().__init__(f"Invalid {event_name} payload: {detail}")


class InvariantViolation(Exception):
    pass


@dataclass(frozen=True)
class WebhookEnvelope:
    event_name: str
    payload: Mapping[str, Any]
    delivery_id: Optional[str] = None


class EventBase(Model):
    action: str
    installation: Installation
    repository: Repository
    sender: User


class PullRequestEvent(EventBase):
    pull_request: PullRequest
    label: Optional[Label] = None


class PullRequestReviewEvent(EventBase):
    pull_request: PullRequest
    review: Review


class Issue(Model):
    number: int
    state: str = "open"
    labels: List[Label] = pydantic.Field(default_factory=list)
    # Only present when the issue is a pull request.
    pull_request: Optional[Dict[str, Any]] = None

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None


class IssueCommentEvent(EventBase):
    issue: Issue
    comment: IssueComment


GovernanceEvent = Union[PullRequestEvent, PullRequestReviewEvent, IssueCommentEvent]

EVENT_MODELS: Dict[str, Type[EventBase]] = {
    "pull_request": PullRequestEvent,
    "pull_request_review": PullRequestReviewEvent,
    "issue_comment": IssueCommentEvent,
}


def parse_event(envelope: WebhookEnvelope) -> GovernanceEvent:
    model = EVENT_MODELS.get(envelope.event_name)
    if model is None:
        raise UnsupportedEvent(envelope.event_name)
    try:
        return model.model_validate(envelope.payload)  # type: ignore[return-value]
    except pydantic.ValidationError as e:
        raise InvalidEventPayload(envelope.event_name, str(e)) from e
