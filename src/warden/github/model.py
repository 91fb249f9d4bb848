from datetime import datetime
from typing import List, Literal, Optional

import pydantic


class Model(pydantic.BaseModel):
    pass


class User(Model):
    login: str
    type: Optional[str] = None


class Label(Model):
    name: str
    id: Optional[int] = None
    color: Optional[str] = None


class Repository(Model):
    id: int
    name: str
    full_name: Optional[str] = None
    owner: User
    fork: bool = False
    private: Optional[bool] = None
    default_branch: Optional[str] = None
    html_url: Optional[str] = None


class PrConnection(Model):
    ref: str
    sha: str
    # GitHub sends null when the head fork has been deleted.
    repo: Optional[Repository] = None


class PullRequest(Model):
    id: int
    number: int
    title: str
    state: Literal["open", "closed"]
    draft: bool = False
    merged: bool = False
    merged_at: Optional[datetime] = None
    created_at: datetime
    user: User
    labels: List[Label] = pydantic.Field(default_factory=list)
    head: PrConnection
    base: PrConnection
    html_url: Optional[str] = None

    @property
    def owner(self) -> str:
        assert self.base.repo is not None
        return self.base.repo.owner.login

    @property
    def repo_name(self) -> str:
        assert self.base.repo is not None
        return self.base.repo.name

    @property
    def is_merged(self) -> bool:
        return self.merged or self.merged_at is not None

    @property
    def is_fork(self) -> bool:
        return self.head.repo is None or self.head.repo.fork

    @property
    def targets_default_branch(self) -> bool:
        assert self.base.repo is not None
        default_branch = self.base.repo.default_branch
        return default_branch is None or self.base.ref == default_branch

    @property
    def label_names(self) -> List[str]:
        return [label.name for label in self.labels]

    def with_labels(self, names: List[str]) -> "PullRequest":
        return self.model_copy(update={"labels": [Label(name=n) for n in names]})

    def __str__(self) -> str:
        name = self.base.repo.full_name if self.base.repo is not None else "?"
        return f"PR({name}#{self.number}, {self.id})"


class Installation(Model):
    id: int
    account: Optional[User] = None


class CheckRunOutput(Model):
    title: Optional[str] = None
    summary: Optional[str] = None
    text: Optional[str] = None


class CheckRun(Model):
    id: int
    name: str
    head_sha: str
    status: Literal["completed", "queued", "in_progress"] = "queued"
    conclusion: Optional[
        Literal[
            "action_required",
            "cancelled",
            "failure",
            "neutral",
            "success",
            "skipped",
            "stale",
            "timed_out",
        ]
    ] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    output: Optional[CheckRunOutput] = None
    html_url: Optional[str] = None

    @property
    def title(self) -> Optional[str]:
        return self.output.title if self.output is not None else None

    @property
    def summary(self) -> Optional[str]:
        return self.output.summary if self.output is not None else None


class CheckRunPayload(Model):
    name: str
    status: Literal["completed", "queued", "in_progress"]
    conclusion: Optional[Literal["neutral", "success", "failure"]] = None
    output: CheckRunOutput

    def matches(self, check_run: CheckRun) -> bool:
        return (
            check_run.name == self.name
            and check_run.status == self.status
            and check_run.conclusion == self.conclusion
            and check_run.title == self.output.title
            and (check_run.summary or "") == (self.output.summary or "")
        )


class Review(Model):
    id: int
    user: Optional[User] = None
    body: Optional[str] = None
    state: str
    submitted_at: Optional[datetime] = None


class IssueComment(Model):
    id: int
    user: Optional[User] = None
    body: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class TimelineEvent(Model):
    event: Optional[str] = None
    created_at: Optional[datetime] = None
    actor: Optional[User] = None
    # Only set on labeled/unlabeled events.
    label: Optional[Label] = None
