"""Semver label enforcement and basic triage labels."""

from typing import List

from warden.github.model import CheckRunOutput, CheckRunPayload, PullRequest
from warden.governance.constants import (
    DOCUMENTATION_LABEL,
    SEMVER_CHECK_NAME,
    SEMVER_LABELS,
    SEMVER_NONE_LABEL,
    SEMVER_PATCH_LABEL,
    SEMVER_PREFIX,
)

_NO_SEMVER_PREFIXES = ("ci", "test", "build")


def semver_labels(labels: List[str]) -> List[str]:
    return [name for name in labels if name in SEMVER_LABELS]


def semver_check_payload(labels: List[str]) -> CheckRunPayload:
    found = semver_labels(labels)
    if not found:
        return CheckRunPayload(
            name=SEMVER_CHECK_NAME,
            status="in_progress",
            output=CheckRunOutput(
                title="No semver/* label found",
                summary="We couldn't find a semver/* label, please add one",
            ),
        )
    if len(found) > 1:
        return CheckRunPayload(
            name=SEMVER_CHECK_NAME,
            status="in_progress",
            output=CheckRunOutput(
                title="Multiple semver/* labels found",
                summary="We found multiple semver/* labels, please remove one",
            ),
        )
    return CheckRunPayload(
        name=SEMVER_CHECK_NAME,
        status="completed",
        conclusion="success",
        output=CheckRunOutput(
            title=f'Found "{found[0]}"',
            summary="Found a single semver/* label, looking good here.",
        ),
    )


def triage_labels(pr: PullRequest) -> List[str]:
    """Labels to add to a fresh PR based on its conventional-commit title.

    Only PRs against the default branch without any ``semver/*`` label are
    triaged; existing semver labels are never overridden.
    """
    assert pr.base.repo is not None
    if pr.base.ref != pr.base.repo.default_branch:
        return []
    if any(name.startswith(SEMVER_PREFIX) for name in pr.label_names):
        return []

    prefix = pr.title.split(":")[0]
    if prefix == "docs":
        return [SEMVER_PATCH_LABEL, DOCUMENTATION_LABEL]
    if prefix in _NO_SEMVER_PREFIXES:
        return [SEMVER_NONE_LABEL]
    return []
