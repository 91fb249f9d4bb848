from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

import humanize
from sanic.log import logger

from warden.github.api import API, RemoveResult
from warden.github.model import CheckRunPayload, PullRequest, TimelineEvent
from warden.governance import reviews, timegate
from warden.governance.constants import NEW_PR_LABEL
from warden.governance.deprecation import (
    checklist_decision,
    find_checklist_comment,
    maybe_add_checklist_comment,
)
from warden.governance.roster import RosterCache
from warden.governance.semver import semver_check_payload, triage_labels
from warden.governance.tracks import (
    API_REVIEW,
    DEPRECATION_REVIEW,
    TRACKS,
    TrackSpec,
    check_run_payload,
    current_state,
    plan_transition,
    rerequested_at,
    review_required,
    target_state,
    track_for_label,
)
from warden.governance.types import (
    ApprovalTally,
    GovernanceConfig,
    GuardOutcome,
    LabelPlan,
    ReviewDecision,
    ReviewEvent,
    ReviewState,
    TrackOutcome,
)
from warden.metric import check_run_publish_counter, policy_violation_counter


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StateSynchronizer:
    """Drives a pull request's labels and check runs to their target state.

    Every write is preceded by a read of the current state, so running the
    synchronizer twice on an unchanged PR issues no mutations the second
    time. Concurrent runs on the same PR converge without locking.
    """

    def __init__(
        self,
        *,
        config: GovernanceConfig,
        rosters: Optional[RosterCache] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.rosters = rosters if rosters is not None else RosterCache(ttl=300)
        self.clock = clock

    async def process_pull_request(
        self,
        api: API,
        pr: PullRequest,
        *,
        triage: bool = False,
        time_gate: bool = True,
        tracks: Sequence[TrackSpec] = TRACKS,
        semver: bool = True,
    ) -> List[TrackOutcome]:
        if pr.state != "open":
            logger.debug("Skipping pr=%s state=%s", pr, pr.state)
            return []

        # Webhook payloads can be stale by the time they are handled.
        labels = await api.list_labels(pr.owner, pr.repo_name, pr.number)
        pr = pr.with_labels(labels)

        if triage:
            pr = await self.apply_triage_labels(api, pr)

        timeline: Optional[List[TimelineEvent]] = None
        if time_gate:
            pr, timeline = await self.apply_time_gate(api, pr)

        outcomes = []
        for track in tracks:
            outcomes.append(
                await self.sync_review_track(api, pr, track, timeline=timeline)
            )

        if semver:
            await self.sync_semver_check(api, pr)

        return outcomes

    async def apply_triage_labels(self, api: API, pr: PullRequest) -> PullRequest:
        missing = [name for name in triage_labels(pr) if name not in pr.label_names]
        if not missing:
            return pr
        logger.info("Triage pr=%s labels=%s", pr, missing)
        await api.add_labels(pr.owner, pr.repo_name, pr.number, missing)
        return pr.with_labels([*pr.label_names, *missing])

    async def apply_time_gate(
        self, api: API, pr: PullRequest
    ) -> Tuple[PullRequest, Optional[List[TimelineEvent]]]:
        """Add or remove the new-pr label.

        Returns the PR with its updated label set and the timeline, if it had
        to be fetched, so later steps can reuse it.
        """
        timeline: Optional[List[TimelineEvent]] = None
        reason = timegate.exclusion_reason(pr, self.config)
        if reason is not None:
            logger.debug("Time gate not applicable pr=%s reason=%s", pr, reason)
            should_have = False
        else:
            timeline = await api.list_timeline_events(
                pr.owner, pr.repo_name, pr.number
            )
            now = self.clock()
            should_have = timegate.is_within_gate(pr, timeline, now, self.config)
            opened_at = timegate.effective_opened_at(pr, timeline)
            window = timegate.minimum_open_time(pr.label_names, self.config)
            logger.debug(
                "Time gate pr=%s open_for=%s window=%s within=%s",
                pr,
                humanize.naturaldelta(now - opened_at),
                humanize.naturaldelta(window),
                should_have,
            )

        has_label = NEW_PR_LABEL in pr.label_names
        if should_have and not has_label:
            logger.info("Adding %s pr=%s", NEW_PR_LABEL, pr)
            await api.add_labels(pr.owner, pr.repo_name, pr.number, [NEW_PR_LABEL])
            return pr.with_labels([*pr.label_names, NEW_PR_LABEL]), timeline

        if not should_have and has_label:
            logger.info("Removing %s pr=%s", NEW_PR_LABEL, pr)
            result = await api.remove_label(
                pr.owner, pr.repo_name, pr.number, NEW_PR_LABEL
            )
            if result == RemoveResult.not_found:
                logger.debug("Label already removed pr=%s label=%s", pr, NEW_PR_LABEL)
            return (
                pr.with_labels([n for n in pr.label_names if n != NEW_PR_LABEL]),
                timeline,
            )

        return pr, timeline

    async def sync_review_track(
        self,
        api: API,
        pr: PullRequest,
        track: TrackSpec,
        *,
        timeline: Optional[Sequence[TimelineEvent]] = None,
    ) -> TrackOutcome:
        previous = current_state(track, pr.label_names)

        decision: Optional[ReviewDecision] = None
        tally: Optional[ApprovalTally] = None
        if review_required(track, pr, self.config) and previous in (
            ReviewState.none,
            ReviewState.requested,
        ):
            if timeline is None:
                timeline = await api.list_timeline_events(
                    pr.owner, pr.repo_name, pr.number
                )
            since = rerequested_at(track, timeline, self.config.BOT_USER_NAME)
            decision, tally = await self._evaluate(api, pr, track, since=since)

        target = target_state(track, pr, self.config, decision)
        added, removed = await self._apply_plan(
            api, pr, plan_transition(track, pr.label_names, target)
        )
        if added or removed:
            logger.info(
                "Review track transition pr=%s track=%s previous=%s target=%s added=%s removed=%s",
                pr,
                track.key,
                previous.value,
                target.value,
                added,
                removed,
            )

        check_run = await self._publish_track_check(
            api, pr, track, target, tally=tally, timeline=timeline
        )

        return TrackOutcome(
            track=track.key,
            previous=previous,
            target=target,
            labels_added=added,
            labels_removed=removed,
            check_run=check_run,
            tally=tally,
        )

    async def _publish_track_check(
        self,
        api: API,
        pr: PullRequest,
        track: TrackSpec,
        target: ReviewState,
        *,
        tally: Optional[ApprovalTally] = None,
        timeline: Optional[Sequence[TimelineEvent]] = None,
    ) -> str:
        ready_on = None
        if track is API_REVIEW and target == ReviewState.requested:
            if timeline is None:
                timeline = await api.list_timeline_events(
                    pr.owner, pr.repo_name, pr.number
                )
            ready_on = timegate.ready_on(pr, timeline, self.config)

        payload = check_run_payload(track, target, tally=tally, ready_on=ready_on)
        return await self.sync_check_run(
            api, pr, payload, create=target != ReviewState.none
        )

    async def _evaluate(
        self,
        api: API,
        pr: PullRequest,
        track: TrackSpec,
        *,
        since: Optional[datetime] = None,
    ) -> Tuple[ReviewDecision, Optional[ApprovalTally]]:
        if track is DEPRECATION_REVIEW:
            comments = await api.list_issue_comments(
                pr.owner, pr.repo_name, pr.number
            )
            await maybe_add_checklist_comment(
                api, pr, self.config.BOT_USER_NAME, comments
            )
            checklist = find_checklist_comment(comments, self.config.BOT_USER_NAME)
            return checklist_decision(checklist, since=since), None

        roster = await self.rosters.members(
            api, pr.owner, getattr(self.config, track.roster_setting)
        )
        author = pr.user.login
        review_events = [
            event
            for event in map(
                ReviewEvent.from_review,
                await api.list_reviews(pr.owner, pr.repo_name, pr.number),
            )
            if event is not None
        ]
        comment_events = [
            event
            for event in map(
                ReviewEvent.from_comment,
                await api.list_issue_comments(pr.owner, pr.repo_name, pr.number),
            )
            if event is not None
        ]
        tally = reviews.aggregate(
            roster,
            reviews.without_self_approvals(review_events, author),
            reviews.without_self_approvals(comment_events, author),
            since=since,
        )
        decision = reviews.decide(tally)
        logger.debug(
            "Tally pr=%s track=%s approved=%d declined=%d changes_requested=%d decision=%s",
            pr,
            track.key,
            len(tally.approved),
            len(tally.declined),
            len(tally.requested_changes),
            decision.value,
        )
        return decision, tally

    async def _apply_plan(
        self, api: API, pr: PullRequest, plan: LabelPlan
    ) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
        if plan.empty:
            return (), ()

        # Add first: a PR briefly carrying two labels is better than none.
        if plan.add:
            await api.add_labels(pr.owner, pr.repo_name, pr.number, list(plan.add))

        removed = []
        for label in plan.remove:
            result = await api.remove_label(pr.owner, pr.repo_name, pr.number, label)
            if result == RemoveResult.removed:
                removed.append(label)
            else:
                logger.debug("Label already removed pr=%s label=%s", pr, label)
        return tuple(plan.add), tuple(removed)

    async def sync_check_run(
        self, api: API, pr: PullRequest, payload: CheckRunPayload, *, create=True
    ) -> str:
        if pr.is_fork:
            result = "fork"
        else:
            runs = [
                run
                for run in await api.list_check_runs_for_ref(
                    pr.owner, pr.repo_name, pr.head.sha, check_name=payload.name
                )
                if run.name == payload.name
            ]
            existing = max(runs, key=lambda run: run.id) if runs else None

            if existing is None and not create:
                result = "skipped"
            elif existing is not None and payload.matches(existing):
                result = "unchanged"
            elif existing is not None and (
                existing.status != "completed" or payload.status == "completed"
            ):
                await api.update_check_run(
                    pr.owner, pr.repo_name, existing.id, payload
                )
                result = "updated"
            else:
                # A completed run cannot go back to in_progress; start a new one.
                await api.create_check_run(
                    pr.owner, pr.repo_name, pr.head.sha, payload
                )
                result = "created"

        check_run_publish_counter.labels(check=payload.name, result=result).inc()
        logger.debug(
            "Check run sync pr=%s check=%s status=%s conclusion=%s result=%s",
            pr,
            payload.name,
            payload.status,
            payload.conclusion,
            result,
        )
        return result

    async def sync_semver_check(self, api: API, pr: PullRequest) -> str:
        return await self.sync_check_run(api, pr, semver_check_payload(pr.label_names))

    async def guard_label_change(
        self,
        api: API,
        pr: PullRequest,
        label: str,
        action: str,
        sender: str,
    ) -> GuardOutcome:
        """Undo a human's change to a review-track label if it is not allowed."""
        track = track_for_label(label)
        if track is None or pr.is_merged:
            return GuardOutcome.not_applicable
        if sender == self.config.BOT_USER_NAME:
            return GuardOutcome.allowed

        labels = await api.list_labels(pr.owner, pr.repo_name, pr.number)
        pr = pr.with_labels(labels)

        if await self._human_change_permitted(api, pr, track, label, action, sender):
            logger.debug(
                "Label change permitted pr=%s label=%s action=%s sender=%s",
                pr,
                label,
                action,
                sender,
            )
            return GuardOutcome.allowed

        logger.warning(
            "Policy violation pr=%s track=%s action=%s label=%s sender=%s",
            pr,
            track.key,
            action,
            label,
            sender,
        )
        policy_violation_counter.labels(track=track.key, action=action).inc()

        if action == "labeled":
            if label in labels:
                await api.remove_label(pr.owner, pr.repo_name, pr.number, label)
        elif label not in labels:
            await api.add_labels(pr.owner, pr.repo_name, pr.number, [label])
        return GuardOutcome.reverted

    async def _human_change_permitted(
        self,
        api: API,
        pr: PullRequest,
        track: TrackSpec,
        label: str,
        action: str,
        sender: str,
    ) -> bool:
        if label != track.requested_label:
            return False
        if track.human_requestable:
            team = getattr(self.config, track.roster_setting, None)
            if not team:
                return True
            return sender in await self.rosters.members(api, pr.owner, team)
        # Dropping the request is fine once the PR no longer needs the review.
        return action == "unlabeled" and not review_required(track, pr, self.config)

    async def rerequest_review(
        self, api: API, pr: PullRequest, track: TrackSpec
    ) -> TrackOutcome:
        """Move a track from a terminal state back to requested."""
        labels = await api.list_labels(pr.owner, pr.repo_name, pr.number)
        pr = pr.with_labels(labels)
        previous = current_state(track, labels)

        if previous not in (ReviewState.approved, ReviewState.declined) or (
            not review_required(track, pr, self.config)
        ):
            logger.info(
                "Nothing to re-request pr=%s track=%s state=%s",
                pr,
                track.key,
                previous.value,
            )
            return await self.sync_review_track(api, pr, track)

        plan = plan_transition(track, labels, ReviewState.requested)
        added, removed = await self._apply_plan(api, pr, plan)
        logger.info(
            "Review re-requested pr=%s track=%s previous=%s", pr, track.key, previous.value
        )
        pr = pr.with_labels(
            [name for name in labels if name not in plan.remove] + list(plan.add)
        )
        # Earlier votes are void now, so there is nothing to evaluate yet.
        check_run = await self._publish_track_check(
            api, pr, track, ReviewState.requested
        )
        return TrackOutcome(
            track=track.key,
            previous=previous,
            target=ReviewState.requested,
            labels_added=added,
            labels_removed=removed,
            check_run=check_run,
        )
