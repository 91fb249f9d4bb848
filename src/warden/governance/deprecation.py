from datetime import datetime
from typing import List, Optional

from sanic.log import logger

from warden.github.api import API
from warden.github.model import IssueComment, PullRequest
from warden.governance.constants import DEPRECATION_CHECKLIST
from warden.governance.reviews import checklist_complete, is_checklist_comment
from warden.governance.types import ReviewDecision, ReviewEvent


def find_checklist_comment(
    comments: List[IssueComment], bot_login: str
) -> Optional[IssueComment]:
    for comment in comments:
        event = ReviewEvent.from_comment(comment)
        if event is not None and is_checklist_comment(event, bot_login):
            return comment
    return None


def checklist_decision(
    comment: Optional[IssueComment], *, since: Optional[datetime] = None
) -> ReviewDecision:
    if comment is None or not checklist_complete(comment.body or ""):
        return ReviewDecision.requested
    # After a re-request the checklist has to be touched again.
    edited_at = comment.updated_at or comment.created_at
    if since is not None and edited_at < since:
        return ReviewDecision.requested
    return ReviewDecision.approved


async def maybe_add_checklist_comment(
    api: API,
    pr: PullRequest,
    bot_login: str,
    comments: Optional[List[IssueComment]] = None,
) -> bool:
    """Post the deprecation checklist unless the bot already did."""
    if comments is None:
        comments = await api.list_issue_comments(pr.owner, pr.repo_name, pr.number)
    if find_checklist_comment(comments, bot_login) is not None:
        return False

    logger.info("Posting deprecation checklist pr=%s", pr)
    await api.create_comment(pr.owner, pr.repo_name, pr.number, DEPRECATION_CHECKLIST)
    return True
