from enum import Enum
import http
from typing import AsyncIterator, List, Optional

from gidgethub import BadRequest
from gidgethub.abc import GitHubAPI
from sanic.log import logger

from warden.github.model import (
    CheckRun,
    CheckRunPayload,
    Installation,
    IssueComment,
    PullRequest,
    Repository,
    Review,
    TimelineEvent,
)
from warden.metric import label_mutation_counter, record_api_call


class RemoveResult(Enum):
    removed = 1
    not_found = 2


class API:
    gh: GitHubAPI
    installation: Optional[int]
    dry_run: bool

    call_count: int

    def __init__(
        self,
        gh: GitHubAPI,
        installation: Optional[int] = None,
        *,
        jwt: Optional[str] = None,
        dry_run: bool = False,
    ):
        self.gh = gh
        self.installation = installation
        self.jwt = jwt
        self.dry_run = dry_run
        self.call_count = 0

    def _count(self, endpoint: str) -> None:
        self.call_count += 1
        record_api_call(endpoint)

    async def list_labels(self, owner: str, repo: str, number: int) -> List[str]:
        self._count("labels")
        url = f"/repos/{owner}/{repo}/issues/{number}/labels"
        logger.debug("List labels %s", url)
        return [item["name"] async for item in self.gh.getiter(url)]

    async def add_labels(
        self, owner: str, repo: str, number: int, labels: List[str]
    ) -> None:
        self._count("labels")
        url = f"/repos/{owner}/{repo}/issues/{number}/labels"
        if self.dry_run:
            logger.info("[dry run] Would add labels %s to %s", labels, url)
            label_mutation_counter.labels(operation="add", result="dry_run").inc()
            return
        logger.debug("Adding labels %s to %s", labels, url)
        await self.gh.post(url, data={"labels": labels})
        label_mutation_counter.labels(operation="add", result="added").inc()

    async def remove_label(
        self, owner: str, repo: str, number: int, label: str
    ) -> RemoveResult:
        self._count("labels")
        url = "/repos/{owner}/{repo}/issues/{number}/labels/{name}"
        url_vars = {"owner": owner, "repo": repo, "number": str(number), "name": label}
        if self.dry_run:
            logger.info(
                "[dry run] Would remove label %s from %s/%s#%d", label, owner, repo, number
            )
            label_mutation_counter.labels(operation="remove", result="dry_run").inc()
            return RemoveResult.removed
        logger.debug("Removing label %s from %s/%s#%d", label, owner, repo, number)
        try:
            await self.gh.delete(url, url_vars)
        except BadRequest as e:
            if e.status_code == http.HTTPStatus.NOT_FOUND:
                label_mutation_counter.labels(
                    operation="remove", result="not_found"
                ).inc()
                return RemoveResult.not_found
            raise
        label_mutation_counter.labels(operation="remove", result="removed").inc()
        return RemoveResult.removed

    async def list_check_runs_for_ref(
        self, owner: str, repo: str, ref: str, check_name: Optional[str] = None
    ) -> List[CheckRun]:
        self._count("check-runs")
        url = "/repos/{owner}/{repo}/commits/{ref}/check-runs{?check_name}"
        logger.debug("Get check runs for ref %s/%s@%s", owner, repo, ref)
        return [
            CheckRun.model_validate(item)
            async for item in self.gh.getiter(
                url,
                {"owner": owner, "repo": repo, "ref": ref, "check_name": check_name},
                iterable_key="check_runs",
            )
        ]

    async def create_check_run(
        self, owner: str, repo: str, head_sha: str, payload: CheckRunPayload
    ) -> Optional[int]:
        self._count("check-runs")
        url = f"/repos/{owner}/{repo}/check-runs"
        data = payload.model_dump(exclude_none=True)
        data["head_sha"] = head_sha
        if self.dry_run:
            logger.info("[dry run] Would create check run %s on %s", data, head_sha)
            return None
        logger.debug("Creating check run %s on sha %s", payload.name, head_sha)
        response = await self.gh.post(url, data=data)
        return response.get("id") if isinstance(response, dict) else None

    async def update_check_run(
        self, owner: str, repo: str, check_run_id: int, payload: CheckRunPayload
    ) -> None:
        self._count("check-runs")
        url = f"/repos/{owner}/{repo}/check-runs/{check_run_id}"
        data = payload.model_dump(exclude_none=True)
        if self.dry_run:
            logger.info("[dry run] Would update check run %s with %s", url, data)
            return
        logger.debug("Updating check run %d, %s", check_run_id, url)
        await self.gh.patch(url, data=data)

    async def list_reviews(self, owner: str, repo: str, number: int) -> List[Review]:
        self._count("pulls")
        url = f"/repos/{owner}/{repo}/pulls/{number}/reviews"
        return [Review.model_validate(item) async for item in self.gh.getiter(url)]

    async def list_issue_comments(
        self, owner: str, repo: str, number: int
    ) -> List[IssueComment]:
        self._count("issues")
        url = f"/repos/{owner}/{repo}/issues/{number}/comments"
        return [
            IssueComment.model_validate(item) async for item in self.gh.getiter(url)
        ]

    async def create_comment(self, owner: str, repo: str, number: int, body: str):
        self._count("issues")
        url = f"/repos/{owner}/{repo}/issues/{number}/comments"
        if self.dry_run:
            logger.info("[dry run] Would comment on %s", url)
            return
        await self.gh.post(url, data={"body": body})

    async def list_timeline_events(
        self, owner: str, repo: str, number: int
    ) -> List[TimelineEvent]:
        self._count("issues")
        url = f"/repos/{owner}/{repo}/issues/{number}/timeline"
        return [
            TimelineEvent.model_validate(item) async for item in self.gh.getiter(url)
        ]

    async def list_team_members(self, org: str, team_slug: str) -> List[str]:
        self._count("teams")
        url = f"/orgs/{org}/teams/{team_slug}/members"
        return [item["login"] async for item in self.gh.getiter(url)]

    async def get_pull(self, owner: str, repo: str, number: int) -> PullRequest:
        self._count("pulls")
        url = f"/repos/{owner}/{repo}/pulls/{number}"
        logger.debug("Get pull %s", url)
        return PullRequest.model_validate(await self.gh.getitem(url))

    async def list_open_pulls(
        self, owner: str, repo: str, page: int, per_page: int = 100
    ) -> List[PullRequest]:
        self._count("pulls")
        url = f"/repos/{owner}/{repo}/pulls?state=open&per_page={per_page}&page={page}"
        return [PullRequest.model_validate(item) for item in await self.gh.getitem(url)]

    async def list_installations(self) -> AsyncIterator[Installation]:
        self._count("installations")
        async for item in self.gh.getiter("/app/installations", jwt=self.jwt):
            yield Installation.model_validate(item)

    async def list_installation_repositories(self) -> AsyncIterator[Repository]:
        self._count("installation_repositories")
        async for item in self.gh.getiter(
            "/installation/repositories", iterable_key="repositories"
        ):
            yield Repository.model_validate(item)
