from __future__ import annotations

import asyncio
from dataclasses import dataclass
import time
from typing import Awaitable, Optional, Protocol, Set

import humanize
from sanic.log import logger

from warden.github.api import API
from warden.github.model import Installation, PullRequest, Repository
from warden.governance.synchronizer import StateSynchronizer
from warden.metric import (
    error_counter,
    reconcile_duration_seconds,
    reconcile_pr_error_counter,
    reconcile_run_counter,
)


class ApiProvider(Protocol):
    def app_api(self) -> API:
        ...

    def api_for_installation(self, installation_id: int) -> Awaitable[API]:
        ...


@dataclass
class SweepResult:
    installations: int = 0
    repositories: int = 0
    pull_requests: int = 0
    errors: int = 0
    stopped: bool = False


class ReconciliationLoop:
    """Periodically runs every open pull request through the synchronizer.

    Webhooks can be missed and the time gate expires without any event, so
    a full sweep at a fixed interval is what eventually converges everything.
    Installations are swept concurrently; repositories and pull requests
    within one installation sequentially. ``stop()`` only takes effect
    between pull requests.
    """

    def __init__(self, *, context: ApiProvider, synchronizer: StateSynchronizer):
        self.context = context
        self.synchronizer = synchronizer
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval: float) -> asyncio.Task:
        if self.running:
            assert self._task is not None
            return self._task
        self._stopping.clear()
        logger.info("Starting reconciliation loop interval=%s", humanize.naturaldelta(interval))
        self._task = asyncio.create_task(self._run(interval))
        return self._task

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is None:
            return
        logger.info("Stopping reconciliation loop")
        await self._task
        self._task = None

    async def _run(self, interval: float) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:  # noqa: BLE001
                reconcile_run_counter.labels(result="error").inc()
                error_counter.labels(context="reconcile").inc()
                logger.error("Reconciliation sweep failed", exc_info=True)

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> SweepResult:
        started = time.monotonic()
        result = SweepResult()

        app_api = self.context.app_api()
        installations = [i async for i in app_api.list_installations()]
        result.installations = len(installations)
        logger.info("Sweep start installations=%d", len(installations))

        outcomes = await asyncio.gather(
            *(self._sweep_installation(i) for i in installations),
            return_exceptions=True,
        )
        for installation, outcome in zip(installations, outcomes):
            if isinstance(outcome, SweepResult):
                result.repositories += outcome.repositories
                result.pull_requests += outcome.pull_requests
                result.errors += outcome.errors
                result.stopped = result.stopped or outcome.stopped
            elif isinstance(outcome, Exception):
                result.errors += 1
                error_counter.labels(context="reconcile_installation").inc()
                logger.error(
                    "Sweep failed installation=%d",
                    installation.id,
                    exc_info=outcome,
                )
            else:
                raise outcome

        duration = time.monotonic() - started
        reconcile_duration_seconds.observe(duration)
        reconcile_run_counter.labels(
            result="stopped" if result.stopped else "ok"
        ).inc()
        logger.info(
            "Sweep done installations=%d repositories=%d prs=%d errors=%d duration=%s",
            result.installations,
            result.repositories,
            result.pull_requests,
            result.errors,
            humanize.precisedelta(duration),
        )
        return result

    async def _sweep_installation(self, installation: Installation) -> SweepResult:
        result = SweepResult()
        api = await self.context.api_for_installation(installation.id)
        async for repo in api.list_installation_repositories():
            if self._stopping.is_set():
                result.stopped = True
                break
            result.repositories += 1
            try:
                await self._sweep_repository(api, repo, result)
            except Exception:  # noqa: BLE001
                # Listing failed; PR failures are handled in _process.
                result.errors += 1
                error_counter.labels(context="reconcile_repository").inc()
                logger.error(
                    "Sweep failed installation=%d repo=%s/%s",
                    installation.id,
                    repo.owner.login,
                    repo.name,
                    exc_info=True,
                )
        return result

    async def _sweep_repository(
        self, api: API, repo: Repository, result: SweepResult
    ) -> None:
        seen: Set[int] = set()
        page = 1
        while True:
            pulls = await api.list_open_pulls(repo.owner.login, repo.name, page)
            new = [pr for pr in pulls if pr.number not in seen]
            if not new:
                return
            for pr in new:
                if self._stopping.is_set():
                    result.stopped = True
                    return
                seen.add(pr.number)
                result.pull_requests += 1
                if not await self._process(api, pr):
                    result.errors += 1
            page += 1

    async def _process(self, api: API, pr: PullRequest) -> bool:
        try:
            await self.synchronizer.process_pull_request(api, pr)
        except Exception:  # noqa: BLE001
            reconcile_pr_error_counter.inc()
            logger.error("Sweep failed for pr=%s", pr, exc_info=True)
            return False
        return True
