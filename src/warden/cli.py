import asyncio
from contextlib import asynccontextmanager
from enum import Enum
import logging
from typing import AsyncIterator, List

from tabulate import tabulate
import typer

from warden import config
from warden.context import GovernanceContext
from warden.governance.synchronizer import StateSynchronizer
from warden.governance.tracks import track_by_key
from warden.governance.types import TrackOutcome
from warden.logger import get_log_handlers
from warden.reconcile import ReconciliationLoop


logging.basicConfig(
    format="%(asctime)s %(name)s %(levelname)s - %(message)s", level=logging.INFO
)
logger = logging.getLogger("warden")


class TrackChoice(str, Enum):
    api = "api"
    deprecation = "deprecation"


app = typer.Typer()


@app.callback()
def init():
    logging.getLogger().setLevel(config.OVERRIDE_LOGGING)
    logger.setLevel(config.OVERRIDE_LOGGING)
    get_log_handlers(logger)


@asynccontextmanager
async def governance_context() -> AsyncIterator[GovernanceContext]:
    context = await GovernanceContext.create(config)
    try:
        yield context
    finally:
        await context.close()


def print_outcomes(outcomes: List[TrackOutcome]):
    rows = [
        (
            o.track,
            o.previous.value,
            o.target.value,
            ", ".join(o.labels_added) or "-",
            ", ".join(o.labels_removed) or "-",
            o.check_run,
        )
        for o in outcomes
    ]
    typer.echo(
        tabulate(
            rows,
            headers=("track", "previous", "target", "added", "removed", "check run"),
        )
    )


@app.command()
def sweep():
    """Run a single reconciliation pass over every installation."""

    async def handle():
        async with governance_context() as context:
            synchronizer = StateSynchronizer(config=config, rosters=context.rosters)
            loop = ReconciliationLoop(context=context, synchronizer=synchronizer)
            result = await loop.run_once()
            typer.echo(
                f"{result.installations} installations, "
                f"{result.repositories} repositories, "
                f"{result.pull_requests} pull requests, {result.errors} errors"
            )

    asyncio.run(handle())


@app.command()
def worker(interval: float = typer.Option(config.RECONCILE_INTERVAL)):
    """Run the reconciliation loop without the web server."""

    async def handle():
        async with governance_context() as context:
            synchronizer = StateSynchronizer(config=config, rosters=context.rosters)
            loop = ReconciliationLoop(context=context, synchronizer=synchronizer)
            try:
                await loop.start(interval)
            finally:
                await loop.stop()

    asyncio.run(handle())


@app.command()
def pr(repo: str, number: int, installation: int):
    """Evaluate a single pull request, e.g. ``pr org/repo 42 1234``."""
    owner, name = repo.split("/", 1)

    async def handle():
        async with governance_context() as context:
            api = await context.api_for_installation(installation)
            synchronizer = StateSynchronizer(config=config, rosters=context.rosters)
            pull = await api.get_pull(owner, name, number)
            print_outcomes(await synchronizer.process_pull_request(api, pull))

    asyncio.run(handle())


@app.command()
def rerequest(
    repo: str,
    number: int,
    installation: int,
    track: TrackChoice = typer.Option(TrackChoice.api),
):
    """Send a review track from approved/declined back to requested."""
    owner, name = repo.split("/", 1)

    async def handle():
        async with governance_context() as context:
            api = await context.api_for_installation(installation)
            synchronizer = StateSynchronizer(config=config, rosters=context.rosters)
            pull = await api.get_pull(owner, name, number)
            outcome = await synchronizer.rerequest_review(
                api, pull, track_by_key(track.value)
            )
            print_outcomes([outcome])

    asyncio.run(handle())
