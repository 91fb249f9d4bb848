from __future__ import annotations

from typing import Optional, Protocol

import aiocache
import aiohttp
import cachetools
from gidgethub import aiohttp as gh_aiohttp
from gidgethub.apps import get_installation_access_token, get_jwt
from sanic.log import logger

from warden.github.api import API
from warden.governance.roster import RosterCache
from warden.governance.types import GovernanceConfig

USER_AGENT = "merge-warden"


class ContextConfig(GovernanceConfig, Protocol):
    GITHUB_APP_ID: int
    GITHUB_PRIVATE_KEY: Optional[str]
    ACCESS_TOKEN_TTL: float
    ROSTER_TTL: float
    DRY_RUN: bool


class GovernanceContext:
    """Process-wide state, built once at startup and handed to the components
    that need it: the HTTP session and response cache, installation tokens and
    the working-group rosters."""

    def __init__(
        self,
        config: ContextConfig,
        session: aiohttp.ClientSession,
        *,
        http_cache: Optional[cachetools.LRUCache] = None,
        token_cache: Optional[aiocache.SimpleMemoryCache] = None,
        rosters: Optional[RosterCache] = None,
    ):
        self.config = config
        self.session = session
        self.http_cache = (
            http_cache if http_cache is not None else cachetools.LRUCache(maxsize=500)
        )
        self.token_cache = (
            token_cache if token_cache is not None else aiocache.SimpleMemoryCache()
        )
        self.rosters = (
            rosters if rosters is not None else RosterCache(ttl=config.ROSTER_TTL)
        )

    @classmethod
    async def create(cls, config: ContextConfig) -> "GovernanceContext":
        logger.debug("Creating aiohttp session")
        return cls(config, aiohttp.ClientSession())

    async def close(self) -> None:
        await self.session.close()

    def _jwt(self) -> str:
        return get_jwt(
            app_id=self.config.GITHUB_APP_ID, private_key=self.config.GITHUB_PRIVATE_KEY
        )

    def app_api(self) -> API:
        gh = gh_aiohttp.GitHubAPI(self.session, USER_AGENT)
        return API(gh, jwt=self._jwt(), dry_run=self.config.DRY_RUN)

    async def installation_token(self, installation_id: int) -> str:
        key = f"installation_token_{installation_id}"
        token = await self.token_cache.get(key)
        if token is not None:
            return token

        logger.debug("Getting NEW installation access token for %d", installation_id)
        gh = gh_aiohttp.GitHubAPI(self.session, USER_AGENT)
        response = await get_installation_access_token(
            gh,
            installation_id=str(installation_id),
            app_id=str(self.config.GITHUB_APP_ID),
            private_key=self.config.GITHUB_PRIVATE_KEY,
        )
        token = response["token"]
        await self.token_cache.set(key, token, ttl=self.config.ACCESS_TOKEN_TTL)
        return token

    async def api_for_installation(self, installation_id: int) -> API:
        token = await self.installation_token(installation_id)
        gh = gh_aiohttp.GitHubAPI(
            self.session,
            USER_AGENT,
            oauth_token=token,
            cache=self.http_cache,
        )
        return API(gh, installation_id, dry_run=self.config.DRY_RUN)
