from __future__ import annotations

from typing import Tuple

import cachetools
from sanic.log import logger

from warden.github.api import API


class RosterCache:
    """Working-group membership, cached per (org, team) for ``ttl`` seconds."""

    def __init__(self, ttl: float, maxsize: int = 128):
        self._cache: cachetools.TTLCache[Tuple[str, str], frozenset[str]] = (
            cachetools.TTLCache(maxsize=maxsize, ttl=ttl)
        )

    async def members(self, api: API, org: str, team_slug: str) -> frozenset[str]:
        key = (org, team_slug)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        members = frozenset(await api.list_team_members(org, team_slug))
        logger.debug(
            "Roster refreshed org=%s team=%s members=%d", org, team_slug, len(members)
        )
        self._cache[key] = members
        return members

    def invalidate(self) -> None:
        self._cache.clear()
