"""Pick the fastest responsive download mirror."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx

from h2o2.components import Com
from h2o2.config import get_settings

logger = logging.getLogger(__name__)

ATTEMPTS = 5


@dataclass(slots=True)
class MirrorScore:
    errors: int = 0
    total: float = 0.0

    @property
    def failed(self) -> bool:
        return self.errors == ATTEMPTS

    def record(self, latency: float | None) -> None:
        if latency is None:
            self.errors += 1
        else:
            self.total += latency

    def average(self) -> float:
        if self.failed:
            raise ValueError("a mirror that never responded has no average latency")
        return self.total / (ATTEMPTS - self.errors)

    def rank_key(self) -> tuple[int, float]:
        # failed scores sort after every live one and tie with each other
        if self.failed:
            return (ATTEMPTS, 0.0)
        return (self.errors, self.average())


def pick_fastest(candidates: Sequence[str], scores: Sequence[MirrorScore]) -> str | None:
    """Return the best-ranked candidate, or None if even the best never responded.

    Fewer errors wins, then the lower average latency. Ties keep input order.
    """
    if not candidates:
        return None
    best = min(range(len(candidates)), key=lambda i: scores[i].rank_key())
    if scores[best].failed:
        return None
    return candidates[best]


def probe_url(mirror: str, probe: str | None) -> str:
    return urljoin(mirror, probe) if probe else mirror


async def _probe_once(client: httpx.AsyncClient, url: str, timeout: float) -> float | None:
    started = time.perf_counter()
    try:
        await client.get(url, timeout=timeout)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.debug("Probe %s failed: %s", url, exc)
        return None
    return time.perf_counter() - started


async def _probe_mirror(
    com: Com,
    client: httpx.AsyncClient,
    mirror: str,
    probe: str | None,
) -> MirrorScore:
    timeout = get_settings().probe_timeout_seconds
    score = MirrorScore()
    url = probe_url(mirror, probe)
    for _ in range(ATTEMPTS):
        latency = await _probe_once(client, url, timeout)
        score.record(latency)
        if latency is None:
            logger.info("[%s] %s -- FAILED", com, mirror)
        else:
            logger.info("[%s] %s -- %dms", com, mirror, round(latency * 1000))
    return score


async def select_fastest(
    com: Com,
    candidates: Sequence[str],
    probe: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> str | None:
    """Race ``candidates`` against each other and return the fastest one.

    Every candidate gets ATTEMPTS sequential probes; candidates are probed
    concurrently. Returns None when no candidate answered at all.
    """
    if not candidates:
        return None
    settings = get_settings()
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(
            timeout=settings.probe_timeout_seconds,
            follow_redirects=True,
        )
    try:
        scores = await asyncio.gather(
            *(_probe_mirror(com, client, mirror, probe) for mirror in candidates)
        )
    finally:
        if owns_client:
            await client.aclose()
    winner = pick_fastest(candidates, scores)
    if winner is None:
        logger.warning("[%s] no mirror responded", com)
    else:
        logger.info("[%s] using mirror %s", com, winner)
    return winner
