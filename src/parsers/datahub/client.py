"""Data hub client for BSC tokens: security scan, market pair, holders and creator history.

All four endpoints share one envelope (``{"data": ...}``) and one failure
rule: any non-2xx response or transport error raises DataSourceError. The
enrichment engine decides which calls are required and which are best-effort.
"""

import asyncio
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from src.parsers.datahub.models import (
    CreatorHistory,
    HolderDistribution,
    MarketPair,
    SecurityReport,
)
from src.parsers.rate_limiter import RateLimiter
from src.parsers.retry import wait_or_stop

MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]


class DataSourceError(Exception):
    """A data hub call failed (transport, HTTP status or payload shape)."""


def unwrap_envelope(payload: Any) -> Any:
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class DataHubClient:
    """Async HTTP client for the data hub (Bearer API key)."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        chain: str = "bsc",
        max_rps: float = 5.0,
        timeout: float = 10.0,
        stop: asyncio.Event | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._chain = chain
        self._stop = stop
        self._rate_limiter = RateLimiter(max_rps)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str) -> Any:
        for attempt in range(MAX_RETRIES + 1):
            await self._rate_limiter.acquire()
            try:
                resp = await self._client.get(path)
            except httpx.HTTPError as e:
                raise DataSourceError(f"{type(e).__name__} on {path}: {e}") from e

            if resp.status_code == 429 and attempt < MAX_RETRIES:
                delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                logger.debug(f"[DATAHUB] Rate limited on {path}, waiting {delay}s")
                if await wait_or_stop(self._stop, delay):
                    raise DataSourceError(f"Shutdown while rate limited on {path}")
                continue

            if not resp.is_success:
                raise DataSourceError(f"HTTP {resp.status_code} on {path}")

            try:
                return unwrap_envelope(resp.json())
            except ValueError as e:
                raise DataSourceError(f"Invalid JSON on {path}") from e

        raise DataSourceError(f"HTTP 429 on {path} after {MAX_RETRIES} retries")

    async def get_token_security(self, address: str) -> SecurityReport:
        data = await self._get(f"/api/v1/tokens/{self._chain}/{address}/security")
        try:
            report = SecurityReport.model_validate(data)
        except ValidationError as e:
            raise DataSourceError(f"Bad security payload for {address}: {e}") from e
        if report.raw is None and isinstance(data, dict):
            report.raw = data
        return report

    async def get_pair(self, pair_address: str) -> MarketPair:
        data = await self._get(f"/api/v1/market/{self._chain}/pairs/{pair_address}")
        if not isinstance(data, dict):
            raise DataSourceError(f"Bad pair payload for {pair_address}")
        try:
            pair = MarketPair.model_validate(data)
        except ValidationError as e:
            raise DataSourceError(f"Bad pair payload for {pair_address}: {e}") from e
        pair.raw = data
        return pair

    async def get_holders(self, address: str) -> HolderDistribution:
        data = await self._get(f"/api/v1/tokens/{self._chain}/{address}/holders")
        try:
            return HolderDistribution.model_validate(data)
        except ValidationError as e:
            raise DataSourceError(f"Bad holders payload for {address}: {e}") from e

    async def get_creator_history(self, address: str) -> CreatorHistory:
        data = await self._get(f"/api/v1/tokens/{self._chain}/{address}/creator")
        try:
            return CreatorHistory.model_validate(data)
        except ValidationError as e:
            raise DataSourceError(f"Bad creator payload for {address}: {e}") from e
