"""
WHOOP raw-data API client implementing the BiometricSource protocol.

The raw-data service exposes stored WHOOP records by user id, so no user
token is needed. Each series is fetched separately; one failing series
degrades to an empty list instead of failing the whole history.
"""

import asyncio
from typing import Literal

import httpx
from pydantic import BaseModel, ValidationError

from adapters.whoop.domain import (
    WhoopCycleRecord,
    WhoopRecoveryRecord,
    WhoopSleepRecord,
    build_history,
)
from core.config import WhoopAPIConfig
from core.domain.models import BiometricSample
from core.services.alert_generator import Result, logger

RecordKind = Literal["recovery", "sleep", "cycle"]

_RECORD_MODELS: dict[RecordKind, type[BaseModel]] = {
    "recovery": WhoopRecoveryRecord,
    "sleep": WhoopSleepRecord,
    "cycle": WhoopCycleRecord,
}


class WhoopFetchError(Exception):
    """Every WHOOP series failed for a user."""


class WhoopBiometricSource:
    """Fetches recovery, sleep and cycle records and merges them into daily samples."""

    def __init__(
        self,
        config: WhoopAPIConfig | None = None,
        client: httpx.AsyncClient | None = None,
        source_name: str = "whoop",
    ) -> None:
        """Initialize the WHOOP source.

        Args:
            config: API base URL and timeout
            client: Shared HTTP client; a short-lived one is opened per call when omitted
            source_name: Name used in logs
        """
        self.config = config or WhoopAPIConfig()
        self.source_name = source_name
        self._client = client
        self.logger = logger.bind(source=source_name)

    def records_url(self, user_id: str, kind: RecordKind) -> str:
        return f"{self.config.base_url}/api/v1/raw-data/records/{user_id}/{kind}"

    async def fetch_records(
        self, client: httpx.AsyncClient, user_id: str, kind: RecordKind, limit: int
    ) -> list[BaseModel]:
        """Fetch one series, newest first. Raises on HTTP or payload errors."""
        response = await client.get(self.records_url(user_id, kind), params={"limit": limit})
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected {kind} payload: {type(payload).__name__}")

        model = _RECORD_MODELS[kind]
        return [model.model_validate(raw) for raw in payload.get("records") or []]

    async def fetch_history(self, user_id: str, days: int) -> Result[list[BiometricSample]]:
        """
        Fetch the last ``days`` records of every series concurrently.

        Returns:
            Result with merged samples (possibly empty), or an error when all
            three series failed.
        """
        if self._client is not None:
            return await self._fetch_history(self._client, user_id, days)

        async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
            return await self._fetch_history(client, user_id, days)

    async def _fetch_history(
        self, client: httpx.AsyncClient, user_id: str, days: int
    ) -> Result[list[BiometricSample]]:
        kinds: tuple[RecordKind, ...] = ("recovery", "sleep", "cycle")

        async def guarded(kind: RecordKind) -> list[BaseModel] | None:
            try:
                return await self.fetch_records(client, user_id, kind, days)
            except (httpx.HTTPError, ValidationError, ValueError) as e:
                self.logger.warning(
                    "whoop_series_fetch_failed", kind=kind, user_id=user_id, error=str(e)
                )
                return None

        async with asyncio.TaskGroup() as task_group:
            tasks = {kind: task_group.create_task(guarded(kind)) for kind in kinds}

        series = {kind: task.result() for kind, task in tasks.items()}
        if all(records is None for records in series.values()):
            return Result.err(WhoopFetchError(f"All WHOOP series failed for user {user_id}"))

        history = build_history(
            series["recovery"] or [],  # type: ignore[arg-type]
            series["sleep"] or [],  # type: ignore[arg-type]
            series["cycle"] or [],  # type: ignore[arg-type]
        )
        self.logger.info("whoop_history_fetched", user_id=user_id, samples=len(history))
        return Result.ok(history)
