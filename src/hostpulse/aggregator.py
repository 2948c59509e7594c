"""Snapshot aggregation for hostpulse."""

import asyncio
import logging

from hostpulse.config import Settings
from hostpulse.models import Snapshot
from hostpulse.provider import Category, FetchResult, TelemetryProvider

logger = logging.getLogger(__name__)


class SnapshotError(Exception):
    """Raised when no telemetry category could be read at all."""

    def __init__(self, failures: dict[Category, BaseException]) -> None:
        self.failures = failures
        details = "; ".join(
            f"{category.value}: {str(error) or type(error).__name__}"
            for category, error in failures.items()
        )
        super().__init__(f"Unable to read system telemetry ({details})")


class SnapshotAggregator:
    """
    Builds one Snapshot per call from independent category fetches.

    Fetches run concurrently in worker threads, each bounded by the fetch
    timeout. A category that fails or times out is left as None; only when
    every category fails is SnapshotError raised.
    """

    def __init__(
        self,
        provider: TelemetryProvider | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._provider = provider or TelemetryProvider(self._settings)

    @property
    def fetch_timeout(self) -> float:
        return self._settings.fetch_timeout

    async def build_snapshot(self) -> Snapshot:
        """Collect all categories and assemble a fresh Snapshot."""
        results = await asyncio.gather(*(self._fetch(category) for category in Category))

        failures = {r.category: r.error for r in results if not r.ok}
        if len(failures) == len(results):
            first = next(iter(failures.values()))
            raise SnapshotError(failures) from first

        for category, error in failures.items():
            logger.warning(
                "Telemetry category %r unavailable: %s",
                category.value,
                str(error) or type(error).__name__,
            )

        values = {r.category.value: r.value for r in results if r.ok}
        return Snapshot(**values)

    async def _fetch(self, category: Category) -> FetchResult:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._provider.fetch_result, category),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError as e:
            return FetchResult(category=category, error=e)
