"""
Base classes for metric exporters and their query specs.

An exporter wraps one metric source. It runs its query specs, turns
every raw series into a MetricSample, and reports whether the source
is reachable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from promtopo.metrics import CommodityKind, MetricSample


class ExporterError(RuntimeError):
    """Raised when an exporter cannot retrieve its samples."""


class SampleParseError(ValueError):
    """Raised when a raw series cannot be turned into a sample."""


@dataclass
class ExporterHealth:
    """Health status of an exporter."""

    healthy: bool
    message: str
    latency_ms: float | None = None


class QuerySpec(ABC):
    """
    A query string paired with the parser for its results.

    ``parse`` handles one series of an instant-vector result
    (``{"metric": {...labels}, "value": [ts, "1.5"]}``) and raises
    SampleParseError when the series lacks the labels it needs.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Spec name for identification."""

    @property
    @abstractmethod
    def commodity(self) -> CommodityKind:
        """Commodity the query measures."""

    @property
    @abstractmethod
    def query(self) -> str:
        """PromQL sent to the source."""

    @abstractmethod
    def parse(self, series: dict[str, Any]) -> MetricSample:
        """
        Parse one raw series.

        Args:
            series: One element of the query's result vector

        Returns:
            MetricSample holding this query's commodity value

        Raises:
            SampleParseError: If required labels are missing or the
                series fails the match policy
        """


class MetricExporter(ABC):
    """
    Abstract base class for metric exporters.

    All exporters must implement:
    - query(): Retrieve the samples of the current pass
    - health_check(): Verify source connectivity
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Exporter name for identification."""

    @abstractmethod
    async def query(self) -> list[MetricSample]:
        """
        Retrieve all samples from the source.

        Returns:
            Flat list of samples, one per observed entity

        Raises:
            ExporterError: If the source cannot be queried
        """

    @abstractmethod
    async def health_check(self) -> ExporterHealth:
        """
        Check source connectivity.

        Returns:
            ExporterHealth status
        """

    async def validate(self) -> bool:
        """Return True if the source is reachable."""
        health = await self.health_check()
        return health.healthy

    def describe(self) -> str:
        """Short description used in failure reports."""
        return self.name
