"""Metric provider registry.

The engine never computes metric values itself. Host code registers one
function per metric name; the evaluator looks the function up by the
threshold's ``metric`` key. New metrics are added by registration:

    providers = MetricProviderRegistry()

    @providers.provider("ai_cost_per_document")
    async def ai_cost_per_document(context):
        return await billing.cost_per_document(project_id=context and context.project_id)

A provider returns a number, or ``None`` when there is no data (absence of
data is never a breach). It may be sync or async and may raise; the
evaluator isolates failures.
"""

import inspect
import logging
import math
from collections.abc import Awaitable, Callable
from typing import Union

from src.alerts.errors import MetricFetchError
from src.alerts.schemas import ThresholdContext

logger = logging.getLogger(__name__)

ProviderResult = Union[float, int, None]
MetricProvider = Callable[
    [ThresholdContext | None],
    Union[ProviderResult, Awaitable[ProviderResult]],
]


class MetricProviderRegistry:
    """Maps metric names to provider functions."""

    def __init__(self) -> None:
        self._providers: dict[str, MetricProvider] = {}

    def register(
        self,
        metric: str,
        provider: MetricProvider,
        *,
        replace: bool = False,
    ) -> None:
        """Register a provider for a metric name.

        Args:
            metric: Metric key used by thresholds.
            provider: Callable taking the threshold context.
            replace: Allow overriding an existing registration.

        Raises:
            ValueError: If the metric is already registered and
                ``replace`` is False.
        """
        if metric in self._providers and not replace:
            raise ValueError(f"Metric provider {metric!r} already registered")
        self._providers[metric] = provider
        logger.debug("Registered metric provider %s", metric)

    def provider(self, metric: str) -> Callable[[MetricProvider], MetricProvider]:
        """Decorator form of ``register``."""
        def decorator(func: MetricProvider) -> MetricProvider:
            self.register(metric, func)
            return func
        return decorator

    def unregister(self, metric: str) -> bool:
        return self._providers.pop(metric, None) is not None

    def names(self) -> list[str]:
        return sorted(self._providers)

    def __contains__(self, metric: object) -> bool:
        return metric in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    async def fetch(
        self,
        metric: str,
        context: ThresholdContext | None = None,
    ) -> float | None:
        """Fetch the current value of a metric.

        Args:
            metric: Metric key.
            context: Optional scoping dimensions.

        Returns:
            The value as float, or None when no provider is registered or
            the provider reports no data (None or NaN).

        Raises:
            MetricFetchError: If the provider returns a non-numeric value.
            Exception: Whatever the provider raises, for the caller to isolate.
        """
        provider = self._providers.get(metric)
        if provider is None:
            logger.warning("No metric provider registered for %s", metric)
            return None

        result = provider(context)
        if inspect.isawaitable(result):
            result = await result

        if result is None:
            return None
        if isinstance(result, bool) or not isinstance(result, (int, float)):
            raise MetricFetchError(metric, f"non-numeric value {result!r}")
        if math.isnan(result):
            return None
        return float(result)
