"""Computed metrics of a grading run, as consumed by quality gates."""

import logging
from typing import TYPE_CHECKING, Iterator, Mapping

from .errors import ConfigurationError
from .models import SEVERITIES, Counter, Scope, execution_rates

if TYPE_CHECKING:
    from .scorer import GradingResult

logger = logging.getLogger(__name__)


class MetricStatistics:
    """Metric values keyed by scope and metric id."""

    def __init__(self) -> None:
        self._values: dict[Scope, dict[str, float]] = {scope: {} for scope in Scope}

    @classmethod
    def from_mapping(cls, values: Mapping[str, float], scope: Scope = Scope.PROJECT) -> "MetricStatistics":
        statistics = cls()
        for metric, value in values.items():
            statistics.add(metric, value, scope)
        return statistics

    def add(self, metric: str, value: float, scope: Scope = Scope.PROJECT) -> "MetricStatistics":
        if metric in self._values[scope]:
            raise ConfigurationError(f"Metric {metric!r} is already present in scope {scope}")
        self._values[scope][metric] = float(value)
        return self

    def contains(self, metric: str, scope: Scope = Scope.PROJECT) -> bool:
        return metric in self._values[scope]

    def get(self, metric: str, scope: Scope = Scope.PROJECT) -> float | None:
        return self._values[scope].get(metric)

    def as_dict(self, scope: Scope = Scope.PROJECT) -> dict[str, float]:
        return dict(self._values[scope])

    def to_dict(self) -> dict[str, dict[str, float]]:
        return {str(scope): dict(values) for scope, values in self._values.items() if values}

    def __iter__(self) -> Iterator[tuple[Scope, str, float]]:
        for scope, values in self._values.items():
            for metric, value in values.items():
                yield scope, metric, value

    def __len__(self) -> int:
        return sum(len(values) for values in self._values.values())


def metric_id(name: str) -> str:
    """Turn a display name into a metric id: 'Static Analysis Warnings' -> 'static-analysis-warnings'."""
    return "-".join(name.lower().split())


def collect_metrics(result: "GradingResult") -> MetricStatistics:
    """Publish the metrics of a grading run for quality-gate evaluation.

    * ``tests`` and ``tests-success-rate`` over all test configurations
    * the covered percentage of every coverage and mutation tool under its
      metric tag, in the scope the tool was graded with
    * total warnings per analysis configuration and per analysis tool
    * ``score``, the achieved percentage of the whole run
    """
    statistics = MetricStatistics()

    test_leaves = [leaf for score in result.tests for leaf in score.leaves() if not leaf.missing]
    if test_leaves:
        passed = sum(leaf.count("passed") for leaf in test_leaves)
        failed = sum(leaf.count("failed") for leaf in test_leaves)
        statistics.add("tests", passed + failed)
        statistics.add("tests-success-rate", execution_rates(passed, failed)[0])

    for score in result.coverage + result.mutation:
        for leaf in score.leaves():
            if leaf.missing or not leaf.metric:
                continue
            if statistics.contains(leaf.metric, leaf.scope):
                result.log.error("Skipping duplicate metric %s in scope %s from %s", leaf.metric, leaf.scope, leaf.name)
                continue
            counter = Counter(leaf.count("covered"), leaf.count("missed"))
            statistics.add(leaf.metric, float(counter.covered_percentage), leaf.scope)

    for score in result.analysis:
        totals: dict[Scope, int] = {}
        for leaf in score.leaves():
            if leaf.missing:
                continue
            warnings = sum(leaf.count(kind) for kind in SEVERITIES)
            totals[leaf.scope] = totals.get(leaf.scope, 0) + warnings
            if leaf.tool and not statistics.contains(leaf.tool, leaf.scope):
                statistics.add(leaf.tool, warnings, leaf.scope)
        for scope, total in totals.items():
            name = metric_id(score.name)
            if statistics.contains(name, scope):
                result.log.error("Skipping duplicate metric %s in scope %s", name, scope)
                continue
            statistics.add(name, total, scope)

    statistics.add("score", result.ratio)
    logger.debug("Collected %d metrics", len(statistics))
    return statistics
