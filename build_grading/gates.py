"""Quality gate evaluation over computed metrics."""

import operator as _operator
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Mapping

from .errors import ConfigurationError
from .log import GradingLog
from .models import Scope
from .stats import MetricStatistics

# Metrics where larger values are better; every other metric (warning counts,
# complexity, lines of code, ...) is considered smaller-is-better.
LARGER_IS_BETTER = frozenset({
    "line",
    "branch",
    "instruction",
    "method",
    "class",
    "file",
    "package",
    "module",
    "mutation",
    "score",
    "test-strength",
    "tests",
})


class Criticality(Enum):
    """What a failing quality gate does to the build, in ascending order."""

    NOTE = 1
    UNSTABLE = 2
    ERROR = 3
    FAILURE = 4

    @classmethod
    def from_string(cls, value: str) -> "Criticality":
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ConfigurationError(
                f"Unknown criticality {value!r}. Must be one of: {', '.join(c.name for c in cls)}"
            ) from None

    def __lt__(self, other: "Criticality") -> bool:
        if not isinstance(other, Criticality):
            return NotImplemented
        return self.value < other.value


class Operator(Enum):
    """Comparison of an actual metric value against a gate threshold."""

    GREATER_OR_EQUAL = ">="
    LESS_OR_EQUAL = "<="
    GREATER = ">"
    LESS = "<"
    EQUAL = "=="
    NOT_EQUAL = "!="

    @classmethod
    def from_symbol(cls, symbol: str) -> "Operator":
        for op in cls:
            if op.value == str(symbol).strip():
                return op
        raise ConfigurationError(f"Unknown operator {symbol!r}. Must be one of: {', '.join(o.value for o in cls)}")

    def compare(self, actual: float, threshold: float) -> bool:
        return _COMPARISONS[self](actual, threshold)


_COMPARISONS: dict[Operator, Callable[[float, float], bool]] = {
    Operator.GREATER_OR_EQUAL: _operator.ge,
    Operator.LESS_OR_EQUAL: _operator.le,
    Operator.GREATER: _operator.gt,
    Operator.LESS: _operator.lt,
    Operator.EQUAL: _operator.eq,
    Operator.NOT_EQUAL: _operator.ne,
}


class OverallStatus(Enum):
    SUCCESS = "success"
    UNSTABLE = "unstable"
    FAILURE = "failure"


def infer_operator(metric: str) -> Operator:
    """Pick the comparison from the metric's tendency."""
    if metric.endswith("-rate") or metric in LARGER_IS_BETTER:
        return Operator.GREATER_OR_EQUAL
    return Operator.LESS_OR_EQUAL


@dataclass(frozen=True)
class QualityGate:
    """A named threshold rule over one metric."""

    name: str
    metric: str
    threshold: float
    criticality: Criticality = Criticality.UNSTABLE
    scope: Scope = Scope.PROJECT
    operator: Operator | None = None  # inferred from the metric when unset
    enabled: bool = True

    @property
    def effective_operator(self) -> Operator:
        return self.operator or infer_operator(self.metric)

    def evaluate(self, actual: float) -> "QualityGateEvaluation":
        if not self.enabled:
            return QualityGateEvaluation(self, actual, True, f"{self.name}: quality gate is disabled")
        op = self.effective_operator
        passed = op.compare(actual, self.threshold)
        message = f"{self.name}: {actual:.2f} {op.value} {self.threshold:.2f}"
        return QualityGateEvaluation(self, actual, passed, message)


@dataclass(frozen=True)
class QualityGateEvaluation:
    """Outcome of one gate."""

    gate: QualityGate
    actual_value: float
    passed: bool
    message: str

    @property
    def criticality(self) -> Criticality:
        return self.gate.criticality

    def to_dict(self) -> dict:
        return {
            "gateName": self.gate.name,
            "metric": self.gate.metric,
            "actualValue": self.actual_value,
            "threshold": self.gate.threshold,
            "criticality": self.gate.criticality.name,
            "passed": self.passed,
            "message": self.message,
        }


@dataclass(frozen=True)
class QualityGateResult:
    """All gate evaluations of a run and the resulting overall status."""

    evaluations: tuple[QualityGateEvaluation, ...] = ()

    @property
    def overall_status(self) -> OverallStatus:
        # NOTE and ERROR gates are reported but never change the build status
        failed = {e.criticality for e in self.evaluations if not e.passed}
        if Criticality.FAILURE in failed:
            return OverallStatus.FAILURE
        if Criticality.UNSTABLE in failed:
            return OverallStatus.UNSTABLE
        return OverallStatus.SUCCESS

    @property
    def passed_count(self) -> int:
        return sum(1 for e in self.evaluations if e.passed)

    @property
    def failed_count(self) -> int:
        return sum(1 for e in self.evaluations if not e.passed)

    @property
    def is_successful(self) -> bool:
        return self.overall_status is OverallStatus.SUCCESS

    @classmethod
    def evaluate(
        cls,
        metrics: MetricStatistics | Mapping[str, float],
        gates: Iterable[QualityGate],
        log: GradingLog | None = None,
    ) -> "QualityGateResult":
        """Evaluate every gate against the metrics it references.

        A plain mapping is read as project-scope metrics. Gates whose metric
        is not available are logged and skipped.
        """
        log = log if log is not None else GradingLog("Quality Gates")
        if not isinstance(metrics, MetricStatistics):
            metrics = MetricStatistics.from_mapping(metrics)

        gates = list(gates)
        if not gates:
            log.info("No quality gates to evaluate")
            return cls()

        log.info("Evaluating %d quality gate(s)", len(gates))
        evaluations = []
        for gate in gates:
            actual = metrics.get(gate.metric, gate.scope)
            if actual is None:
                if gate.enabled:
                    log.error("Skipping quality gate '%s': metric '%s' is not available in scope %s",
                              gate.name, gate.metric, gate.scope)
                    continue
                actual = 0.0
            evaluations.append(gate.evaluate(actual))

        result = cls(tuple(evaluations))
        log.info("Quality gates evaluation completed: %s", result.overall_status.name)
        log.info("  Passed: %d, Failed: %d", result.passed_count, result.failed_count)
        for evaluation in result.evaluations:
            log.info("  %s %s", "passed" if evaluation.passed else "failed", evaluation.message)
        return result

    def to_dict(self) -> dict:
        return {
            "evaluations": [e.to_dict() for e in self.evaluations],
            "passedCount": self.passed_count,
            "failedCount": self.failed_count,
            "overallStatus": self.overall_status.name,
        }
