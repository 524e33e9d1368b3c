"""Core grading orchestration."""

from dataclasses import dataclass, field
from fractions import Fraction
from pathlib import Path
from typing import Any, Iterable, Mapping, Self, Sequence

from .config import GradingProfile, ScoreConfiguration, ToolConfiguration, load_default_profile, load_profile
from .errors import ConfigurationError
from .log import GradingLog
from .models import (
    SEVERITIES,
    Category,
    CoverageNode,
    Counter,
    Issue,
    Score,
    Scope,
    execution_rates,
    round_half_up,
)
from .paths import PathReconciler
from .scope import restrict, restrict_issues


def _validate_counts(configuration: ScoreConfiguration, raw_counts: Mapping[str, Any]) -> dict[str, int]:
    kinds = configuration.category.count_kinds
    counts = {}
    for kind, count in raw_counts.items():
        if kind not in kinds:
            raise ConfigurationError(
                f"Configuration {configuration.id!r}: unknown count {kind!r}. Must be one of: {', '.join(kinds)}"
            )
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ConfigurationError(
                f"Configuration {configuration.id!r}: count {kind!r} must be a non-negative integer, got {count!r}"
            )
        counts[kind] = count
    return counts


def compute_impact(configuration: ScoreConfiguration, counts: Mapping[str, int], max_score: int) -> int:
    """Signed impact of the raw counts under the configured weights."""
    weight = configuration.weight
    if configuration.category in (Category.COVERAGE, Category.MUTATION):
        counter = Counter(counts.get("covered", 0), counts.get("missed", 0))
        weighted = (weight("covered_percentage") * counter.covered_percentage
                    + weight("missed_percentage") * counter.missed_percentage)
        return round_half_up(Fraction(max_score) * weighted / 100)
    if configuration.is_percentage_weighted:
        success, failure = execution_rates(counts.get("passed", 0), counts.get("failed", 0))
        weighted = weight("success_rate") * success + weight("failure_rate") * failure
        return round_half_up(Fraction(max_score * weighted, 100))
    return sum(weight(kind) * counts.get(kind, 0) for kind in configuration.category.count_kinds)


def baseline_for(impact: int, max_score: int, positive: bool) -> int:
    """Starting point the impact is applied to.

    Negative impacts reduce the maximum, positive impacts grow from zero. A
    zero impact keeps the convention of the configuration.
    """
    if impact < 0:
        return max_score
    if impact > 0:
        return 0
    return 0 if positive else max_score


def create_leaf(
    configuration: ScoreConfiguration,
    raw_counts: Mapping[str, int],
    *,
    score_id: str | None = None,
    name: str | None = None,
    max_score: int | None = None,
    scope: Scope = Scope.PROJECT,
    metric: str = "",
    tool: str = "",
) -> Score:
    """Score the raw counts of a single tool.

    ``max_score`` defaults to the configuration maximum; the grader passes the
    share of one tool instead.
    """
    counts = _validate_counts(configuration, raw_counts)
    if max_score is None:
        max_score = configuration.max_score
    impact = compute_impact(configuration, counts, max_score)
    return Score(
        id=score_id or configuration.id,
        name=name or configuration.name,
        impact=impact,
        max_score=max_score,
        baseline=baseline_for(impact, max_score, configuration.is_positive),
        counts=counts,
        scope=scope,
        metric=metric,
        tool=tool,
    )


def aggregate(configuration: ScoreConfiguration, children: Sequence[Score], *, name: str | None = None) -> Score:
    """Combine child scores; only the aggregate itself is clamped."""
    if not children:
        raise ConfigurationError(f"Configuration {configuration.id!r}: cannot aggregate an empty list of scores")
    impact = sum(child.impact for child in children)
    # missing tools never raise the baseline of their parent
    graded_max = sum(child.max_score for child in children if not child.missing)
    return Score(
        id=configuration.id,
        name=name or configuration.name,
        impact=impact,
        max_score=sum(child.max_score for child in children),
        baseline=baseline_for(impact, graded_max, configuration.is_positive),
        children=tuple(children),
    )


def missing_score(
    configuration: ScoreConfiguration,
    tool: ToolConfiguration,
    max_score: int,
    log: GradingLog,
    *,
    score_id: str | None = None,
) -> Score:
    """Placeholder for a tool whose report was never supplied: 0 of its share."""
    log.error("No report supplied for tool '%s' of %s", tool.display_name, configuration.name)
    return Score(
        id=score_id or f"{configuration.id}/{tool.id}",
        name=tool.display_name,
        impact=0,
        max_score=max_score,
        scope=tool.scope,
        metric=tool.metric,
        tool=tool.id,
        missing=True,
    )


def split_max_score(max_score: int, parts: int) -> list[int]:
    """Split a maximum evenly, giving the remainder to the first parts."""
    share, remainder = divmod(max_score, parts)
    return [share + 1 if index < remainder else share for index in range(parts)]


@dataclass(frozen=True)
class GradingResult:
    """Scores of one grading run, by category, plus its diagnostics."""

    tests: tuple[Score, ...] = ()
    analysis: tuple[Score, ...] = ()
    coverage: tuple[Score, ...] = ()
    mutation: tuple[Score, ...] = ()
    log: GradingLog = field(default_factory=GradingLog)

    @property
    def scores(self) -> tuple[Score, ...]:
        return self.tests + self.analysis + self.coverage + self.mutation

    def by_category(self, category: Category) -> tuple[Score, ...]:
        return getattr(self, category.value)

    @property
    def achieved_score(self) -> int:
        return sum(score.value for score in self.scores)

    @property
    def max_score(self) -> int:
        return sum(score.max_score for score in self.scores)

    @property
    def ratio(self) -> int:
        if self.max_score == 0:
            return 100
        return self.achieved_score * 100 // self.max_score

    def to_dict(self) -> dict:
        return {
            "achievedScore": self.achieved_score,
            "maxScore": self.max_score,
            "ratio": self.ratio,
            **{category.value: [s.to_dict() for s in self.by_category(category)] for category in Category},
            "log": self.log.to_dict(),
        }


class Grader:
    """Grades pre-parsed tool reports against a profile of score configurations."""

    def __init__(self, profile: GradingProfile | None = None) -> None:
        self._profile = profile or load_default_profile()

    @classmethod
    def from_config(cls, path: str | Path) -> Self:
        """Create a grader from a YAML or JSON profile."""
        return cls(profile=load_profile(path))

    @property
    def profile(self) -> GradingProfile:
        return self._profile

    def grade(
        self,
        reports: Mapping[str, Any],
        modified_lines: Mapping[str, Iterable[int]] | None = None,
        log: GradingLog | None = None,
    ) -> GradingResult:
        """Grade one run.

        ``reports`` maps tool ids to their pre-parsed data: count mappings for
        tests, count mappings or Issue sequences for analysis, CoverageNode
        trees or covered/missed mappings for coverage and mutation.
        ``modified_lines`` maps repository paths of the change to their
        modified line numbers.
        """
        log = log if log is not None else GradingLog()
        modified_lines = {path: frozenset(lines) for path, lines in (modified_lines or {}).items()}
        run = _GradingRun(reports, modified_lines, log)

        scores: dict[Category, list[Score]] = {category: [] for category in Category}
        for configuration in self._profile.configurations:
            try:
                scores[configuration.category].append(run.grade(configuration))
            except ConfigurationError as exc:
                log.exception(exc, "Skipping %s", configuration.name)

        result = GradingResult(
            tests=tuple(scores[Category.TESTS]),
            analysis=tuple(scores[Category.ANALYSIS]),
            coverage=tuple(scores[Category.COVERAGE]),
            mutation=tuple(scores[Category.MUTATION]),
            log=log,
        )
        log.info("Total score: %d of %d (%d%%)", result.achieved_score, result.max_score, result.ratio)
        return result


class _GradingRun:
    """Per-run state: the reports, the change set and its lazily built reconciler."""

    def __init__(self, reports: Mapping[str, Any], modified_lines: dict[str, frozenset[int]], log: GradingLog) -> None:
        self.reports = reports
        self.modified_lines = modified_lines
        self.log = log
        self._reconciler: PathReconciler | None = None

    @property
    def reconciler(self) -> PathReconciler:
        if self._reconciler is None:
            self._reconciler = PathReconciler(self.modified_lines)
        return self._reconciler

    def grade(self, configuration: ScoreConfiguration) -> Score:
        self.log.info("Grading %s", configuration.name)
        shares = split_max_score(configuration.max_score, len(configuration.tools))
        children = []
        for index, (tool, share) in enumerate(zip(configuration.tools, shares)):
            score_id = f"{configuration.id}/{tool.id}"
            if any(other.id == tool.id for other in configuration.tools[:index]):
                score_id = f"{score_id}/{tool.metric or index + 1}"
            data = self.reports.get(tool.id)
            if data is None:
                children.append(missing_score(configuration, tool, share, self.log, score_id=score_id))
                continue
            leaf = create_leaf(
                configuration,
                self.raw_counts(configuration, tool, data),
                score_id=score_id,
                name=tool.display_name,
                max_score=share,
                scope=tool.scope,
                metric=tool.metric,
                tool=tool.id,
            )
            self.log.info("%s: %d of %d", leaf.name, leaf.value, leaf.max_score)
            children.append(leaf)
        score = aggregate(configuration, children)
        self.log.info("%s: %d of %d", score.name, score.value, score.max_score)
        return score

    def raw_counts(self, configuration: ScoreConfiguration, tool: ToolConfiguration, data: Any) -> Mapping[str, int]:
        category = configuration.category
        if isinstance(data, CoverageNode):
            if category not in (Category.COVERAGE, Category.MUTATION):
                raise ConfigurationError(f"Tool {tool.id!r} supplied a coverage tree to {configuration.name}")
            tree = restrict(data, tool.scope, self.modified_lines, source_path=tool.source_path,
                            reconciler=self._scoped_reconciler(tool), log=self.log)
            if not tree.has_metric(tool.metric):
                self.log.info("%s reports no %s coverage, counting it as covered", tool.display_name, tool.metric)
            counter = tree.counter(tool.metric)
            return {"covered": counter.covered, "missed": counter.missed}
        if isinstance(data, Mapping):
            if tool.scope is not Scope.PROJECT and category is not Category.TESTS:
                self.log.info("%s supplied counts only, scope %s is ignored", tool.display_name, tool.scope)
            return data
        if isinstance(data, (list, tuple)) and all(isinstance(item, Issue) for item in data):
            if category is not Category.ANALYSIS:
                raise ConfigurationError(f"Tool {tool.id!r} supplied issues to {configuration.name}")
            issues = restrict_issues(data, tool.scope, self.modified_lines, source_path=tool.source_path,
                                     reconciler=self._scoped_reconciler(tool))
            counts = {severity: 0 for severity in SEVERITIES}
            for issue in issues:
                if issue.severity not in counts:
                    raise ConfigurationError(f"Tool {tool.id!r}: unknown severity {issue.severity!r}")
                counts[issue.severity] += 1
            return counts
        raise ConfigurationError(f"Tool {tool.id!r}: unsupported report data {type(data).__name__}")

    def _scoped_reconciler(self, tool: ToolConfiguration) -> PathReconciler | None:
        if tool.scope is Scope.PROJECT:
            return None
        return self.reconciler
