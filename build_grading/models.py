"""Data models for build-grading."""

import math
from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Mapping

from .errors import ConfigurationError


class Scope(Enum):
    """Breadth of data considered for a metric computation."""

    PROJECT = "project"
    MODIFIED_FILES = "modified_files"
    MODIFIED_LINES = "modified_lines"

    @classmethod
    def from_string(cls, value: str) -> "Scope":
        """Parse a scope name, ignoring case and '-' / '_' differences."""
        normalized = str(value).strip().lower().replace("-", "_")
        for scope in cls:
            if scope.value == normalized:
                return scope
        raise ConfigurationError(f"Could not find scope: {value!r}")

    def __str__(self) -> str:
        return self.value


class Category(Enum):
    """Score categories with their raw-count vocabulary."""

    TESTS = "tests"
    ANALYSIS = "analysis"
    COVERAGE = "coverage"
    MUTATION = "mutation"

    @property
    def count_kinds(self) -> tuple[str, ...]:
        return RAW_COUNT_KINDS[self]


RAW_COUNT_KINDS: dict[Category, tuple[str, ...]] = {
    Category.TESTS: ("passed", "failed", "skipped"),
    Category.ANALYSIS: ("error", "high", "normal", "low"),
    Category.COVERAGE: ("covered", "missed"),
    Category.MUTATION: ("covered", "missed"),
}

SEVERITIES = RAW_COUNT_KINDS[Category.ANALYSIS]


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def round_half_up(value: Fraction | int | float) -> int:
    """Round to the nearest integer, ties towards positive infinity.

    Works on exact fractions so that 98.5 % of a score never turns into 98
    because of binary floating point.
    """
    return math.floor(Fraction(value) + Fraction(1, 2))


def execution_rates(passed: int, failed: int) -> tuple[int, int]:
    """Integer success and failure rates over the executed tests.

    A run with failures never reports a 100 % success rate. Without executed
    tests both rates are 0.
    """
    executed = passed + failed
    if executed == 0:
        return 0, 0
    success = round_half_up(Fraction(passed * 100, executed))
    if failed and success == 100:
        success = 99
    return success, 100 - success


@dataclass(frozen=True)
class Counter:
    """Covered and missed items of one coverage metric."""

    covered: int = 0
    missed: int = 0

    @property
    def total(self) -> int:
        return self.covered + self.missed

    @property
    def covered_percentage(self) -> Fraction:
        """Exact covered percentage; an empty counter counts as fully covered."""
        if self.total == 0:
            return Fraction(100)
        return Fraction(self.covered * 100, self.total)

    @property
    def missed_percentage(self) -> Fraction:
        return 100 - self.covered_percentage

    def __add__(self, other: "Counter") -> "Counter":
        return Counter(self.covered + other.covered, self.missed + other.missed)


@dataclass(frozen=True)
class FileCoverage:
    """Coverage of a single source file as reported by a coverage tool.

    ``lines`` maps line numbers to their covered state; ``counters`` holds
    metrics without per-line detail (branch, mutation, ...).
    """

    path: str
    lines: Mapping[int, bool] = field(default_factory=dict)
    counters: Mapping[str, Counter] = field(default_factory=dict)

    def counter(self, metric: str) -> Counter:
        if metric == "line" and self.lines:
            covered = sum(1 for hit in self.lines.values() if hit)
            return Counter(covered, len(self.lines) - covered)
        return self.counters.get(metric, Counter())

    def has_metric(self, metric: str) -> bool:
        return (metric == "line" and bool(self.lines)) or metric in self.counters


@dataclass(frozen=True)
class CoverageNode:
    """A node of an already-parsed coverage tree (report, module, package)."""

    name: str
    files: tuple[FileCoverage, ...] = ()
    children: tuple["CoverageNode", ...] = ()
    location: str = ""

    def all_files(self) -> list[FileCoverage]:
        files = list(self.files)
        for child in self.children:
            files.extend(child.all_files())
        return files

    def counter(self, metric: str) -> Counter:
        total = Counter()
        for file in self.all_files():
            total += file.counter(metric)
        return total

    def has_metric(self, metric: str) -> bool:
        return any(file.has_metric(metric) for file in self.all_files())


@dataclass(frozen=True)
class Issue:
    """A static analysis warning."""

    path: str
    line: int
    severity: str  # "error", "high", "normal" or "low"


@dataclass(frozen=True)
class Score:
    """Weighted evaluation of one metric category, possibly aggregating children.

    Leaves carry the raw counts of a single tool. Aggregates sum the impact
    and maximum of their children and derive their own baseline from the summed
    impact; children are never pre-clamped before summation.
    """

    id: str
    name: str
    impact: int
    max_score: int
    baseline: int = 0
    counts: Mapping[str, int] = field(default_factory=dict)
    children: tuple["Score", ...] = ()
    scope: Scope = Scope.PROJECT
    metric: str = ""
    tool: str = ""  # id of the tool that supplied the raw counts of a leaf
    missing: bool = False

    @property
    def value(self) -> int:
        return clamp(self.baseline + self.impact, 0, self.max_score)

    @property
    def has_max_score(self) -> bool:
        return self.max_score > 0

    @property
    def percentage(self) -> int:
        if self.has_max_score:
            return self.value * 100 // self.max_score
        return 100

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def count(self, kind: str) -> int:
        if self.children:
            return sum(child.count(kind) for child in self.children)
        return self.counts.get(kind, 0)

    def leaves(self) -> list["Score"]:
        if not self.children:
            return [self]
        result = []
        for child in self.children:
            result.extend(child.leaves())
        return result

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "impact": self.impact,
            "maxScore": self.max_score,
            "value": self.value,
            "children": [child.to_dict() for child in self.children],
        }
