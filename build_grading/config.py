"""YAML/JSON grading profile loading and validation."""

import importlib.resources
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Self

import yaml

from .errors import ConfigurationError
from .gates import Criticality, Operator, QualityGate
from .models import Category, Scope

__all__ = [
    "ConfigurationError",
    "GradingProfile",
    "ScoreConfiguration",
    "ScoreConfigurationBuilder",
    "ToolConfiguration",
    "load_default_profile",
    "load_profile",
    "parse_profile",
]

# Weight kinds accepted per category
ABSOLUTE_TEST_KINDS = ("passed", "failed", "skipped")
RELATIVE_TEST_KINDS = ("success_rate", "failure_rate")
PERCENTAGE_KINDS = ("covered_percentage", "missed_percentage")

IMPACT_KINDS: dict[Category, tuple[str, ...]] = {
    Category.TESTS: ABSOLUTE_TEST_KINDS + RELATIVE_TEST_KINDS,
    Category.ANALYSIS: ("error", "high", "normal", "low"),
    Category.COVERAGE: PERCENTAGE_KINDS,
    Category.MUTATION: PERCENTAGE_KINDS,
}

# Profile keys of the individual weights
IMPACT_KEYS: dict[str, str] = {
    "passedImpact": "passed",
    "failureImpact": "failed",
    "skippedImpact": "skipped",
    "successRateImpact": "success_rate",
    "failureRateImpact": "failure_rate",
    "errorImpact": "error",
    "highImpact": "high",
    "normalImpact": "normal",
    "lowImpact": "low",
    "coveredPercentageImpact": "covered_percentage",
    "missedPercentageImpact": "missed_percentage",
}

DEFAULT_NAMES: dict[Category, str] = {
    Category.TESTS: "Tests",
    Category.ANALYSIS: "Static Analysis Warnings",
    Category.COVERAGE: "Code Coverage",
    Category.MUTATION: "Mutation Coverage",
}

DEFAULT_METRICS: dict[Category, str] = {
    Category.COVERAGE: "line",
    Category.MUTATION: "mutation",
}


@dataclass(frozen=True)
class ToolConfiguration:
    """A tool whose pre-parsed report feeds one score configuration."""

    id: str
    name: str = ""
    metric: str = ""  # coverage metric tag, e.g. "line" or "branch"
    source_path: str = ""  # hint for path reconciliation
    scope: Scope = Scope.PROJECT

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class ScoreConfiguration:
    """Immutable weights, maximum and tools of one graded category instance."""

    id: str
    name: str
    category: Category
    max_score: int
    impacts: Mapping[str, int]
    tools: tuple[ToolConfiguration, ...]
    positive: bool | None = None

    def __post_init__(self) -> None:
        _validate_configuration(self)

    @property
    def is_positive(self) -> bool:
        """Whether scores start at zero and grow, rather than start at the maximum."""
        if self.positive is not None:
            return self.positive
        return all(weight >= 0 for weight in self.impacts.values())

    @property
    def is_percentage_weighted(self) -> bool:
        if self.category in (Category.COVERAGE, Category.MUTATION):
            return True
        if self.category is Category.TESTS:
            return any(kind in self.impacts for kind in RELATIVE_TEST_KINDS)
        return False

    def weight(self, kind: str) -> int:
        return self.impacts.get(kind, 0)


class ScoreConfigurationBuilder:
    """Fluent helper that creates a validated ScoreConfiguration.

    Nothing is checked until build() is called; the built value is frozen.
    """

    def __init__(self, category: Category | str) -> None:
        self._category = _parse_category(category)
        self._id = self._category.value
        self._name = DEFAULT_NAMES[self._category]
        self._max_score = 0
        self._impacts: dict[str, int] = {}
        self._tools: list[ToolConfiguration] = []
        self._positive: bool | None = None

    def with_id(self, config_id: str) -> Self:
        self._id = config_id
        return self

    def with_name(self, name: str) -> Self:
        self._name = name
        return self

    def with_max_score(self, max_score: int) -> Self:
        self._max_score = max_score
        return self

    def with_impact(self, kind: str, weight: int) -> Self:
        self._impacts[kind] = weight
        return self

    def with_positive(self, positive: bool) -> Self:
        self._positive = positive
        return self

    def with_tool(
        self,
        tool_id: str,
        name: str = "",
        metric: str = "",
        source_path: str = "",
        scope: Scope = Scope.PROJECT,
    ) -> Self:
        self._tools.append(ToolConfiguration(
            id=tool_id,
            name=name,
            metric=metric or DEFAULT_METRICS.get(self._category, ""),
            source_path=source_path,
            scope=scope,
        ))
        return self

    def build(self) -> ScoreConfiguration:
        return ScoreConfiguration(
            id=self._id,
            name=self._name,
            category=self._category,
            max_score=self._max_score,
            impacts=dict(self._impacts),
            tools=tuple(self._tools),
            positive=self._positive,
        )


@dataclass(frozen=True)
class GradingProfile:
    """Complete grading profile: score configurations and quality gates."""

    configurations: tuple[ScoreConfiguration, ...] = ()
    quality_gates: tuple[QualityGate, ...] = ()

    def by_category(self, category: Category) -> list[ScoreConfiguration]:
        return [c for c in self.configurations if c.category is category]

    @property
    def max_score(self) -> int:
        return sum(c.max_score for c in self.configurations)


def load_profile(path: str | Path) -> GradingProfile:
    """Load a grading profile from a YAML or JSON file."""
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return _build_profile(data)


def parse_profile(text: str) -> GradingProfile:
    """Parse a grading profile from a YAML or JSON string."""
    return _build_profile(yaml.safe_load(text))


def load_default_profile() -> GradingProfile:
    """Load the bundled default grading profile."""
    pkg = importlib.resources.files("build_grading") / "profiles" / "default.yaml"
    text = pkg.read_text(encoding="utf-8")
    return parse_profile(text)


def _build_profile(data: Any) -> GradingProfile:
    """Build a GradingProfile from parsed YAML data."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Grading profile must be a mapping, got {type(data).__name__}")
    for key in data:
        if key != "qualityGates":
            _parse_category(key)

    configurations = []
    for category in Category:
        entries = data.get(category.value) or []
        if isinstance(entries, dict):
            entries = [entries]
        for index, entry in enumerate(entries):
            default_id = category.value if index == 0 else f"{category.value}-{index + 1}"
            configurations.append(_parse_configuration(category, entry, default_id))

    gates = [_parse_gate(g) for g in data.get("qualityGates") or []]

    profile = GradingProfile(
        configurations=tuple(configurations),
        quality_gates=tuple(gates),
    )
    _validate_profile(profile)
    return profile


def _parse_category(value: Category | str) -> Category:
    if isinstance(value, Category):
        return value
    try:
        return Category(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(f"Unknown score category: {value!r}") from None


def _parse_configuration(category: Category, data: dict, default_id: str) -> ScoreConfiguration:
    """Parse a single score configuration block."""
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration of {category.value!r} must be a mapping: {data!r}")

    impacts: dict[str, Any] = {}
    for key, kind in IMPACT_KEYS.items():
        if key in data:
            impacts[kind] = data[key]
    for kind, weight in (data.get("impacts") or {}).items():
        impacts[kind] = weight

    positive = data.get("positive")
    if positive is not None and not isinstance(positive, bool):
        raise ConfigurationError(f"'positive' must be a boolean, got {positive!r}")

    tools_data = data.get("tools") or []
    if not isinstance(tools_data, list):
        raise ConfigurationError(f"'tools' of {default_id!r} must be a list")

    return ScoreConfiguration(
        id=str(data.get("id", default_id)),
        name=str(data.get("name", DEFAULT_NAMES[category])),
        category=category,
        max_score=data.get("maxScore", 0),
        impacts=impacts,
        tools=tuple(_parse_tool(category, t) for t in tools_data),
        positive=positive,
    )


def _parse_tool(category: Category, data: dict) -> ToolConfiguration:
    """Parse a tool entry of a score configuration."""
    if not isinstance(data, dict) or not data.get("id"):
        raise ConfigurationError(f"Tool is missing required field 'id': {data!r}")
    return ToolConfiguration(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        metric=str(data.get("metric") or DEFAULT_METRICS.get(category, "")),
        source_path=str(data.get("sourcePath", "")),
        scope=Scope.from_string(data.get("scope", "project")),
    )


def _parse_gate(data: dict) -> QualityGate:
    """Parse a quality gate entry."""
    if not isinstance(data, dict):
        raise ConfigurationError(f"Quality gate must be a mapping: {data!r}")
    missing = {"metric", "threshold"} - set(data.keys())
    if missing:
        raise ConfigurationError(f"Quality gate missing required fields: {sorted(missing)}")

    metric = str(data["metric"])
    threshold = data["threshold"]
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not math.isfinite(threshold):
        raise ConfigurationError(f"Quality gate {metric!r}: threshold must be a finite number, got {threshold!r}")
    if threshold < 0:
        raise ConfigurationError(f"Quality gate {metric!r}: threshold must not be negative, got {threshold!r}")

    operator = data.get("operator")
    return QualityGate(
        name=str(data.get("name") or _display_name(metric)),
        metric=metric,
        threshold=float(threshold),
        criticality=Criticality.from_string(data.get("criticality", "unstable")),
        scope=Scope.from_string(data.get("scope", "project")),
        operator=Operator.from_symbol(operator) if operator is not None else None,
        enabled=bool(data.get("enabled", True)),
    )


def _display_name(metric: str) -> str:
    """Generate a gate name from its metric id: 'tests-success-rate' -> 'Tests Success Rate'."""
    return " ".join(word.capitalize() for word in metric.replace("_", "-").split("-") if word)


def _validate_configuration(config: ScoreConfiguration) -> None:
    """Validate a single score configuration for correctness."""
    if not config.id:
        raise ConfigurationError("Score configuration requires a non-empty id")
    if isinstance(config.max_score, bool) or not isinstance(config.max_score, int):
        raise ConfigurationError(f"Configuration {config.id!r}: maxScore must be an integer, got {config.max_score!r}")
    if config.max_score < 0:
        raise ConfigurationError(f"Configuration {config.id!r}: maxScore must not be negative, got {config.max_score}")

    valid = IMPACT_KINDS[config.category]
    for kind, weight in config.impacts.items():
        if kind not in valid:
            raise ConfigurationError(
                f"Configuration {config.id!r} has invalid impact {kind!r}. "
                f"Must be one of: {', '.join(valid)}"
            )
        if isinstance(weight, bool) or not isinstance(weight, int):
            raise ConfigurationError(f"Configuration {config.id!r}: impact {kind!r} must be an integer, got {weight!r}")

    if config.category is Category.TESTS:
        absolute = [k for k in config.impacts if k in ABSOLUTE_TEST_KINDS]
        relative = [k for k in config.impacts if k in RELATIVE_TEST_KINDS]
        if absolute and relative:
            raise ConfigurationError(
                f"Configuration {config.id!r} mixes absolute impacts {absolute} with relative impacts {relative}"
            )

    if not config.tools:
        raise ConfigurationError(f"Configuration {config.id!r} requires at least one tool")
    for tool in config.tools:
        if not tool.id:
            raise ConfigurationError(f"Configuration {config.id!r} has a tool without id")


def _validate_profile(profile: GradingProfile) -> None:
    """Validate cross-configuration constraints of a profile."""
    seen_ids = set()
    for config in profile.configurations:
        if config.id in seen_ids:
            raise ConfigurationError(f"Duplicate configuration id: {config.id!r}")
        seen_ids.add(config.id)
