"""Tests for computed metrics."""

import json

import pytest

from build_grading.cli import decode_inputs
from build_grading.errors import ConfigurationError
from build_grading.models import Scope
from build_grading.scorer import Grader
from build_grading.stats import MetricStatistics, collect_metrics, metric_id

FIXTURES_DIR = "tests/fixtures"


@pytest.fixture
def result():
    with open(f"{FIXTURES_DIR}/inputs.json", encoding="utf-8") as f:
        reports, modified_lines = decode_inputs(json.load(f))
    return Grader.from_config(f"{FIXTURES_DIR}/test_profile.yaml").grade(reports, modified_lines)


class TestMetricStatistics:
    def test_add_and_get(self):
        statistics = MetricStatistics()
        statistics.add("line", 80).add("line", 50, Scope.MODIFIED_LINES)
        assert statistics.get("line") == 80.0
        assert statistics.get("line", Scope.MODIFIED_LINES) == 50.0
        assert statistics.get("line", Scope.MODIFIED_FILES) is None
        assert statistics.contains("line")
        assert len(statistics) == 2

    def test_duplicate_metric_raises(self):
        statistics = MetricStatistics().add("line", 80)
        with pytest.raises(ConfigurationError, match="already present"):
            statistics.add("line", 90)

    def test_from_mapping(self):
        statistics = MetricStatistics.from_mapping({"line": 80, "checkstyle": 3})
        assert statistics.as_dict() == {"line": 80.0, "checkstyle": 3.0}
        assert statistics.as_dict(Scope.MODIFIED_LINES) == {}

    def test_to_dict_skips_empty_scopes(self):
        statistics = MetricStatistics().add("loc", 100, Scope.MODIFIED_FILES)
        assert statistics.to_dict() == {"modified_files": {"loc": 100.0}}
        assert list(statistics) == [(Scope.MODIFIED_FILES, "loc", 100.0)]

    def test_metric_id(self):
        assert metric_id("Static Analysis Warnings") == "static-analysis-warnings"
        assert metric_id("Style") == "style"


class TestCollectMetrics:
    def test_project_metrics(self, result):
        metrics = collect_metrics(result)
        project = metrics.as_dict(Scope.PROJECT)
        assert project["tests"] == 9
        assert project["tests-success-rate"] == 89
        assert project["line"] == 75.0
        assert project["branch"] == pytest.approx(66.667, abs=0.001)
        assert project["checkstyle"] == 3
        assert project["style"] == 3
        assert project["score"] == 63
        assert "mutation" not in project

    def test_scoped_metrics(self, result):
        metrics = collect_metrics(result)
        assert metrics.as_dict(Scope.MODIFIED_LINES) == {"spotbugs": 1.0, "bugs": 1.0}

    def test_empty_result(self):
        metrics = collect_metrics(Grader.from_config(f"{FIXTURES_DIR}/failing_profile.json").grade({}))
        assert metrics.as_dict() == {"score": 0.0}
