"""Tests for score computation and the Grader."""

import json

import pytest

from build_grading import Grader, GradingResult
from build_grading.cli import decode_inputs
from build_grading.config import ScoreConfigurationBuilder, parse_profile
from build_grading.errors import ConfigurationError
from build_grading.log import GradingLog
from build_grading.models import Category, CoverageNode, FileCoverage, Issue, Score, Scope
from build_grading.scorer import aggregate, baseline_for, create_leaf, missing_score, split_max_score

FIXTURES_DIR = "tests/fixtures"


def coverage_configuration(max_score=100, covered=1, missed=0):
    return (
        ScoreConfigurationBuilder(Category.COVERAGE)
        .with_max_score(max_score)
        .with_impact("covered_percentage", covered)
        .with_impact("missed_percentage", missed)
        .with_tool("jacoco")
        .build()
    )


@pytest.fixture
def analysis_configuration():
    return (
        ScoreConfigurationBuilder(Category.ANALYSIS)
        .with_max_score(50)
        .with_impact("error", -11)
        .with_impact("high", -12)
        .with_impact("normal", -13)
        .with_impact("low", -14)
        .with_tool("checkstyle")
        .build()
    )


@pytest.fixture
def tests_configuration():
    return (
        ScoreConfigurationBuilder(Category.TESTS)
        .with_max_score(100)
        .with_impact("passed", 1)
        .with_impact("skipped", 0)
        .with_tool("junit")
        .build()
    )


@pytest.fixture
def grader():
    return Grader.from_config(f"{FIXTURES_DIR}/test_profile.yaml")


@pytest.fixture
def inputs():
    with open(f"{FIXTURES_DIR}/inputs.json", encoding="utf-8") as f:
        return decode_inputs(json.load(f))


class TestImpactWeighted:
    def test_analysis_impact(self, analysis_configuration):
        score = create_leaf(analysis_configuration, {"error": 1, "high": 1, "normal": 0, "low": 1})
        assert score.impact == -37
        assert score.value == 13
        assert score.max_score == 50

    def test_analysis_without_warnings_scores_maximum(self, analysis_configuration):
        score = create_leaf(analysis_configuration, {})
        assert score.impact == 0
        assert score.value == 50

    def test_too_many_warnings_clamp_to_zero(self, analysis_configuration):
        assert create_leaf(analysis_configuration, {"error": 10}).value == 0

    def test_tests_without_observations_score_zero(self, tests_configuration):
        score = create_leaf(tests_configuration, {"passed": 0, "failed": 0, "skipped": 0})
        assert score.value == 0

    def test_tests_impact(self, tests_configuration):
        score = create_leaf(tests_configuration, {"passed": 42, "failed": 3, "skipped": 2})
        assert score.impact == 42
        assert score.value == 42

    def test_mixed_weights_follow_sign_of_impact(self):
        configuration = (
            ScoreConfigurationBuilder(Category.TESTS)
            .with_max_score(100)
            .with_impact("passed", 10)
            .with_impact("failed", -5)
            .with_tool("junit")
            .build()
        )
        assert create_leaf(configuration, {"passed": 8, "failed": 1}).value == 75
        assert create_leaf(configuration, {"passed": 0, "failed": 4}).value == 80

    def test_invalid_counts(self, tests_configuration):
        with pytest.raises(ConfigurationError, match="non-negative integer"):
            create_leaf(tests_configuration, {"passed": -1})
        with pytest.raises(ConfigurationError, match="non-negative integer"):
            create_leaf(tests_configuration, {"passed": True})
        with pytest.raises(ConfigurationError, match="unknown count 'covered'"):
            create_leaf(tests_configuration, {"covered": 1})


class TestPercentageWeighted:
    def test_weights_of_covered_and_missed(self):
        score = create_leaf(coverage_configuration(max_score=100, covered=1, missed=1), {"covered": 99, "missed": 1})
        assert score.impact == 100
        assert score.value == 100

    def test_impact_beyond_maximum_is_clamped(self):
        score = create_leaf(coverage_configuration(max_score=100, covered=3, missed=-1), {"covered": 99, "missed": 1})
        assert score.impact == 296
        assert score.value == 100

    def test_small_maximum(self):
        score = create_leaf(coverage_configuration(max_score=5, covered=1, missed=1), {"covered": 99, "missed": 1})
        assert score.value == 5

    def test_rounds_half_up(self):
        assert create_leaf(coverage_configuration(max_score=5), {"covered": 1, "missed": 1}).impact == 3
        assert create_leaf(coverage_configuration(max_score=50), {"covered": 1, "missed": 2}).impact == 17

    def test_missed_penalty(self):
        configuration = coverage_configuration(max_score=5, covered=0, missed=-1)
        score = create_leaf(configuration, {"covered": 1, "missed": 1})
        assert score.impact == -2
        assert score.value == 3

    def test_absent_metric_counts_as_covered(self):
        assert create_leaf(coverage_configuration(max_score=20), {}).value == 20
        assert create_leaf(coverage_configuration(max_score=20, covered=0, missed=-1), {}).value == 20

    @pytest.mark.parametrize("passed,expected", [
        (197, 99),
        (198, 99),
        (199, 99),
        (200, 100),
    ])
    def test_success_rate_boundaries(self, passed, expected):
        configuration = (
            ScoreConfigurationBuilder(Category.TESTS)
            .with_max_score(100)
            .with_impact("success_rate", 1)
            .with_tool("junit")
            .build()
        )
        score = create_leaf(configuration, {"passed": passed, "failed": 200 - passed, "skipped": 7})
        assert score.value == expected

    def test_failure_rate(self):
        configuration = (
            ScoreConfigurationBuilder(Category.TESTS)
            .with_max_score(10)
            .with_impact("failure_rate", -1)
            .with_tool("junit")
            .build()
        )
        score = create_leaf(configuration, {"passed": 3, "failed": 1})
        assert score.impact == -2
        assert score.value == 8


class TestAggregate:
    def test_sums_children_without_pre_clamping(self, analysis_configuration):
        negative = Score("a", "A", impact=-30, max_score=50, baseline=50)
        positive = Score("b", "B", impact=80, max_score=50)
        parent = aggregate(analysis_configuration, [negative, positive], name="Both")
        assert parent.impact == 50
        assert parent.max_score == 100
        assert parent.baseline == 0
        assert parent.value == 50
        assert negative.value + positive.value == 70
        assert parent.name == "Both"
        assert parent.children == (negative, positive)

    def test_empty_children(self, analysis_configuration):
        with pytest.raises(ConfigurationError, match="empty list"):
            aggregate(analysis_configuration, [])

    def test_missing_tool_contributes_nothing(self, analysis_configuration):
        log = GradingLog()
        missing = missing_score(analysis_configuration, analysis_configuration.tools[0], 25, log)
        graded = create_leaf(analysis_configuration, {}, max_score=25)
        parent = aggregate(analysis_configuration, [graded, missing])
        assert missing.value == 0
        assert missing.missing
        assert parent.value == 25
        assert parent.max_score == 50
        assert log.error_messages == ["No report supplied for tool 'checkstyle' of Static Analysis Warnings"]


class TestHelpers:
    def test_split_max_score(self):
        assert split_max_score(100, 3) == [34, 33, 33]
        assert split_max_score(5, 2) == [3, 2]
        assert split_max_score(0, 2) == [0, 0]

    def test_baseline(self):
        assert baseline_for(-1, 10, positive=True) == 10
        assert baseline_for(1, 10, positive=False) == 0
        assert baseline_for(0, 10, positive=True) == 0
        assert baseline_for(0, 10, positive=False) == 10


class TestGrader:
    def test_grade_fixture(self, grader, inputs):
        reports, modified_lines = inputs
        result = grader.grade(reports, modified_lines)
        assert isinstance(result, GradingResult)
        assert [s.value for s in result.tests] == [74]
        assert [s.value for s in result.analysis] == [44, 20]
        assert [s.value for s in result.coverage] == [71]
        assert [s.value for s in result.mutation] == [0]
        assert result.achieved_score == 209
        assert result.max_score == 330
        assert result.ratio == 63

    def test_coverage_leaves(self, grader, inputs):
        result = grader.grade(*inputs)
        line, branch = result.coverage[0].children
        assert (line.id, line.impact, line.max_score) == ("coverage/jacoco", 38, 50)
        assert (branch.id, branch.impact, branch.max_score) == ("coverage/jacoco/branch", 33, 50)
        assert line.metric == "line"
        assert line.name == "Line Coverage"

    def test_scope_restricted_issues(self, grader, inputs):
        result = grader.grade(*inputs)
        (spotbugs,) = result.analysis[1].children
        assert spotbugs.scope is Scope.MODIFIED_LINES
        assert spotbugs.count("high") == 1
        assert spotbugs.count("normal") == 0

    def test_missing_report_is_logged(self, grader, inputs):
        result = grader.grade(*inputs)
        (pit,) = result.mutation[0].children
        assert pit.missing
        assert "No report supplied for tool 'pit' of Mutation Coverage" in result.log.error_messages

    def test_invalid_report_skips_only_its_configuration(self, grader):
        log = GradingLog()
        result = grader.grade({"junit": {"passed": -1}, "checkstyle": {}, "spotbugs": []}, log=log)
        assert result.tests == ()
        assert [s.value for s in result.analysis] == [50, 30]
        assert any(m.startswith("Skipping Unit Tests:") for m in log.error_messages)

    def test_modified_lines_coverage(self):
        profile = parse_profile("""
coverage:
  maxScore: 100
  coveredPercentageImpact: 1
  tools:
    - id: jacoco
      scope: modified_lines
      sourcePath: src
""")
        tree = CoverageNode(
            name="report",
            location="target/jacoco.xml",
            files=(FileCoverage("Foo.java", lines={1: True, 2: False, 3: False}),),
        )
        result = Grader(profile).grade({"jacoco": tree}, {"src/Foo.java": [1, 2]})
        (leaf,) = result.coverage[0].children
        assert leaf.count("covered") == 1
        assert leaf.count("missed") == 1
        assert result.coverage[0].value == 50

    def test_mixed_weights_over_several_tools(self):
        profile = parse_profile("""
tests:
  maxScore: 100
  passedImpact: 10
  failureImpact: -5
  tools: [{id: a}, {id: b}]
""")
        result = Grader(profile).grade({"a": {"passed": 8, "failed": 1}, "b": {"failed": 3}})
        first, second = result.tests[0].children
        assert (first.impact, first.value) == (75, 50)
        assert (second.impact, second.value) == (-15, 35)
        assert result.tests[0].impact == 60
        assert result.tests[0].value == 60

    def test_negative_configuration_without_reports_scores_zero(self):
        profile = parse_profile("mutation: {maxScore: 40, missedPercentageImpact: -1, tools: [{id: pit}]}")
        result = Grader(profile).grade({})
        assert result.mutation[0].value == 0
        assert result.achieved_score == 0

    def test_issues_with_unknown_severity(self):
        profile = parse_profile("analysis: {maxScore: 10, errorImpact: -1, tools: [{id: pmd}]}")
        log = GradingLog()
        result = Grader(profile).grade({"pmd": [Issue("Foo.java", 1, "blocker")]}, log=log)
        assert result.analysis == ()
        assert "unknown severity 'blocker'" in log.error_messages[0]

    def test_to_dict(self, grader, inputs):
        data = grader.grade(*inputs).to_dict()
        assert data["achievedScore"] == 209
        assert data["maxScore"] == 330
        assert data["tests"][0]["children"][0]["id"] == "tests/junit"
        assert set(data["log"]) == {"info", "errors"}

    def test_default_profile(self):
        result = Grader().grade({"junit": {"passed": 5}})
        assert result.tests[0].value == 5
        assert len(result.log.error_messages) == 5
