"""build-grading: Grade builds from test, coverage, mutation and static analysis results."""

from .config import GradingProfile, ScoreConfiguration, ScoreConfigurationBuilder, ToolConfiguration, load_profile
from .errors import ConfigurationError
from .gates import Criticality, Operator, OverallStatus, QualityGate, QualityGateEvaluation, QualityGateResult
from .log import GradingLog
from .models import Category, CoverageNode, Counter, FileCoverage, Issue, Score, Scope
from .paths import PathReconciler, ReconciliationIndex
from .scope import patch_coverage, restrict, restrict_issues
from .scorer import Grader, GradingResult, aggregate, create_leaf
from .stats import MetricStatistics, collect_metrics

__all__ = [
    "Grader",
    "GradingResult",
    "GradingProfile",
    "GradingLog",
    "ScoreConfiguration",
    "ScoreConfigurationBuilder",
    "ToolConfiguration",
    "ConfigurationError",
    "Category",
    "Scope",
    "Score",
    "Counter",
    "CoverageNode",
    "FileCoverage",
    "Issue",
    "PathReconciler",
    "ReconciliationIndex",
    "QualityGate",
    "QualityGateEvaluation",
    "QualityGateResult",
    "Criticality",
    "Operator",
    "OverallStatus",
    "MetricStatistics",
    "aggregate",
    "collect_metrics",
    "create_leaf",
    "load_profile",
    "patch_coverage",
    "restrict",
    "restrict_issues",
]
