"""CLI entry point for build-grading."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml

from .config import ConfigurationError
from .gates import OverallStatus, QualityGateResult
from .log import GradingLog
from .models import Counter, CoverageNode, FileCoverage, Issue
from .scorer import Grader, GradingResult
from .stats import collect_metrics


def main(argv: list[str] | None = None) -> None:
    """Build Grading: score pre-parsed tool reports and evaluate quality gates."""
    parser = argparse.ArgumentParser(
        prog="build-grading",
        description="Grade a build from pre-parsed test, coverage, mutation and static analysis results.",
    )
    parser.add_argument("inputs_file", nargs="?", default=None, help="Path to a JSON file with the tool reports.")
    parser.add_argument("--config", dest="config_path", default=None, help="Path to custom YAML or JSON grading profile.")
    parser.add_argument("--output", dest="output_path", default=None, help="Write results to file instead of stdout.")
    parser.add_argument("--summary", dest="show_summary", action="store_true", default=False, help="Print a score summary to stderr.")
    parser.add_argument("--fail-on-unstable", action="store_true", default=False, help="Exit with 1 when quality gates are unstable.")
    parser.add_argument("--verbose", action="store_true", default=False, help="Log grading details to stderr.")

    args = parser.parse_args(argv)

    if args.inputs_file is None:
        parser.print_help()
        sys.exit(1)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    _cmd_grade(args)


def _cmd_grade(args: argparse.Namespace) -> None:
    """Execute grading."""
    if args.config_path:
        if not Path(args.config_path).is_file():
            print(f"Error: Config file not found: {args.config_path}", file=sys.stderr)
            sys.exit(2)
    if not Path(args.inputs_file).is_file():
        print(f"Error: File not found: {args.inputs_file}", file=sys.stderr)
        sys.exit(2)

    try:
        grader = Grader.from_config(args.config_path) if args.config_path else Grader()
        with open(args.inputs_file, encoding="utf-8") as f:
            reports, modified_lines = decode_inputs(json.load(f))
    except (ValueError, yaml.YAMLError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)

    log = GradingLog()
    result = grader.grade(reports, modified_lines, log)
    metrics = collect_metrics(result)
    gates = QualityGateResult.evaluate(metrics, grader.profile.quality_gates, log)

    output_text = json.dumps({
        "score": result.to_dict(),
        "metrics": metrics.to_dict(),
        "qualityGates": gates.to_dict(),
    }, indent=2)

    if args.output_path:
        with open(args.output_path, "w", encoding="utf-8") as f:
            f.write(output_text)
    else:
        print(output_text)

    if args.show_summary:
        _print_summary(result, gates)

    status = gates.overall_status
    if status is OverallStatus.FAILURE or (status is OverallStatus.UNSTABLE and args.fail_on_unstable):
        sys.exit(1)


def decode_inputs(data: Any) -> tuple[dict[str, Any], dict[str, list[int]]]:
    """Decode the JSON input document into tool reports and modified lines.

    Each report is either a plain mapping of counts, an ``issues`` list, or a
    coverage tree (a mapping with ``files`` and/or ``children``).
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Input document must be a JSON object")
    reports = {tool_id: _decode_report(report) for tool_id, report in (data.get("reports") or {}).items()}
    modified_lines = {
        path: [int(line) for line in lines]
        for path, lines in (data.get("modifiedLines") or {}).items()
    }
    for path in data.get("modifiedFiles") or []:
        modified_lines.setdefault(path, [])
    return reports, modified_lines


def _decode_report(data: Any) -> Any:
    if isinstance(data, list):
        return [_decode_issue(item) for item in data]
    if not isinstance(data, dict):
        raise ConfigurationError(f"Unsupported report: {data!r}")
    if "issues" in data:
        return [_decode_issue(item) for item in data["issues"]]
    if "files" in data or "children" in data:
        return _decode_node(data)
    return dict(data)


def _decode_issue(data: dict) -> Issue:
    try:
        return Issue(path=str(data["path"]), line=int(data.get("line", 0)), severity=str(data.get("severity", "normal")).lower())
    except (KeyError, TypeError) as exc:
        raise ConfigurationError(f"Malformed issue {data!r}") from exc


def _decode_node(data: dict) -> CoverageNode:
    if not isinstance(data, dict):
        raise ConfigurationError(f"Malformed coverage node {data!r}")
    return CoverageNode(
        name=str(data.get("name", "")),
        location=str(data.get("location", "")),
        files=tuple(_decode_file(f) for f in data.get("files", [])),
        children=tuple(_decode_node(c) for c in data.get("children", [])),
    )


def _decode_file(data: dict) -> FileCoverage:
    if not isinstance(data, dict):
        raise ConfigurationError(f"Malformed coverage file {data!r}")
    if "path" not in data:
        raise ConfigurationError(f"Coverage file without path: {data!r}")
    lines = {int(line): bool(hit) for line, hit in (data.get("lines") or {}).items()}
    counters = {
        metric: Counter(int(counter.get("covered", 0)), int(counter.get("missed", 0)))
        for metric, counter in (data.get("counters") or {}).items()
    }
    return FileCoverage(path=str(data["path"]), lines=lines, counters=counters)


def _print_summary(result: GradingResult, gates: QualityGateResult) -> None:
    """Print a human-readable score summary to stderr."""
    print("\n=== Grading Summary ===", file=sys.stderr)
    print(f"Total: {result.achieved_score} of {result.max_score} ({result.ratio}%)", file=sys.stderr)
    print("", file=sys.stderr)
    for score in result.scores:
        print(f"  {score.name:30} {score.value:>4} of {score.max_score:<4}", file=sys.stderr)
        for child in score.children:
            marker = " (missing)" if child.missing else ""
            print(f"    {child.name:28} {child.value:>4} of {child.max_score:<4}{marker}", file=sys.stderr)
    print("", file=sys.stderr)
    print(f"Quality gates: {gates.overall_status.name}  |  Passed: {gates.passed_count}  "
          f"|  Failed: {gates.failed_count}", file=sys.stderr)
    for evaluation in gates.evaluations:
        print(f"  [{'pass' if evaluation.passed else 'FAIL'}] {evaluation.message}", file=sys.stderr)
