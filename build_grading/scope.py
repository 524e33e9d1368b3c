"""Restriction of coverage trees and issues to modified files or lines."""

from typing import Iterable, Mapping

from .log import GradingLog
from .models import CoverageNode, FileCoverage, Issue, Scope
from .paths import PathReconciler

ModifiedLines = Mapping[str, Iterable[int]]


def _positive_lines(lines: Iterable[int]) -> frozenset[int]:
    # zero and negative numbers mark added or deleted files, not lines
    return frozenset(line for line in lines if line > 0)


class _Restriction:
    """Resolves report paths to the modified lines of the matching repository file."""

    def __init__(self, modified_lines: ModifiedLines, reconciler: PathReconciler | None, source_path: str) -> None:
        self.modified_lines = {path: _positive_lines(lines) for path, lines in modified_lines.items()}
        self.reconciler = reconciler if reconciler is not None else PathReconciler(self.modified_lines)
        self.source_path = source_path

    def lines_of(self, path: str, report_location: str) -> frozenset[int] | None:
        """Return the modified lines of the file, or None when it is not part of the change."""
        match = self.reconciler.find_match(path, self.source_path, report_location)
        if match is None:
            return None
        return self.modified_lines.get(match, frozenset())


def restrict(
    tree: CoverageNode,
    scope: Scope,
    modified_lines: ModifiedLines,
    *,
    source_path: str = "",
    reconciler: PathReconciler | None = None,
    log: GradingLog | None = None,
) -> CoverageNode:
    """Return a view of the coverage tree limited to the requested scope.

    The root node is always returned, possibly without any files; an empty
    tree reports its metrics as absent.
    """
    if scope is Scope.PROJECT:
        return tree

    restriction = _Restriction(modified_lines, reconciler, source_path)
    restricted = _restrict_node(tree, scope, restriction, tree.location)
    if restricted is None:
        restricted = CoverageNode(name=tree.name, location=tree.location)
    if log is not None:
        log.info("Restricted %s to %d of %d files (%s)",
                 tree.name, len(restricted.all_files()), len(tree.all_files()), scope)
    return restricted


def _restrict_node(
    node: CoverageNode, scope: Scope, restriction: _Restriction, location: str
) -> CoverageNode | None:
    location = node.location or location
    files = []
    for file in node.files:
        restricted = _restrict_file(file, scope, restriction, location)
        if restricted is not None:
            files.append(restricted)
    children = []
    for child in node.children:
        restricted = _restrict_node(child, scope, restriction, location)
        if restricted is not None:
            children.append(restricted)
    if not files and not children:
        return None
    return CoverageNode(name=node.name, files=tuple(files), children=tuple(children), location=node.location)


def _restrict_file(
    file: FileCoverage, scope: Scope, restriction: _Restriction, location: str
) -> FileCoverage | None:
    modified = restriction.lines_of(file.path, location)
    if modified is None:
        return None
    if scope is Scope.MODIFIED_FILES:
        return file
    lines = {line: hit for line, hit in file.lines.items() if line in modified}
    if not lines:
        return None
    return FileCoverage(path=file.path, lines=lines)


def restrict_issues(
    issues: Iterable[Issue],
    scope: Scope,
    modified_lines: ModifiedLines,
    *,
    source_path: str = "",
    report_location: str = "",
    reconciler: PathReconciler | None = None,
) -> list[Issue]:
    """Keep the issues that affect modified files (or modified lines)."""
    issues = list(issues)
    if scope is Scope.PROJECT:
        return issues

    restriction = _Restriction(modified_lines, reconciler, source_path)
    kept = []
    for issue in issues:
        modified = restriction.lines_of(issue.path, report_location)
        if modified is None:
            continue
        if scope is Scope.MODIFIED_LINES and issue.line not in modified:
            continue
        kept.append(issue)
    return kept


def patch_coverage(
    tree: CoverageNode,
    modified_lines: ModifiedLines,
    *,
    source_path: str = "",
    reconciler: PathReconciler | None = None,
) -> float | None:
    """Percentage of the modified lines that are covered, None without overlap."""
    restricted = restrict(tree, Scope.MODIFIED_LINES, modified_lines,
                          source_path=source_path, reconciler=reconciler)
    counter = restricted.counter("line")
    if counter.total == 0:
        return None
    return float(counter.covered_percentage)
