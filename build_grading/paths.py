"""Reconciliation of tool-reported file paths with version-control paths."""

import logging
import re
from typing import Iterable

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Directory names that hold build output rather than sources. The segment
# in front of the last one of these in a report location is the module root.
BUILD_OUTPUT_DIRS: frozenset[str] = frozenset({
    "target",  # Maven
    "build",   # Gradle
    "bin",     # .NET
    "obj",     # .NET
    "out",     # IntelliJ, sbt
})

_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:[\\/]")


def normalize_path(path: str | None) -> str:
    """Normalize separators and strip leading/trailing slashes.

    Backslashes become forward slashes and duplicate slashes collapse.
    """
    if not path:
        return ""
    normalized = re.sub(r"/+", "/", path.replace("\\", "/"))
    return normalized.strip("/")


def is_absolute(path: str) -> bool:
    """Return True for Unix absolute paths and Windows drive-letter paths."""
    return path.startswith(("/", "\\")) or bool(_WINDOWS_DRIVE.match(path))


def segments(path: str) -> list[str]:
    normalized = normalize_path(path)
    return normalized.split("/") if normalized else []


def module_root(report_location: str | None, build_output_dirs: Iterable[str] = BUILD_OUTPUT_DIRS) -> str:
    """Infer the module directory of a report from its file-system location.

    Examples::

        module-a/target/site/jacoco/jacoco.xml     -> module-a
        app/build/reports/jacoco/test/report.xml   -> app
        src/Helper.Test/bin/Debug/coverage.xml     -> src/Helper.Test
        target/jacoco.xml                          -> "" (single module)
    """
    parts = segments(report_location or "")
    markers = set(build_output_dirs)
    # the last segment is the report file itself
    for index in range(len(parts) - 2, -1, -1):
        if parts[index] in markers:
            return "/".join(parts[:index])
    return ""


def _shared_prefix(first: list[str], second: list[str]) -> int:
    shared = 0
    for a, b in zip(first, second):
        if a != b:
            break
        shared += 1
    return shared


def module_affinity(path: str, root: str) -> int:
    """Number of leading path segments shared with the module root.

    The root may carry extra leading directories (``src/Helper.Test``), so
    every trailing part of the root is tried against the path.
    """
    path_parts = segments(path)
    root_parts = segments(root)
    return max(
        (_shared_prefix(path_parts, root_parts[start:]) for start in range(len(root_parts))),
        default=0,
    )


class ReconciliationIndex:
    """Read-only lookup structure over the modified files of a change set."""

    def __init__(self, paths: Iterable[str]) -> None:
        self._paths: dict[str, str] = {}
        self._suffixes: dict[str, set[str]] = {}
        for path in paths:
            normalized = normalize_path(path)
            if not normalized:
                continue
            if normalized in self._paths:
                raise ConfigurationError(
                    f"Modified files {self._paths[normalized]!r} and {path!r} collide after normalization"
                )
            self._paths[normalized] = path
            parts = normalized.split("/")
            for start in range(len(parts)):
                self._suffixes.setdefault("/".join(parts[start:]), set()).add(normalized)

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, path: str) -> bool:
        return normalize_path(path) in self._paths

    @property
    def paths(self) -> list[str]:
        return list(self._paths.values())

    def original(self, normalized: str) -> str:
        return self._paths[normalized]

    def exact(self, candidate: str) -> str | None:
        return self._paths.get(candidate)

    def suffix_matches(self, candidate: str) -> dict[str, int]:
        """Find modified files related to the candidate by a path suffix.

        Matches either direction: the candidate may be a suffix of a modified
        file or a modified file may be a suffix of the candidate. Suffixes are
        aligned on segment boundaries. The result maps each matching
        normalized path to the number of trailing segments it shares with the
        candidate.
        """
        parts = candidate.split("/")
        matches = {path: len(parts) for path in self._suffixes.get(candidate, ())}
        for start in range(1, len(parts)):
            suffix = "/".join(parts[start:])
            if suffix in self._paths:
                matches.setdefault(suffix, len(parts) - start)
        return matches


class PathReconciler:
    """Maps coverage and analysis report paths onto modified repository paths."""

    def __init__(
        self,
        modified_files: Iterable[str] | ReconciliationIndex,
        build_output_dirs: Iterable[str] = BUILD_OUTPUT_DIRS,
    ) -> None:
        if isinstance(modified_files, ReconciliationIndex):
            self._index = modified_files
        else:
            self._index = ReconciliationIndex(modified_files)
        self._build_output_dirs = frozenset(build_output_dirs)

    @property
    def index(self) -> ReconciliationIndex:
        return self._index

    def candidate(self, coverage_path: str, source_path: str = "", report_location: str = "") -> str:
        """Build the full path a report entry most likely refers to."""
        path = normalize_path(coverage_path)
        if is_absolute(coverage_path or ""):
            return path
        hint = normalize_path(source_path)
        if not hint:
            return path
        if not path:
            return hint
        root = module_root(report_location, self._build_output_dirs)
        return "/".join(part for part in (root, hint, path) if part)

    def find_match(self, coverage_path: str, source_path: str = "", report_location: str = "") -> str | None:
        """Return the modified repository path the report path refers to, or None."""
        candidate = self.candidate(coverage_path, source_path, report_location)
        if not candidate:
            return None

        exact = self._index.exact(candidate)
        if exact is not None:
            return exact

        matches = self._index.suffix_matches(candidate)
        if not matches:
            return None

        longest = max(matches.values())
        best = [path for path, shared in matches.items() if shared == longest]
        if len(best) == 1:
            return self._index.original(best[0])

        root = module_root(report_location, self._build_output_dirs)
        affinities = {path: module_affinity(path, root) for path in best}
        top = max(affinities.values())
        winners = [path for path, affinity in affinities.items() if affinity == top]
        if top == 0 or len(winners) > 1:
            logger.debug("Ambiguous report path %r matches %s", coverage_path, sorted(best))
            return None
        return self._index.original(winners[0])
