"""
File Indexer - turns a repository tree listing into a bounded file index.

Per file, in listing order, until ``max_files`` entries are accepted:
1. skip files larger than ``max_file_size``
2. skip build/vendor/VCS paths (plus tests/docs unless included)
3. classify language from the extension
4. count lines from the file content, or estimate them from the size
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern, Protocol

from repo_insight.entities.analysis_job import FileIndexEntry

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 5
BYTES_PER_LINE = 80

SKIP_PATTERNS: List[Pattern[str]] = [
    re.compile(p)
    for p in (
        r"package-lock\.json$",
        r"node_modules/",
        r"\.git/",
        r"\.next/",
        r"dist/",
        r"build/",
        r"coverage/",
        r"\.nyc_output/",
        r"vendor/",
        r"\.venv/",
        r"__pycache__/",
        r"\.pytest_cache/",
        r"target/",  # Rust/Java
    )
]

TEST_PATTERNS: List[Pattern[str]] = [
    re.compile(p)
    for p in (r"test/", r"tests/", r"spec/", r"\.test\.", r"\.spec\.", r"__tests__/")
]

DOC_PATTERNS: List[Pattern[str]] = [
    re.compile(p)
    for p in (r"docs/", r"documentation/", r"\.md$", r"\.rst$", r"\.txt$")
]

LANGUAGE_MAP: Dict[str, str] = {
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".py": "Python",
    ".java": "Java",
    ".go": "Go",
    ".rs": "Rust",
    ".cpp": "C++",
    ".c": "C",
    ".cs": "C#",
    ".php": "PHP",
    ".rb": "Ruby",
    ".swift": "Swift",
    ".kt": "Kotlin",
    ".scala": "Scala",
    ".html": "HTML",
    ".css": "CSS",
    ".scss": "SCSS",
    ".less": "Less",
    ".vue": "Vue",
    ".svelte": "Svelte",
    ".json": "JSON",
    ".xml": "XML",
    ".yaml": "YAML",
    ".yml": "YAML",
    ".md": "Markdown",
    ".sh": "Shell",
    ".bash": "Shell",
    ".sql": "SQL",
}

TEXT_EXTENSIONS = frozenset(LANGUAGE_MAP) | {".txt"}


class FileReader(Protocol):
    def __call__(self, path: str) -> Optional[str]: ...


ProgressCallback = Callable[[int, int], None]
FileStatusCallback = Callable[[str, str], None]


@dataclass
class IndexOptions:
    """File budget and inclusion flags for one indexing run."""

    max_file_size: int = 1024 * 1024
    max_files: int = 10000
    include_tests: bool = True
    include_docs: bool = False


def get_file_extension(path: str) -> str:
    last_dot = path.rfind(".")
    return "" if last_dot == -1 else path[last_dot:]


def get_language(path: str) -> str:
    return LANGUAGE_MAP.get(get_file_extension(path), "Unknown")


def is_text_file(extension: str) -> bool:
    return extension in TEXT_EXTENSIONS


def should_skip_file(path: str, include_tests: bool, include_docs: bool) -> bool:
    patterns = list(SKIP_PATTERNS)
    if not include_tests:
        patterns.extend(TEST_PATTERNS)
    if not include_docs:
        patterns.extend(DOC_PATTERNS)
    return any(pattern.search(path) for pattern in patterns)


def count_lines(content: Optional[str]) -> int:
    if not content:
        return 0
    return len(content.split("\n"))


def estimate_lines(size: int) -> int:
    """Size-based estimate used whenever the content is not read."""
    return max(1, size // BYTES_PER_LINE)


class FileIndexer:
    """
    Builds a FileIndexEntry list from a tree listing.

    ``read_file`` is called with a path and returns its text; any exception it
    raises is treated as a failed read and the line count is estimated.
    Callbacks are advisory: their failures are logged and never change the
    result.
    """

    def __init__(
        self,
        read_file: FileReader,
        options: IndexOptions,
        on_progress: Optional[ProgressCallback] = None,
        on_file_status: Optional[FileStatusCallback] = None,
    ):
        self.read_file = read_file
        self.options = options
        self.on_progress = on_progress
        self.on_file_status = on_file_status

    def build(self, files: Iterable[Dict[str, Any]]) -> List[FileIndexEntry]:
        listing = list(files)
        total = len(listing)
        opts = self.options
        index: List[FileIndexEntry] = []

        logger.info(f"Indexing {total} files (max_files={opts.max_files})")

        for file in listing:
            if len(index) >= opts.max_files:
                logger.info("Max files limit reached")
                break

            path = file["path"]
            size = int(file.get("size") or 0)

            if size > opts.max_file_size:
                self._file_status(path, "skipped (too large)")
                continue

            if should_skip_file(path, opts.include_tests, opts.include_docs):
                self._file_status(path, "skipped (excluded pattern)")
                continue

            extension = get_file_extension(path)
            index.append(
                FileIndexEntry(
                    path=path,
                    language=get_language(path),
                    extension=extension,
                    size=size,
                    lines=self._line_count(path, extension, size),
                    content_hash=file.get("sha"),
                )
            )

            if len(index) % PROGRESS_EVERY == 0:
                self._progress(len(index), total)

        total_lines = sum(entry.lines for entry in index)
        total_size = sum(entry.size for entry in index)
        logger.info(
            f"Built file index: {len(index)} files, {total_lines:,} lines, "
            f"{total_size / 1024 / 1024:.1f} MB"
        )
        return index

    def _line_count(self, path: str, extension: str, size: int) -> int:
        if not (is_text_file(extension) and size < self.options.max_file_size):
            lines = estimate_lines(size)
            self._file_status(path, f"estimated ({lines} lines)")
            return lines

        try:
            content = self.read_file(path)
        except Exception as e:
            lines = estimate_lines(size)
            logger.warning(f"Failed to read {path}, estimated {lines} lines: {e}")
            self._file_status(path, f"failed to read ({e})")
            return lines

        if not content:
            self._file_status(path, "processed (empty content)")
            return 0

        lines = count_lines(content)
        self._file_status(path, f"processed ({lines} lines)")
        return lines

    def _progress(self, processed: int, total: int) -> None:
        if not self.on_progress:
            return
        try:
            self.on_progress(processed, total)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    def _file_status(self, path: str, status: str) -> None:
        if not self.on_file_status:
            return
        try:
            self.on_file_status(path, status)
        except Exception as e:
            logger.warning(f"File status callback failed for {path}: {e}")
