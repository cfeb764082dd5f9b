"""Metrics Aggregator - pure reduction of a file index into repository metrics."""

from typing import Dict, Sequence

from repo_insight.entities.analysis_job import AnalysisMetrics, FileIndexEntry, LanguageStats

LARGEST_FILES_LIMIT = 20


def calculate_metrics(file_index: Sequence[FileIndexEntry]) -> AnalysisMetrics:
    total_lines = 0
    total_size = 0
    languages: Dict[str, LanguageStats] = {}

    for entry in file_index:
        total_lines += entry.lines
        total_size += entry.size

        stats = languages.setdefault(entry.language, LanguageStats())
        stats.lines += entry.lines
        stats.files += 1

    for stats in languages.values():
        stats.percentage = (stats.lines / total_lines) * 100 if total_lines > 0 else 0.0

    # sorted() is stable and leaves the caller's sequence untouched
    largest_files = sorted(file_index, key=lambda e: e.size, reverse=True)[:LARGEST_FILES_LIMIT]

    return AnalysisMetrics(
        file_count=len(file_index),
        total_lines=total_lines,
        total_size=total_size,
        language_count=len(languages),
        languages=languages,
        largest_files=list(largest_files),
    )
