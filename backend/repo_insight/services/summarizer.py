"""
Repository summarizer - asks an external LLM gateway for a Markdown summary.

The gateway at SUMMARIZER_URL receives ``{prompt, max_tokens, metadata}`` and
answers ``{content, provider}``. Failures never raise: they come back as a
SummaryResult with ``success=False`` so the analysis can still complete.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from repo_insight.config import settings
from repo_insight.entities.analysis_job import AnalysisJob, AnalysisMetrics, FileIndexEntry

logger = logging.getLogger(__name__)

MAX_TOKENS = 4000
TOP_LANGUAGES = 5
TOP_FILES = 10


@dataclass
class SummaryResult:
    success: bool
    content: Optional[str] = None
    provider: Optional[str] = None
    error: Optional[str] = None


def build_prompt(job: AnalysisJob, metrics: AnalysisMetrics) -> str:
    languages = sorted(
        metrics.languages.items(), key=lambda item: item[1].percentage, reverse=True
    )[:TOP_LANGUAGES]
    top_languages = ", ".join(f"{lang} ({stats.percentage:.1f}%)" for lang, stats in languages)
    top_files = "\n".join(
        f"{f.path} ({f.lines} lines, {f.language})" for f in metrics.largest_files[:TOP_FILES]
    )

    return f"""Analyze this GitHub repository and provide a structured summary in clean Markdown format:

Repository: {job.full_name}
Files: {metrics.file_count}
Total Lines of Code: {metrics.total_lines:,}
Languages: {top_languages}
Size: {metrics.total_size / 1024 / 1024:.1f} MB

Top Files:
{top_files}

Use exactly these sections, each as a '## N. Title' header:
## 1. Project Overview
## 2. Key Technologies
## 3. Project Structure
## 4. Code Quality
## 5. Notable Features

Aim for 300-400 words. Output only Markdown, no preamble or closing remarks."""


class HttpSummarizer:
    """Summarizer backed by the HTTP LLM gateway."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url or settings.SUMMARIZER_URL
        self.timeout = timeout or settings.SUMMARIZER_TIMEOUT
        self.transport = transport

    def summarize(
        self,
        job: AnalysisJob,
        file_index: Sequence[FileIndexEntry],
        metrics: AnalysisMetrics,
        user_id: Optional[str] = None,
    ) -> SummaryResult:
        if not self.url:
            logger.error("Summarizer not configured (SUMMARIZER_URL is empty)")
            return SummaryResult(success=False, error="Summarizer is not configured")

        prompt = build_prompt(job, metrics)
        logger.info(
            f"Generating summary for {job.full_name} "
            f"(prompt={len(prompt)} chars, files={len(file_index)})"
        )

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    self.url,
                    json={
                        "prompt": prompt,
                        "max_tokens": MAX_TOKENS,
                        "metadata": {
                            "action": "repository_analysis",
                            "repository_id": job.repository_id,
                            "user_id": user_id,
                        },
                    },
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to generate summary for {job.full_name}: {e}")
            return SummaryResult(success=False, error=str(e) or "Failed to generate summary")

        if not isinstance(payload, dict):
            payload = {}
        content = (payload.get("content") or "").strip()
        if not content:
            logger.error(f"Summarizer returned empty content for {job.full_name}")
            return SummaryResult(success=False, error="Summarizer returned an empty response")

        provider = payload.get("provider")
        logger.info(f"Summary generated for {job.full_name} using {provider}")
        return SummaryResult(success=True, content=content, provider=provider)


def get_summarizer() -> HttpSummarizer:
    return HttpSummarizer()
