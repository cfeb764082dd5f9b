"""
Analysis Runner - executes one pending analysis job end to end.

Steps (progress %):
    initializing 0 -> git-setup 10 -> repo-structure 20 ->
    repo-structure-complete 30 -> file-indexing 40 -> file-processing 40-70 ->
    file-index-complete 70 -> metrics 75 -> ai-summary 85 -> saving 95 ->
    completed 100

The runner owns the job through a lease token taken when it moves the job
from pending to analyzing. Every step heartbeats under that lease; if the job
was reclaimed in the meantime (stuck detection, forced restart) the runner
stops without writing anything else.
"""

from __future__ import annotations

import logging
import time
import traceback
import uuid
from typing import Any, Callable, Dict, Optional

from pymongo.database import Database

from repo_insight.config import settings
from repo_insight.core.tracing import TracingContext
from repo_insight.entities.analysis_job import AnalysisJob
from repo_insight.repositories.analysis_job import AnalysisJobRepository
from repo_insight.services.analysis_exceptions import AnalysisLeaseLostError
from repo_insight.services.file_indexer import FileIndexer, IndexOptions
from repo_insight.services.github.github_client import GitHubClient, get_github_client
from repo_insight.services.metrics import calculate_metrics
from repo_insight.services.summarizer import HttpSummarizer, SummaryResult, get_summarizer
from repo_insight.tasks.shared.events import AnalysisProgressReporter
from repo_insight.utils.datetime import utc_now

logger = logging.getLogger(__name__)

FILE_PROGRESS_START = 40
FILE_PROGRESS_SPAN = 30


class AnalysisRunner:
    def __init__(
        self,
        db: Database,
        github_factory: Callable[[], GitHubClient] = get_github_client,
        summarizer: Optional[HttpSummarizer] = None,
    ):
        self.repo = AnalysisJobRepository(db)
        self.github_factory = github_factory
        self.summarizer = summarizer or get_summarizer()

    def run(self, analysis_id: str) -> Dict[str, Any]:
        lease_token = uuid.uuid4().hex
        job = self.repo.claim_for_execution(analysis_id, lease_token)
        if job is None:
            logger.info(
                f"{TracingContext.get_log_prefix()} Analysis {analysis_id} is no longer "
                f"pending, skipping"
            )
            return {"status": "skipped", "analysis_id": analysis_id}

        reporter = AnalysisProgressReporter(analysis_id)
        started = time.monotonic()
        logger.info(f"{TracingContext.get_log_prefix()} Starting analysis of {job.full_name}")

        try:
            return self._execute(job, lease_token, reporter, started)
        except AnalysisLeaseLostError:
            logger.warning(
                f"{TracingContext.get_log_prefix()} Lost lease on analysis {analysis_id}, "
                f"stopping without further writes"
            )
            raise
        except Exception as e:
            duration = self._elapsed_ms(started)
            logger.error(
                f"{TracingContext.get_log_prefix()} Analysis failed for {job.full_name}: {e}",
                exc_info=True,
            )
            self.repo.fail(
                analysis_id,
                str(e) or type(e).__name__,
                error_details={
                    "stack": traceback.format_exc(),
                    "timestamp": utc_now(),
                    "duration": duration,
                },
                lease_token=lease_token,
            )
            reporter.error(str(e) or type(e).__name__)
            raise

    def _execute(
        self,
        job: AnalysisJob,
        lease_token: str,
        reporter: AnalysisProgressReporter,
        started: float,
    ) -> Dict[str, Any]:
        analysis_id = str(job.id)

        def step(name: str, message: str, progress: int) -> None:
            reporter.progress(name, message, progress)
            if not self.repo.heartbeat(analysis_id, lease_token):
                raise AnalysisLeaseLostError(analysis_id)

        step("initializing", f"Starting analysis of {job.full_name}...", 0)
        step("git-setup", "Connecting to GitHub...", 10)

        with self.github_factory() as github:
            step("repo-structure", "Fetching repository structure...", 20)
            files, branch = github.list_tree(job.owner, job.name, job.branch)
            step("repo-structure-complete", f"Found {len(files)} items in repository", 30)

            step("file-indexing", "Building file index and reading code...", 40)

            def on_progress(processed: int, total: int) -> None:
                progress = FILE_PROGRESS_START + round(processed / max(total, 1) * FILE_PROGRESS_SPAN)
                reporter.progress(
                    "file-processing", f"Processing files: {processed}/{total}", progress
                )
                self.repo.heartbeat(analysis_id, lease_token)

            indexer = FileIndexer(
                read_file=lambda path: github.read_file(job.owner, job.name, path, branch),
                options=IndexOptions(
                    max_file_size=job.max_file_size,
                    max_files=job.max_files,
                    include_tests=job.include_tests,
                    include_docs=job.include_docs,
                ),
                on_progress=on_progress,
                on_file_status=lambda path, status: reporter.file_status(
                    path, status, f"File {path} {status}"
                ),
            )
            file_index = indexer.build(files)

        step("file-index-complete", f"Processed {len(file_index)} files", 70)

        step("metrics", "Calculating code metrics...", 75)
        metrics = calculate_metrics(file_index)

        step("ai-summary", "Generating AI insights and summary...", 85)
        summary = self._summarize(job, file_index, metrics)

        step("saving", "Saving analysis results...", 95)
        duration = self._elapsed_ms(started)
        completed = self.repo.complete(
            analysis_id,
            lease_token,
            summary=summary,
            metrics=metrics,
            file_index=file_index[: settings.ANALYSIS_STORED_FILE_INDEX_LIMIT],
            duration=duration,
        )
        if not completed:
            raise AnalysisLeaseLostError(analysis_id)

        reporter.complete(
            duration,
            {
                "files": len(file_index),
                "lines": metrics.total_lines,
                "size": metrics.total_size,
            },
        )
        logger.info(
            f"{TracingContext.get_log_prefix()} Completed analysis for {job.full_name} "
            f"in {duration}ms"
        )
        return {
            "status": "completed",
            "analysis_id": analysis_id,
            "duration": duration,
            "files": len(file_index),
            "summary_generated": summary is not None,
        }

    def _summarize(self, job, file_index, metrics) -> Optional[str]:
        try:
            result = self.summarizer.summarize(job, file_index, metrics, job.user_id)
        except Exception as e:
            result = SummaryResult(success=False, error=str(e))

        if result.success:
            logger.info(f"Summary generated for {job.full_name} using {result.provider}")
            return result.content

        logger.error(f"Summary failed for {job.full_name}: {result.error}")
        return None

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
