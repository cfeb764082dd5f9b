"""
Analysis Service - create/reuse, read and list repository analyses.

Reuse rules for a new request (skipped entirely on force_restart):
- latest job completed less than 24h ago -> returned as cached
- latest job pending/analyzing and touched in the last 10 minutes -> returned
- latest job pending/analyzing and idle for 10 minutes or more -> failed as
  stuck, then a new job is created in the same call
- anything else -> a new job is created

At most one pending/analyzing job exists per (owner, name, user): the insert
holds a unique active lock, and a losing concurrent request gets the winner.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from repo_insight.config import settings
from repo_insight.core.tracing import TracingContext
from repo_insight.dtos.analysis import (
    AnalysisListResponse,
    AnalysisLookupResponse,
    AnalysisResponse,
    AnalysisStatusStats,
    AnalyzeResponse,
    BulkStatusResponse,
    MetricsSnapshot,
    RecentAnalysis,
    RegenerateSummaryResponse,
    RepositoryAnalysisStatus,
    RepositoryRef,
)
from repo_insight.entities.analysis_job import AnalysisJob, AnalysisStatus
from repo_insight.repositories.analysis_job import AnalysisJobRepository
from repo_insight.services.analysis_exceptions import (
    AnalysisAccessDenied,
    AnalysisConflictError,
    AnalysisError,
    AnalysisNotFoundError,
    AnalysisValidationError,
)
from repo_insight.services.cache_tier import FastStore
from repo_insight.services.summarizer import HttpSummarizer, get_summarizer
from repo_insight.utils.datetime import ensure_aware_utc, utc_now

logger = logging.getLogger(__name__)

STUCK_ERROR = "Analysis timed out after {minutes} minutes"
SUPERSEDED_ERROR = "Superseded by a forced restart"
RECENT_DAYS = 7
RECENT_LIMIT = 10


class AnalysisService:
    def __init__(
        self,
        db: Database,
        status_cache: Optional[FastStore] = None,
        summarizer: Optional[HttpSummarizer] = None,
    ):
        self.db = db
        self.repo = AnalysisJobRepository(db)
        self._status_cache = status_cache
        self._summarizer = summarizer

    @property
    def status_cache(self) -> FastStore:
        if self._status_cache is None:
            self._status_cache = FastStore()
        return self._status_cache

    @property
    def summarizer(self) -> HttpSummarizer:
        if self._summarizer is None:
            self._summarizer = get_summarizer()
        return self._summarizer

    @staticmethod
    def status_cache_key(owner: str, name: str, user_id: str) -> str:
        return f"analysis:status:{owner}:{name}:{user_id}"

    # ------------------------------------------------------------------
    # Create / reuse
    # ------------------------------------------------------------------

    def request_analysis(
        self,
        user_id: str,
        owner: str,
        name: str,
        repository_id: str,
        branch: str = "main",
        max_file_size: Optional[int] = None,
        max_files: Optional[int] = None,
        include_tests: bool = True,
        include_docs: bool = False,
        force_restart: bool = False,
    ) -> AnalyzeResponse:
        if not owner or not name or not repository_id:
            raise AnalysisValidationError(
                "Missing required fields: owner, name, repository_id"
            )

        now = utc_now()

        if force_restart:
            self._supersede_active(owner, name, user_id)
        else:
            existing = self.repo.find_latest_for_repository(
                repository_id, owner, name, user_id
            )
            if existing:
                reused = self._reuse(existing, now)
                if reused:
                    return reused

        job = AnalysisJob(
            repository_id=repository_id,
            owner=owner,
            name=name,
            full_name=f"{owner}/{name}",
            branch=branch or "main",
            user_id=user_id,
            max_file_size=max_file_size or settings.ANALYSIS_DEFAULT_MAX_FILE_SIZE,
            max_files=max_files or settings.ANALYSIS_DEFAULT_MAX_FILES,
            include_tests=include_tests,
            include_docs=include_docs,
        )
        try:
            job = self.repo.insert_pending(job)
        except DuplicateKeyError:
            winner = self.repo.find_active(owner, name, user_id)
            if winner is None:
                # The lock holder finished between the insert and the re-read
                raise AnalysisConflictError(f"Concurrent analysis request for {owner}/{name}")
            logger.info(f"Analysis for {owner}/{name} was started concurrently, returning {winner.id}")
            return AnalyzeResponse(
                analysis_id=str(winner.id),
                status=winner.status,
                cached=False,
                message="Analysis already in progress",
            )

        self.status_cache.delete(self.status_cache_key(owner, name, user_id))
        self._dispatch(str(job.id))

        logger.info(f"Started analysis {job.id} for repository {owner}/{name}")
        return AnalyzeResponse(
            analysis_id=str(job.id),
            status=AnalysisStatus.PENDING.value,
            cached=False,
            message="Analysis started",
        )

    def _reuse(self, existing: AnalysisJob, now) -> Optional[AnalyzeResponse]:
        if existing.is_completed:
            age = now - ensure_aware_utc(existing.created_at)
            if age < timedelta(hours=settings.ANALYSIS_CACHE_HOURS):
                logger.info(f"Using existing completed analysis for {existing.full_name}")
                return AnalyzeResponse(
                    analysis_id=str(existing.id),
                    status=existing.status,
                    cached=True,
                    message="Using cached analysis results",
                )
            return None

        if not existing.is_active:
            return None

        idle_since = now - timedelta(minutes=settings.ANALYSIS_STUCK_MINUTES)
        last_touched = ensure_aware_utc(existing.updated_at or existing.created_at)
        if last_touched > idle_since:
            idle = int((now - last_touched).total_seconds())
            logger.info(
                f"Found existing analysis in progress for {existing.full_name} ({idle}s old)"
            )
            return AnalyzeResponse(
                analysis_id=str(existing.id),
                status=existing.status,
                cached=False,
                message="Analysis already in progress",
            )

        logger.warning(
            f"Found stuck analysis {existing.id} for {existing.full_name}, "
            f"marking as failed and creating a new one"
        )
        self.repo.mark_stuck_failed(
            str(existing.id),
            idle_since,
            STUCK_ERROR.format(minutes=settings.ANALYSIS_STUCK_MINUTES),
        )
        return None

    def _supersede_active(self, owner: str, name: str, user_id: str) -> None:
        active = self.repo.find_active(owner, name, user_id)
        if active is None:
            return
        logger.info(f"Force restart: failing active analysis {active.id} for {owner}/{name}")
        self.repo.fail(str(active.id), SUPERSEDED_ERROR)

    def _dispatch(self, analysis_id: str) -> None:
        from repo_insight.tasks.analysis import run_repository_analysis

        run_repository_analysis.delay(
            analysis_id, correlation_id=TracingContext.get_correlation_id()
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_analysis(self, analysis_id: str, user_id: str) -> AnalysisResponse:
        job = self.repo.find_by_id(analysis_id)
        if job is None:
            raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")
        self._check_owner(job, user_id)
        return self._to_response(job)

    def get_latest_analysis(self, owner: str, name: str, user_id: str) -> AnalysisLookupResponse:
        key = self.status_cache_key(owner, name, user_id)
        cached = self.status_cache.get(key)
        if cached is not None:
            logger.info(f"CACHE HIT for {key}")
            return AnalysisLookupResponse.model_validate(cached)

        job = self.repo.find_latest_by_owner_name(owner, name, user_id)
        if job is None:
            return AnalysisLookupResponse(message="No analysis found for this repository")
        self._check_owner(job, user_id)

        response = AnalysisLookupResponse(analysis=self._to_response(job))
        if job.status in AnalysisStatus.terminal():
            self.status_cache.set(
                key, response.model_dump(mode="json"), settings.ANALYSIS_STATUS_CACHE_TTL
            )
        return response

    def list_analyses(
        self, user_id: str, limit: int = 20, repository_id: Optional[str] = None
    ) -> AnalysisListResponse:
        jobs = self.repo.list_by_user(user_id, limit=limit, repository_id=repository_id)
        stats = {
            row["_id"]: AnalysisStatusStats(
                count=row.get("count", 0),
                avg_duration=row.get("avg_duration"),
                total_files=row.get("total_files") or 0,
                total_lines=row.get("total_lines") or 0,
            )
            for row in self.repo.get_stats(user_id)
        }
        return AnalysisListResponse(
            analyses=[self._to_response(job, include_file_index=False) for job in jobs],
            stats=stats,
        )

    def bulk_status(self, user_id: str, repositories: List[RepositoryRef]) -> BulkStatusResponse:
        """Latest status per repository plus the most recent completed analyses."""
        jobs = self.repo.find_for_repositories(
            user_id,
            repository_ids=[repo.id for repo in repositories],
            owner_names=[(repo.owner, repo.name) for repo in repositories if repo.owner and repo.name],
        )

        now = utc_now()
        recent_cutoff = now - timedelta(days=RECENT_DAYS)
        status_map: Dict[str, RepositoryAnalysisStatus] = {}
        recent: List[RecentAnalysis] = []

        # jobs are newest first, so the first one seen per key is the latest
        for job in jobs:
            key = job.repository_id or f"{job.owner}/{job.name}"
            if key in status_map:
                continue

            analyzed_at = ensure_aware_utc(job.updated_at or job.created_at)
            snapshot = self._snapshot(job) if job.is_completed else None
            status_map[key] = RepositoryAnalysisStatus(
                analysis_id=str(job.id),
                status=job.status,
                analyzed_at=analyzed_at,
                metrics=snapshot,
            )
            if job.is_completed and analyzed_at >= recent_cutoff:
                recent.append(
                    RecentAnalysis(
                        repository_id=job.repository_id,
                        owner=job.owner,
                        name=job.name,
                        full_name=job.full_name,
                        analyzed_at=analyzed_at,
                        metrics=snapshot,
                    )
                )

        recent.sort(key=lambda r: r.analyzed_at, reverse=True)
        return BulkStatusResponse(status_map=status_map, recently_analyzed=recent[:RECENT_LIMIT])

    # ------------------------------------------------------------------
    # Summary regeneration
    # ------------------------------------------------------------------

    def regenerate_summary(self, analysis_id: str, user_id: str) -> RegenerateSummaryResponse:
        if not analysis_id:
            raise AnalysisValidationError("Missing required field: analysis_id")

        job = self.repo.find_by_id(analysis_id)
        if job is None:
            raise AnalysisNotFoundError(f"Analysis {analysis_id} not found")
        self._check_owner(job, user_id)
        if not job.is_completed or job.metrics is None:
            raise AnalysisValidationError("Only completed analyses can be summarized")

        logger.info(f"Regenerating summary for analysis {analysis_id}")
        result = self.summarizer.summarize(job, job.file_index, job.metrics, user_id)
        if not result.success:
            logger.error(f"Summary regeneration failed for {analysis_id}: {result.error}")
            raise AnalysisError(result.error or "Failed to generate summary")

        self.repo.update_summary(analysis_id, result.content)
        self.status_cache.delete(self.status_cache_key(job.owner, job.name, job.user_id))
        return RegenerateSummaryResponse(
            analysis_id=analysis_id, summary=result.content, provider=result.provider
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_owner(job: AnalysisJob, user_id: str) -> None:
        if job.user_id != user_id:
            raise AnalysisAccessDenied("Access denied")

    @staticmethod
    def _to_response(job: AnalysisJob, include_file_index: bool = True) -> AnalysisResponse:
        if not job.is_completed and job.summary:
            # Completion writes status and results together, so this is a writer bug.
            logger.warning(
                f"Analysis {job.id} has a summary but status {job.status}; "
                f"results are withheld"
            )
        return AnalysisResponse.from_job(job, include_file_index=include_file_index)

    @staticmethod
    def _snapshot(job: AnalysisJob) -> Optional[MetricsSnapshot]:
        if job.metrics is None:
            return None
        return MetricsSnapshot(
            file_count=job.metrics.file_count,
            total_lines=job.metrics.total_lines,
            language_count=job.metrics.language_count,
        )
