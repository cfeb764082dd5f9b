"""
Analysis Job Repository - persistence and lifecycle transitions for analysis jobs.

Every lifecycle write is a conditional update (compare-and-swap on status,
lease token or idle time), so a stale writer can never overwrite the state
written by whoever currently owns the job.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from repo_insight.entities.analysis_job import (
    AnalysisJob,
    AnalysisMetrics,
    AnalysisStatus,
    FileIndexEntry,
)
from repo_insight.utils.datetime import utc_now

from .base import BaseRepository

logger = logging.getLogger(__name__)

# Dropped from list views; the stored index can hold up to 1000 entries.
LIST_PROJECTION = {"file_index": 0}

# Cleared whenever a job leaves the active states.
_RELEASE_LOCK = {"active_lock": "", "lease_token": ""}


class AnalysisJobRepository(BaseRepository[AnalysisJob]):
    """Repository for AnalysisJob entities."""

    def __init__(self, db: Database):
        super().__init__(db, "repo_analyses", AnalysisJob)
        self.collection.create_index(
            [("repository_id", 1), ("user_id", 1)], background=True
        )
        self.collection.create_index(
            [("user_id", 1), ("created_at", -1)], background=True
        )
        self.collection.create_index([("owner", 1), ("name", 1)], background=True)
        self.collection.create_index([("status", 1)], background=True)
        # At most one pending/analyzing job per (owner, name, user)
        self.collection.create_index(
            [("active_lock", 1)],
            unique=True,
            partialFilterExpression={"active_lock": {"$type": "string"}},
            background=True,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_latest_for_repository(
        self, repository_id: str, owner: str, name: str, user_id: str
    ) -> Optional[AnalysisJob]:
        """Most recent job for the repository, matched by id or owner/name."""
        return self.find_one(
            {
                "user_id": user_id,
                "$or": [
                    {"repository_id": repository_id},
                    {"owner": owner, "name": name},
                ],
            },
            sort=[("created_at", DESCENDING)],
        )

    def find_latest_by_owner_name(
        self, owner: str, name: str, user_id: str
    ) -> Optional[AnalysisJob]:
        return self.find_one(
            {"owner": owner, "name": name, "user_id": user_id},
            sort=[("created_at", DESCENDING)],
        )

    def find_active(self, owner: str, name: str, user_id: str) -> Optional[AnalysisJob]:
        return self.find_one({"active_lock": AnalysisJob.lock_key(owner, name, user_id)})

    def list_by_user(
        self,
        user_id: str,
        limit: int = 20,
        repository_id: Optional[str] = None,
    ) -> List[AnalysisJob]:
        query: Dict[str, Any] = {"user_id": user_id}
        if repository_id:
            query["repository_id"] = repository_id
        return self.find_many(
            query,
            sort=[("created_at", DESCENDING)],
            limit=limit,
            projection=LIST_PROJECTION,
        )

    def find_for_repositories(
        self,
        user_id: str,
        repository_ids: Sequence[str],
        owner_names: Sequence[tuple[str, str]],
    ) -> List[AnalysisJob]:
        """All jobs of a user for any of the given repositories, newest first."""
        clauses: List[Dict[str, Any]] = []
        if repository_ids:
            clauses.append({"repository_id": {"$in": list(repository_ids)}})
        for owner, name in owner_names:
            clauses.append({"owner": owner, "name": name})
        if not clauses:
            return []
        return self.find_many(
            {"user_id": user_id, "$or": clauses},
            sort=[("created_at", DESCENDING)],
            projection=LIST_PROJECTION,
        )

    def get_stats(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Per-status counts, average duration and file/line totals."""
        match: Dict[str, Any] = {"user_id": user_id} if user_id else {}
        return self.aggregate(
            [
                {"$match": match},
                {
                    "$group": {
                        "_id": "$status",
                        "count": {"$sum": 1},
                        "avg_duration": {"$avg": "$duration"},
                        "total_files": {"$sum": "$metrics.file_count"},
                        "total_lines": {"$sum": "$metrics.total_lines"},
                    }
                },
            ]
        )

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    def insert_pending(self, job: AnalysisJob) -> AnalysisJob:
        """
        Insert a new pending job holding the repository's active lock.

        Raises:
            pymongo.errors.DuplicateKeyError: another active job already
                holds the lock for (owner, name, user_id).
        """
        now = utc_now()
        job.status = AnalysisStatus.PENDING.value
        job.active_lock = AnalysisJob.lock_key(job.owner, job.name, job.user_id)
        job.created_at = now
        job.updated_at = now
        return self.insert_one(job)

    def mark_stuck_failed(
        self, job_id: str, idle_since: datetime, error: str
    ) -> bool:
        """
        Fail an active job that has not been touched since ``idle_since``.

        Returns False when the job was updated (or finished) in the meantime.
        """
        now = utc_now()
        result = self.collection.update_one(
            {
                "_id": self._to_object_id(job_id),
                "status": {"$in": AnalysisStatus.active()},
                "updated_at": {"$lte": idle_since},
            },
            {
                "$set": {
                    "status": AnalysisStatus.FAILED.value,
                    "error": error,
                    "error_details": {"reason": "stuck", "idle_since": idle_since},
                    "failed_at": now,
                    "updated_at": now,
                },
                "$unset": _RELEASE_LOCK,
                "$inc": {"version": 1},
            },
        )
        return result.modified_count == 1

    def claim_for_execution(self, job_id: str, lease_token: str) -> Optional[AnalysisJob]:
        """pending -> analyzing; returns None if the job is no longer pending."""
        now = utc_now()
        doc = self.collection.find_one_and_update(
            {"_id": self._to_object_id(job_id), "status": AnalysisStatus.PENDING.value},
            {
                "$set": {
                    "status": AnalysisStatus.ANALYZING.value,
                    "lease_token": lease_token,
                    "analyzed_at": now,
                    "updated_at": now,
                },
                "$inc": {"version": 1},
            },
            return_document=ReturnDocument.AFTER,
        )
        return self._to_model(doc)

    def heartbeat(self, job_id: str, lease_token: str) -> bool:
        """Touch updated_at so an advancing job is not mistaken for a stuck one."""
        result = self.collection.update_one(
            self._lease_filter(job_id, lease_token),
            {"$set": {"updated_at": utc_now()}},
        )
        return result.matched_count == 1

    def complete(
        self,
        job_id: str,
        lease_token: str,
        summary: Optional[str],
        metrics: AnalysisMetrics,
        file_index: List[FileIndexEntry],
        duration: int,
    ) -> bool:
        """analyzing -> completed, writing status and results in one update."""
        now = utc_now()
        result = self.collection.update_one(
            self._lease_filter(job_id, lease_token),
            {
                "$set": {
                    "status": AnalysisStatus.COMPLETED.value,
                    "summary": summary,
                    "metrics": metrics.model_dump(),
                    "file_index": [entry.model_dump() for entry in file_index],
                    "duration": duration,
                    "analyzed_at": now,
                    "updated_at": now,
                    "error": None,
                    "error_details": None,
                },
                "$unset": _RELEASE_LOCK,
                "$inc": {"version": 1},
            },
        )
        return result.matched_count == 1

    def fail(
        self,
        job_id: str,
        error: str,
        error_details: Optional[Dict[str, Any]] = None,
        lease_token: Optional[str] = None,
    ) -> bool:
        """
        Move an active job to failed.

        With a lease token only the lease holder may fail the job; without one
        any still-active job is failed (task-boundary fallback).
        """
        now = utc_now()
        if lease_token:
            query = self._lease_filter(job_id, lease_token)
        else:
            query = {
                "_id": self._to_object_id(job_id),
                "status": {"$in": AnalysisStatus.active()},
            }
        result = self.collection.update_one(
            query,
            {
                "$set": {
                    "status": AnalysisStatus.FAILED.value,
                    "error": error,
                    "error_details": error_details,
                    "failed_at": now,
                    "updated_at": now,
                },
                "$unset": _RELEASE_LOCK,
                "$inc": {"version": 1},
            },
        )
        return result.matched_count == 1

    def update_summary(self, job_id: str, summary: str) -> Optional[AnalysisJob]:
        """Replace the summary of a completed job."""
        return self.find_one_and_update(
            {
                "_id": self._to_object_id(job_id),
                "status": AnalysisStatus.COMPLETED.value,
            },
            {"$set": {"summary": summary, "updated_at": utc_now()}},
        )

    def cleanup_old_analyses(self, days: int = 30) -> int:
        """Delete terminal jobs created more than ``days`` days ago."""
        cutoff = utc_now() - timedelta(days=days)
        deleted = self.delete_many(
            {
                "status": {"$in": AnalysisStatus.terminal()},
                "created_at": {"$lt": cutoff},
            }
        )
        logger.info(f"Deleted {deleted} analyses created before {cutoff.isoformat()}")
        return deleted

    def _lease_filter(self, job_id: str, lease_token: str) -> Dict[str, Any]:
        return {
            "_id": self._to_object_id(job_id),
            "status": AnalysisStatus.ANALYZING.value,
            "lease_token": lease_token,
        }
