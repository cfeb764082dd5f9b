"""
Maintenance Tasks - Scheduled cleanup and housekeeping jobs.

These tasks are designed to run periodically via Celery Beat.
"""

import logging
from typing import Any, Dict

from celery import shared_task

from repo_insight.database.mongo import get_database
from repo_insight.repositories.analysis_job import AnalysisJobRepository
from repo_insight.utils.datetime import utc_now

logger = logging.getLogger(__name__)


@shared_task(
    name="repo_insight.tasks.maintenance.cleanup_old_analyses",
    bind=True,
    queue="maintenance",
)
def cleanup_old_analyses(self, days: int = 30) -> Dict[str, Any]:
    """
    Delete finished analyses older than ``days`` days.

    Pending and analyzing jobs are never deleted here; stuck ones are
    reclaimed by the next analysis request for the same repository.
    """
    repo = AnalysisJobRepository(get_database())

    try:
        deleted_count = repo.cleanup_old_analyses(days=days)

        logger.info(
            f"Analyses cleanup completed: deleted {deleted_count} analyses older than {days} days"
        )

        return {
            "status": "success",
            "deleted_count": deleted_count,
            "days_threshold": days,
            "executed_at": utc_now().isoformat(),
        }

    except Exception as e:
        logger.error(f"Analyses cleanup failed: {e}", exc_info=True)
        return {
            "status": "failed",
            "error": str(e),
            "executed_at": utc_now().isoformat(),
        }
