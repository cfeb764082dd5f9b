"""
Analysis Tasks - run a repository analysis in a Celery worker.

The API creates the pending job and dispatches run_repository_analysis; the
task returns immediately if another worker already claimed the job.
"""

import logging
from typing import Any, Dict

from celery.exceptions import SoftTimeLimitExceeded

from repo_insight.celery_app import celery_app
from repo_insight.core.tracing import TracingContext
from repo_insight.repositories.analysis_job import AnalysisJobRepository
from repo_insight.services.analysis_exceptions import AnalysisLeaseLostError
from repo_insight.services.analysis_runner import AnalysisRunner
from repo_insight.tasks.base import PipelineTask

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    base=PipelineTask,
    name="repo_insight.tasks.analysis.run_repository_analysis",
    queue="analysis",
    soft_time_limit=900,  # 15 min
    time_limit=960,
)
def run_repository_analysis(
    self: PipelineTask,
    analysis_id: str,
    correlation_id: str = "",
) -> Dict[str, Any]:
    """
    Execute one analysis job.

    Args:
        analysis_id: AnalysisJob ObjectId string
        correlation_id: Correlation ID for tracing
    """
    TracingContext.set(
        correlation_id=correlation_id or self.request.id or "",
        analysis_id=analysis_id,
        task_name="run_repository_analysis",
    )
    log_ctx = TracingContext.get_log_prefix()

    try:
        return AnalysisRunner(self.db).run(analysis_id)

    except SoftTimeLimitExceeded:
        logger.error(f"{log_ctx} TIMEOUT! Analysis {analysis_id} exceeded its time limit")
        AnalysisJobRepository(self.db).fail(
            analysis_id, "Analysis exceeded the worker time limit"
        )
        return {"status": "failed", "analysis_id": analysis_id, "error": "timeout"}

    except AnalysisLeaseLostError as e:
        return {"status": "abandoned", "analysis_id": analysis_id, "error": str(e)}

    finally:
        TracingContext.clear()
