"""DTOs for the repository analysis API."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from repo_insight.entities.analysis_job import AnalysisJob, AnalysisMetrics, FileIndexEntry


class AnalyzeRequest(BaseModel):
    """
    Start (or reuse) an analysis.

    Required fields are validated by the service so that a missing value is
    reported as a 400 with a readable message.
    """

    owner: str = ""
    name: str = ""
    repository_id: str = ""
    branch: str = "main"
    max_file_size: Optional[int] = Field(None, gt=0)
    max_files: Optional[int] = Field(None, gt=0)
    include_tests: bool = True
    include_docs: bool = False
    force_restart: bool = False


class AnalyzeResponse(BaseModel):
    analysis_id: str
    status: str
    cached: bool = False
    message: str = ""


class AnalysisResponse(BaseModel):
    """
    Read view of an analysis job.

    Results (summary, metrics, file_index, duration) are only populated for
    completed jobs.
    """

    id: str
    repository_id: str
    owner: str
    name: str
    full_name: str
    branch: str
    status: str

    summary: Optional[str] = None
    metrics: Optional[AnalysisMetrics] = None
    file_index: Optional[List[FileIndexEntry]] = None
    duration: Optional[int] = None

    analyzed_at: Optional[datetime] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: AnalysisJob, include_file_index: bool = True) -> "AnalysisResponse":
        completed = job.is_completed
        return cls(
            id=str(job.id),
            repository_id=job.repository_id,
            owner=job.owner,
            name=job.name,
            full_name=job.full_name,
            branch=job.branch,
            status=job.status,
            summary=job.summary if completed else None,
            metrics=job.metrics if completed else None,
            file_index=job.file_index if completed and include_file_index else None,
            duration=job.duration if completed else None,
            analyzed_at=job.analyzed_at,
            error=job.error,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class AnalysisLookupResponse(BaseModel):
    analysis: Optional[AnalysisResponse] = None
    message: Optional[str] = None


class AnalysisListRequest(BaseModel):
    limit: int = Field(20, ge=1, le=100)
    repository_id: Optional[str] = None


class AnalysisStatusStats(BaseModel):
    count: int = 0
    avg_duration: Optional[float] = None
    total_files: int = 0
    total_lines: int = 0


class AnalysisListResponse(BaseModel):
    analyses: List[AnalysisResponse] = Field(default_factory=list)
    stats: Dict[str, AnalysisStatusStats] = Field(default_factory=dict)


class RepositoryRef(BaseModel):
    id: str
    owner: Optional[str] = None
    name: Optional[str] = None


class BulkStatusRequest(BaseModel):
    repositories: List[RepositoryRef]


class MetricsSnapshot(BaseModel):
    file_count: int = 0
    total_lines: int = 0
    language_count: int = 0


class RepositoryAnalysisStatus(BaseModel):
    analysis_id: str
    status: str
    analyzed_at: Optional[datetime] = None
    metrics: Optional[MetricsSnapshot] = None


class RecentAnalysis(BaseModel):
    repository_id: str
    owner: str
    name: str
    full_name: str
    analyzed_at: Optional[datetime] = None
    metrics: Optional[MetricsSnapshot] = None


class BulkStatusResponse(BaseModel):
    status_map: Dict[str, RepositoryAnalysisStatus] = Field(default_factory=dict)
    recently_analyzed: List[RecentAnalysis] = Field(default_factory=list)


class RegenerateSummaryRequest(BaseModel):
    analysis_id: str = ""


class RegenerateSummaryResponse(BaseModel):
    analysis_id: str
    summary: str
    provider: Optional[str] = None
