from .analysis import (
    AnalysisListRequest,
    AnalysisListResponse,
    AnalysisLookupResponse,
    AnalysisResponse,
    AnalysisStatusStats,
    AnalyzeRequest,
    AnalyzeResponse,
    BulkStatusRequest,
    BulkStatusResponse,
    MetricsSnapshot,
    RecentAnalysis,
    RegenerateSummaryRequest,
    RegenerateSummaryResponse,
    RepositoryAnalysisStatus,
    RepositoryRef,
)
from .git_history import ContributorResponse, GitHistoryResponse

__all__ = [
    # Analysis
    "AnalyzeRequest",
    "AnalyzeResponse",
    "AnalysisResponse",
    "AnalysisLookupResponse",
    "AnalysisListRequest",
    "AnalysisListResponse",
    "AnalysisStatusStats",
    "RepositoryRef",
    "BulkStatusRequest",
    "BulkStatusResponse",
    "MetricsSnapshot",
    "RepositoryAnalysisStatus",
    "RecentAnalysis",
    "RegenerateSummaryRequest",
    "RegenerateSummaryResponse",
    # Git history
    "ContributorResponse",
    "GitHistoryResponse",
]
