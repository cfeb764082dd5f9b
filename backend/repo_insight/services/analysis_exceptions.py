"""Custom exceptions for repository analysis."""
from __future__ import annotations


class AnalysisError(Exception):
    """Base exception for analysis failures."""


class AnalysisValidationError(AnalysisError):
    """Raised when an analysis request is missing required fields."""


class AnalysisNotFoundError(AnalysisError):
    """Raised when no analysis matches the lookup."""


class AnalysisAccessDenied(AnalysisError):
    """Raised when an analysis belongs to another user."""


class AnalysisConflictError(AnalysisError):
    """Raised when a concurrent request holds the repository's active lock."""


class AnalysisLeaseLostError(AnalysisError):
    """Raised when a runner writes to a job it no longer owns."""
    def __init__(self, analysis_id: str, message: str | None = None):
        super().__init__(message or f"Lease lost for analysis {analysis_id}")
        self.analysis_id = analysis_id
