"""
Tracing Context - Thread-safe context management for distributed tracing.

Keeps correlation data for the current API request or Celery task in
contextvars so that JSONFormatter can attach it to every log record.

Usage:
    TracingContext.set(
        correlation_id="abc-123",
        analysis_id="665f...",
        repo="octocat/hello-world",
        task_name="run_repository_analysis",
    )

    prefix = TracingContext.get_log_prefix()  # "[corr=abc-123]"

    TracingContext.clear()
"""

import uuid
from contextvars import ContextVar
from typing import Dict

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
_analysis_id: ContextVar[str] = ContextVar("analysis_id", default="")
_repo: ContextVar[str] = ContextVar("repo", default="")
_task_name: ContextVar[str] = ContextVar("task_name", default="")


class TracingContext:
    """Thread-safe tracing context for distributed tracing."""

    @staticmethod
    def set(
        correlation_id: str = "",
        analysis_id: str = "",
        repo: str = "",
        task_name: str = "",
    ) -> None:
        """Set tracing context for current execution."""
        if correlation_id:
            _correlation_id.set(correlation_id)
        if analysis_id:
            _analysis_id.set(analysis_id)
        if repo:
            _repo.set(repo)
        if task_name:
            _task_name.set(task_name)

    @staticmethod
    def get() -> Dict[str, str]:
        """Get current tracing context as dict."""
        return {
            "correlation_id": _correlation_id.get(),
            "analysis_id": _analysis_id.get(),
            "repo": _repo.get(),
            "task_name": _task_name.get(),
        }

    @staticmethod
    def get_correlation_id() -> str:
        return _correlation_id.get()

    @staticmethod
    def get_or_create_correlation_id() -> str:
        """Get current correlation ID or create a new one."""
        corr_id = _correlation_id.get()
        if not corr_id:
            corr_id = str(uuid.uuid4())
            _correlation_id.set(corr_id)
        return corr_id

    @staticmethod
    def get_log_prefix() -> str:
        """Get a formatted prefix for manual logging."""
        corr_id = _correlation_id.get()
        if corr_id:
            return f"[corr={corr_id[:8]}]"
        return ""

    @staticmethod
    def clear() -> None:
        """Clear all tracing context."""
        _correlation_id.set("")
        _analysis_id.set("")
        _repo.set("")
        _task_name.set("")
