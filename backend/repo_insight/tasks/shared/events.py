"""
Shared event publishing utilities for real-time analysis progress.

Events are published to a per-analysis Redis pub/sub channel and relayed to
browsers by the SSE endpoint. Publishing is fire-and-forget: a failure is
logged and never affects the analysis.
"""

import json
import logging
from typing import Any, Dict, Optional

from repo_insight.core.redis import get_redis

logger = logging.getLogger(__name__)

PROGRESS_EVENT = "analysis-progress"
FILE_STATUS_EVENT = "file-status"
COMPLETE_EVENT = "analysis-complete"
ERROR_EVENT = "analysis-error"

TERMINAL_EVENTS = (COMPLETE_EVENT, ERROR_EVENT)


def analysis_channel(analysis_id: str) -> str:
    return f"repo-analysis-{analysis_id}"


def complete_payload(duration: Optional[int], metrics: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "step": "completed",
        "message": "Analysis completed successfully",
        "progress": 100,
        "duration": duration,
        "metrics": metrics,
    }


def error_payload(error: str) -> Dict[str, Any]:
    return {
        "step": "error",
        "message": f"Analysis failed: {error}",
        "progress": -1,
        "error": error,
    }


def publish_event(channel: str, event_type: str, payload: Dict[str, Any]) -> bool:
    """
    Publish an event to a Redis channel.

    Args:
        channel: Pub/sub channel name
        event_type: Event type (e.g., "analysis-progress")
        payload: Event payload data

    Returns:
        True if published successfully, False otherwise
    """
    try:
        message = json.dumps({"type": event_type, "payload": payload}, default=str)
        get_redis().publish(channel, message)
        return True
    except Exception as e:
        logger.error(f"Failed to publish event {event_type} on {channel}: {e}")
        return False


class AnalysisProgressReporter:
    """
    Publishes progress events for one analysis.

    Progress never goes backwards: a lower value than the last one published
    is raised to it. The terminal error event always carries -1.
    """

    def __init__(self, analysis_id: str):
        self.analysis_id = analysis_id
        self.channel = analysis_channel(analysis_id)
        self._last_progress = 0

    def progress(self, step: str, message: str, progress: int) -> bool:
        progress = max(self._last_progress, min(100, progress))
        self._last_progress = progress
        return publish_event(
            self.channel,
            PROGRESS_EVENT,
            {"step": step, "message": message, "progress": progress},
        )

    def file_status(self, file: str, status: str, message: Optional[str] = None) -> bool:
        return publish_event(
            self.channel,
            FILE_STATUS_EVENT,
            {
                "step": "file-processing",
                "file": file,
                "message": message or f"{file}: {status}",
                "status": status,
            },
        )

    def complete(self, duration: int, metrics: Dict[str, Any]) -> bool:
        self._last_progress = 100
        return publish_event(self.channel, COMPLETE_EVENT, complete_payload(duration, metrics))

    def error(self, error: str) -> bool:
        return publish_event(self.channel, ERROR_EVENT, error_payload(error))
