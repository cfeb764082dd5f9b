"""
SSE (Server-Sent Events) API for real-time analysis progress.

Relays the Redis pub/sub channel of one analysis to the browser and closes
the stream on the terminal complete/error event. An analysis that already
finished gets its terminal event replayed from the stored job instead.
"""

import asyncio
import json
import logging
from typing import AsyncGenerator, Callable, Optional, Tuple

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pymongo.database import Database

from repo_insight.config import settings
from repo_insight.database.mongo import get_db
from repo_insight.dtos.analysis import AnalysisResponse
from repo_insight.entities.analysis_job import AnalysisStatus
from repo_insight.middleware.auth import get_current_user_id
from repo_insight.middleware.error_codes import to_http_exception
from repo_insight.services.analysis_exceptions import AnalysisError
from repo_insight.services.analysis_service import AnalysisService
from repo_insight.tasks.shared.events import (
    COMPLETE_EVENT,
    ERROR_EVENT,
    TERMINAL_EVENTS,
    analysis_channel,
    complete_payload,
    error_payload,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["SSE"])

HEARTBEAT_SECONDS = 30.0


async def get_async_redis():
    """Get async Redis client."""
    return aioredis.from_url(settings.REDIS_URL)


def format_sse(data: dict, event: str | None = None) -> str:
    """Format data as SSE message."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data)}")
    lines.append("")  # Empty line to end message
    return "\n".join(lines) + "\n"


def terminal_event(analysis: AnalysisResponse) -> Optional[Tuple[str, dict]]:
    """The complete/error event matching a finished analysis, None while active."""
    if analysis.status == AnalysisStatus.COMPLETED.value:
        metrics = analysis.metrics
        summary = (
            {"files": metrics.file_count, "lines": metrics.total_lines, "size": metrics.total_size}
            if metrics
            else {}
        )
        return COMPLETE_EVENT, complete_payload(analysis.duration, summary)
    if analysis.status == AnalysisStatus.FAILED.value:
        return ERROR_EVENT, error_payload(analysis.error or "Unknown error")
    return None


async def sse_analysis_generator(
    analysis: AnalysisResponse,
    request: Request,
    reload_analysis: Callable[[], AnalysisResponse],
) -> AsyncGenerator[str, None]:
    """Stream progress events of one analysis until it completes or fails."""
    analysis_id = analysis.id
    channel = analysis_channel(analysis_id)
    logger.info(f"SSE analysis stream connected for {analysis_id}")

    yield format_sse(
        {
            "type": "connected",
            "analysis_id": analysis_id,
            "message": "Connected to analysis progress stream",
        }
    )

    finished = terminal_event(analysis)
    if finished:
        yield format_sse(finished[1], finished[0])
        return

    redis_client = await get_async_redis()
    pubsub = redis_client.pubsub()
    await pubsub.subscribe(channel)

    try:
        # The job may have finished before the subscription was in place
        finished = terminal_event(await run_in_threadpool(reload_analysis))
        if finished:
            yield format_sse(finished[1], finished[0])
            return

        while True:
            if await request.is_disconnected():
                break

            try:
                message = await asyncio.wait_for(
                    pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0),
                    timeout=HEARTBEAT_SECONDS,
                )
            except asyncio.TimeoutError:
                yield format_sse({"type": "heartbeat"})
                continue

            if not message:
                continue

            data = message.get("data")
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            if not data:
                continue

            try:
                event = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Failed to parse analysis event: {data}")
                continue

            event_type = event.get("type", "analysis-progress")
            yield format_sse(event.get("payload", {}), event_type)

            if event_type in TERMINAL_EVENTS:
                break

    except asyncio.CancelledError:
        logger.info(f"SSE analysis stream cancelled for {analysis_id}")
    except Exception as e:
        logger.error(f"SSE analysis error for {analysis_id}: {e}")
    finally:
        await pubsub.unsubscribe(channel)
        await redis_client.close()
        logger.info(f"SSE analysis disconnected for {analysis_id}")


@router.get("/sse/analysis/{analysis_id}")
async def sse_analysis_progress(
    analysis_id: str,
    request: Request,
    db: Database = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """SSE endpoint for the progress of one analysis."""
    service = AnalysisService(db)
    try:
        analysis = await run_in_threadpool(service.get_analysis, analysis_id, user_id)
    except AnalysisError as e:
        raise to_http_exception(e)

    return StreamingResponse(
        sse_analysis_generator(
            analysis, request, lambda: service.get_analysis(analysis_id, user_id)
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
