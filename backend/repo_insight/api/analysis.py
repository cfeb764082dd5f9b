"""
Repository Analysis API - start, poll and list repository analyses.

Follows layered architecture: API -> Service -> Repository
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pymongo.database import Database

from repo_insight.database.mongo import get_db
from repo_insight.dtos.analysis import (
    AnalysisListRequest,
    AnalysisListResponse,
    AnalysisLookupResponse,
    AnalysisResponse,
    AnalyzeRequest,
    AnalyzeResponse,
    BulkStatusRequest,
    BulkStatusResponse,
    RegenerateSummaryRequest,
    RegenerateSummaryResponse,
)
from repo_insight.middleware.auth import get_current_user_id
from repo_insight.middleware.error_codes import to_http_exception
from repo_insight.services.analysis_exceptions import AnalysisError
from repo_insight.services.analysis_service import AnalysisService

router = APIRouter(prefix="/repo", tags=["Repository Analysis"])


@router.post("/analyze", response_model=AnalyzeResponse)
def analyze_repository(
    payload: AnalyzeRequest,
    db: Database = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Start a repository analysis, or return a reusable one.

    A completed analysis younger than 24h is returned with ``cached=true``;
    an analysis still in progress is returned as is.
    """
    service = AnalysisService(db)
    try:
        return service.request_analysis(
            user_id=user_id,
            owner=payload.owner,
            name=payload.name,
            repository_id=payload.repository_id,
            branch=payload.branch,
            max_file_size=payload.max_file_size,
            max_files=payload.max_files,
            include_tests=payload.include_tests,
            include_docs=payload.include_docs,
            force_restart=payload.force_restart,
        )
    except AnalysisError as e:
        raise to_http_exception(e)


@router.get("/status", response_model=AnalysisLookupResponse)
def get_analysis_status(
    id: Optional[str] = Query(None, description="Analysis id"),
    owner: Optional[str] = Query(None),
    name: Optional[str] = Query(None),
    db: Database = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Look up an analysis by id, or the latest one for ``owner``/``name``."""
    service = AnalysisService(db)
    try:
        if id:
            return AnalysisLookupResponse(analysis=service.get_analysis(id, user_id))
        if owner and name:
            return service.get_latest_analysis(owner, name, user_id)
    except AnalysisError as e:
        raise to_http_exception(e)

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Either analysis id or owner+name parameters are required",
    )


@router.get("/status/{analysis_id}", response_model=AnalysisResponse)
def get_analysis(
    analysis_id: str,
    db: Database = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    service = AnalysisService(db)
    try:
        return service.get_analysis(analysis_id, user_id)
    except AnalysisError as e:
        raise to_http_exception(e)


@router.post("/status/list", response_model=AnalysisListResponse)
def list_analyses(
    payload: AnalysisListRequest,
    db: Database = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Recent analyses of the caller (without file index) plus per-status stats."""
    service = AnalysisService(db)
    return service.list_analyses(
        user_id, limit=payload.limit, repository_id=payload.repository_id
    )


@router.post("/bulk-status", response_model=BulkStatusResponse)
def bulk_status(
    payload: BulkStatusRequest,
    db: Database = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    service = AnalysisService(db)
    return service.bulk_status(user_id, payload.repositories)


@router.post("/regenerate-summary", response_model=RegenerateSummaryResponse)
def regenerate_summary(
    payload: RegenerateSummaryRequest,
    db: Database = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    # sync: the summarizer call blocks, so this runs in the threadpool
    service = AnalysisService(db)
    try:
        return service.regenerate_summary(payload.analysis_id, user_id)
    except AnalysisError as e:
        raise to_http_exception(e)
