"""
Commit History API - cached commits, branches and contributor stats.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from repo_insight.database.mongo import get_db
from repo_insight.dtos.git_history import GitHistoryResponse
from repo_insight.middleware.auth import get_current_user_id
from repo_insight.middleware.error_codes import to_http_exception
from repo_insight.services.git_history_service import GitHistoryService
from repo_insight.services.github.exceptions import GithubError

router = APIRouter(prefix="/github/git", tags=["Git History"])


@router.get("/commits", response_model=GitHistoryResponse)
def get_commits(
    owner: str = Query(..., min_length=1),
    repo: str = Query(..., min_length=1),
    branch: str = Query("main"),
    per_page: int = Query(30, ge=1, le=100),
    since: Optional[str] = Query(None, description="ISO 8601 timestamp"),
    force_refresh: bool = Query(False),
    db: Database = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Commit history for a branch.

    Served from Redis (30 min), then MongoDB (6 h), then GitHub.
    ``force_refresh`` always goes to GitHub and rewrites both cache tiers.
    """
    # sync: GitHub calls block, so this runs in the threadpool
    service = GitHistoryService(db)
    try:
        return service.get_history(
            owner,
            repo,
            branch=branch,
            per_page=per_page,
            since=since,
            force_refresh=force_refresh,
        )
    except GithubError as e:
        raise to_http_exception(e)
