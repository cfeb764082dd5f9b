"""DTOs for the commit history API."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ContributorResponse(BaseModel):
    name: str
    commits: int
    login: Optional[str] = None
    avatar_url: Optional[str] = None


class GitHistoryResponse(BaseModel):
    commits: List[Dict[str, Any]] = Field(default_factory=list)
    branches: List[Dict[str, Any]] = Field(default_factory=list)
    repository: str
    branch: str
    default_branch: Optional[str] = None
    count: int = 0
    contributors: List[ContributorResponse] = Field(default_factory=list)
    daily_commits: Dict[str, int] = Field(default_factory=dict)
    trend: int = 0
    fetched_at: Optional[datetime] = None
    cached: bool = False
    source: str  # redis | database | github
