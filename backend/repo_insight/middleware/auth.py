"""
Caller identity.

Authentication happens upstream; the gateway forwards the authenticated user
id in the ``X-User-Id`` header.
"""

from typing import Optional

from fastapi import Header, HTTPException, status


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return x_user_id
