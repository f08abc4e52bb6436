"""
Goal: Pydantic models for the token endpoint and drained command results.
We keep them boring on purpose so they're stable contracts.
"""
from typing import Any, List, Optional

from pydantic import BaseModel


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int = 3600
    refresh_token: Optional[str] = None
    scope: Optional[str] = None


class DrainedResult(BaseModel):
    command: str
    data: Optional[Any] = None
    errors: List[str] = []
