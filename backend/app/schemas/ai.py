"""Pydantic schemas for AI helper endpoints."""
from pydantic import BaseModel, Field


class RewritePlainEnglishRequest(BaseModel):
    policy_text: str = Field(..., min_length=1, max_length=100_000)
