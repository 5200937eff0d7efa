"""Database models / type definitions.

These mirror the Supabase tables for type safety in Python code.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class PromptTemplateRow(BaseModel):
    """Row from the ai_prompt_templates table."""

    id: UUID
    name: str
    version: int
    body: str
    is_active: bool
    author: str = "system"
    created_at: datetime
