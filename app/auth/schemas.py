from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CurrentUser(BaseModel):
    """Caller identity resolved from the bearer token."""

    id: UUID
    role: str
    full_name: Optional[str] = None
    permissions: Dict[str, Dict[str, bool]] = Field(default_factory=dict)
