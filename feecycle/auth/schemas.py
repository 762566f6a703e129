from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Actor resolved from the bearer token. Recorded as updated_by / processed_by on fee mutations."""

    id: UUID
    role: Optional[str] = None
