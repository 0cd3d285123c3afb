"""
Pydantic schemas for the authenticated caller.
"""
from pydantic import BaseModel, ConfigDict

from app.features.users.models import UserRole


class Principal(BaseModel):
    """Identity resolved from the bearer token: who is calling and in which role."""
    id: str
    role: UserRole

    model_config = ConfigDict(frozen=True)
