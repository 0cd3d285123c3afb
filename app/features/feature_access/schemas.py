"""
Pydantic schemas for feature access requests and responses.
"""
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, StrictBool, create_model

from app.features.feature_access.catalog import FEATURE_KEYS


class FeatureNode(BaseModel):
    """One entry of the navigation tree."""
    title: str
    enabled: bool
    path: str
    children: List["FeatureNode"] = Field(default_factory=list)


class FeatureAccessResponse(BaseModel):
    """Envelope shared by every feature access endpoint."""
    success: bool
    message: str
    data: Optional[List[FeatureNode]] = None
    error: Optional[Any] = None


# Request body for grant updates: every catalog key is an optional strict
# boolean, anything else is rejected with 400.
FeatureFlagsUpdate = create_model(
    "FeatureFlagsUpdate",
    __config__=ConfigDict(extra="forbid"),
    **{key: (Optional[StrictBool], None) for key in FEATURE_KEYS},
)
