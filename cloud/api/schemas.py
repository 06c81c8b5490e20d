from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class PredictionResponse(BaseModel):
    prediction: str = Field(..., min_length=1, description="Label assigned by the classifier")


class DetailRecord(BaseModel):
    """Reference information for a detail-bearing prediction label."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(..., alias="diseaseName")
    description: str
    image_url: str | None = Field(default=None, alias="imageURL")
    symptoms: List[str] = Field(default_factory=list)
    treatments: List[str] = Field(default_factory=list)
    prevention_tips: List[str] = Field(default_factory=list, alias="preventionTips")
    created_at: datetime = Field(..., alias="createdAt")


__all__ = ["PredictionResponse", "DetailRecord"]
