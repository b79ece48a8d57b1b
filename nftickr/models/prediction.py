"""
Prediction pipeline shapes: price points, the prediction request bundle,
image identification output and the final analysis result.
"""

from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, Field, field_validator

from nftickr.models.asset import AssetRecord, CollectionStats, Trait


class PricePoint(BaseModel):
    """
    One historical or predicted price observation.

    Historical points carry no confidence. Predicted points always do, and
    out-of-range confidence values are clamped into [0, 1] rather than rejected.
    """

    date: dt.date
    price: float = Field(..., ge=0)
    confidence: float | None = None
    factors: list[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float | None:
        if v is None:
            return None
        return min(1.0, max(0.0, float(v)))


class PredictionRequest(BaseModel):
    """Input bundle for GeminiClient.generate_price_predictions()."""

    nft_name: str
    current_price: float = 0.0
    historical_prices: list[PricePoint] = Field(default_factory=list)
    collection_stats: CollectionStats = Field(default_factory=CollectionStats)
    traits: list[Trait] = Field(default_factory=list)


class ImageAnalysis(BaseModel):
    """What the vision model thinks an uploaded image shows."""

    name: str
    traits: list[str] = Field(default_factory=list)
    description: str = ""


class AnalysisResult(BaseModel):
    """Output of one successful analyze operation. Never persisted."""

    name: str
    collection: str
    current_price: float
    image: str
    predictions: list[PricePoint] = Field(..., min_length=1)

    # Enrichment carried along for richer presentation
    asset: AssetRecord | None = None
    collection_stats: CollectionStats = Field(default_factory=CollectionStats)
    historical_prices: list[PricePoint] = Field(default_factory=list)
