"""
Models package - export all domain models.
"""

from nftickr.models.asset import AssetRecord, CollectionStats, Trait
from nftickr.models.prediction import (
    AnalysisResult,
    ImageAnalysis,
    PredictionRequest,
    PricePoint,
)

__all__ = [
    "AnalysisResult",
    "AssetRecord",
    "CollectionStats",
    "ImageAnalysis",
    "PredictionRequest",
    "PricePoint",
    "Trait",
]
