"""NFTickr - Analysis layer (orchestrator + caller-side session state)"""

from nftickr.analysis.analyzer import NFTAnalyzer, encode_image
from nftickr.analysis.session import AnalysisSession

__all__ = ["AnalysisSession", "NFTAnalyzer", "encode_image"]
