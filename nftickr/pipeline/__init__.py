from nftickr.pipeline.gemini import GeminiClient
from nftickr.pipeline.opensea import OpenSeaClient, format_asset_record, parse_opensea_url

__all__ = [
    "GeminiClient",
    "OpenSeaClient",
    "format_asset_record",
    "parse_opensea_url",
]
