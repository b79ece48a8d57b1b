from nftickr.engine.fallback import add_months, generate_fallback_predictions
from nftickr.engine.json_extract import extract_json_object, find_balanced_object

__all__ = [
    "add_months",
    "extract_json_object",
    "find_balanced_object",
    "generate_fallback_predictions",
]
