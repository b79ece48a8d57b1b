"""
Raw payload builders and constants shared by the test modules.
"""

from __future__ import annotations

import json
from datetime import date
from typing import Any

import httpx

OPENSEA_URL = "https://opensea.test/api/v1"
GEMINI_URL = "https://gemini.test/v1beta"
GEMINI_TEXT_MODEL = "gemini-pro"
GEMINI_VISION_MODEL = "gemini-pro-vision"
GEMINI_TEXT_URL = f"{GEMINI_URL}/models/{GEMINI_TEXT_MODEL}:generateContent"
GEMINI_VISION_URL = f"{GEMINI_URL}/models/{GEMINI_VISION_MODEL}:generateContent"

PUNKS_CONTRACT = "0xb47e3cd837ddf8e4c57f05d70ab865de6e193bbb"
FIXED_TODAY = date(2024, 1, 15)


def wei(eth: str) -> str:
    """ETH amount as a base-unit (wei) string, e.g. "45.2" -> "45200000000000000000"."""
    whole, _, frac = eth.partition(".")
    frac = (frac + "0" * 18)[:18]
    return str(int(whole) * 10**18 + int(frac))


def make_raw_asset(
    token_id: str = "7804",
    name: str | None = "CryptoPunk #7804",
    collection_name: str = "CryptoPunks",
    slug: str = "cryptopunks",
    contract: str = PUNKS_CONTRACT,
    last_sale_eth: str | None = "45.2",
    floor_price: float | None = 40.0,
    **overrides: Any,
) -> dict[str, Any]:
    """A v1 /asset payload with the fields NFTickr reads."""
    raw: dict[str, Any] = {
        "id": 12345,
        "token_id": token_id,
        "name": name,
        "description": "Alien punk with cap and pipe.",
        "image_url": f"https://img.test/{token_id}.png",
        "image_preview_url": f"https://img.test/{token_id}-preview.png",
        "image_original_url": f"https://img.test/{token_id}-original.png",
        "permalink": f"https://opensea.io/assets/ethereum/{contract}/{token_id}",
        "asset_contract": {"address": contract, "name": collection_name},
        "collection": {
            "name": collection_name,
            "slug": slug,
            "stats": {
                "floor_price": floor_price,
                "num_owners": 3500,
                "total_supply": 10000,
                "total_volume": 1_000_000.5,
            },
        },
        "traits": [
            {"trait_type": "Type", "value": "Alien", "trait_count": 9},
            {"trait_type": "Accessory", "value": "Cap Forward", "trait_count": 254},
            {"trait_type": "Accessory", "value": "Pipe", "trait_count": 317},
        ],
        "last_sale": None,
    }
    if last_sale_eth is not None:
        raw["last_sale"] = {
            "total_price": wei(last_sale_eth),
            "event_timestamp": "2023-12-01T10:00:00",
            "payment_token": {"symbol": "ETH", "decimals": 18},
        }
    raw.update(overrides)
    return raw


def gemini_text_response(text: str) -> dict[str, Any]:
    """Wrap model text in the generateContent envelope."""
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def gemini_json_response(payload: dict[str, Any], prose: str = "") -> dict[str, Any]:
    return gemini_text_response(f"{prose}{json.dumps(payload)}")


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)

