"""
NFTickr - One-off Analysis Script

Runs a single analysis against the live APIs and prints the result as JSON.
Handy for checking API keys and prompt output without starting the bot.

Usage:
    python scripts/analyze_nft.py --name "CryptoPunks #7804"
    python scripts/analyze_nft.py --url https://opensea.io/assets/ethereum/0x.../1234
    python scripts/analyze_nft.py --contract 0xb47e3cd837ddf8e4c57f05d70ab865de6e193bbb --token-id 7804
    python scripts/analyze_nft.py --image ./punk.png
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nftickr.analysis import NFTAnalyzer
from nftickr.config import settings, validate_api_keys
from nftickr.errors import AnalysisError
from nftickr.main import configure_logging
from nftickr.models import AnalysisResult
from nftickr.pipeline.gemini import GeminiClient
from nftickr.pipeline.opensea import OpenSeaClient


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Analyze one NFT and print the price predictions as JSON.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/analyze_nft.py --name "CryptoPunks #7804"
  python scripts/analyze_nft.py --contract 0xbc4ca0eda7647a8ab7c2061c2e118a18a936f13d --token-id 1234
""",
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--name", type=str, help="Free-text NFT name or collection.")
    target.add_argument("--url", type=str, help="OpenSea asset URL.")
    target.add_argument("--contract", type=str, help="Contract address (requires --token-id).")
    target.add_argument("--image", type=Path, help="Path to an NFT image file.")
    parser.add_argument("--token-id", type=str, default=None, help="Token ID for --contract.")

    args = parser.parse_args()
    if args.contract and not args.token_id:
        parser.error("--contract requires --token-id")
    return args


async def run(args: argparse.Namespace) -> AnalysisResult:
    async with OpenSeaClient() as opensea, GeminiClient() as gemini:
        analyzer = NFTAnalyzer(opensea, gemini)
        if args.name:
            return await analyzer.analyze_by_name(args.name)
        if args.url:
            return await analyzer.analyze_by_url(args.url)
        if args.contract:
            return await analyzer.analyze_by_contract(args.contract, args.token_id)
        return await analyzer.analyze_by_image(args.image.read_bytes())


def main() -> int:
    args = parse_args()
    configure_logging(log_level=settings.LOG_LEVEL)
    validate_api_keys()

    try:
        result = asyncio.run(run(args))
    except AnalysisError as e:
        print(f"ERROR: {e.message}", file=sys.stderr)
        return 1

    print(result.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
