"""
Caller-side analysis state: an in-flight latch, the last result and the last
error message. One session per form/chat; sessions never share state.
"""

from __future__ import annotations

from typing import Awaitable, Callable

import structlog

from nftickr.analysis.analyzer import NFTAnalyzer
from nftickr.errors import AnalysisError, AnalysisInProgressError
from nftickr.models import AnalysisResult

logger = structlog.get_logger(__name__)


class AnalysisSession:
    """
    Wraps an NFTAnalyzer for one consumer.

    Starting an analysis clears the previous result and error. While one is
    in flight, a second submission raises AnalysisInProgressError. The latch
    is released on success, failure or cancellation.
    """

    def __init__(self, analyzer: NFTAnalyzer) -> None:
        self._analyzer = analyzer
        self.is_loading = False
        self.result: AnalysisResult | None = None
        self.error: str | None = None

    async def analyze_by_name(self, query: str) -> AnalysisResult:
        return await self._run(lambda: self._analyzer.analyze_by_name(query))

    async def analyze_by_image(self, image: bytes) -> AnalysisResult:
        return await self._run(lambda: self._analyzer.analyze_by_image(image))

    async def analyze_by_url(self, url: str) -> AnalysisResult:
        return await self._run(lambda: self._analyzer.analyze_by_url(url))

    async def analyze_by_contract(self, contract_address: str, token_id: str) -> AnalysisResult:
        return await self._run(
            lambda: self._analyzer.analyze_by_contract(contract_address, token_id)
        )

    def clear(self) -> None:
        """Forget the last result and error."""
        self.result = None
        self.error = None

    async def _run(self, run: Callable[[], Awaitable[AnalysisResult]]) -> AnalysisResult:
        if self.is_loading:
            raise AnalysisInProgressError()

        self.is_loading = True
        self.clear()
        try:
            self.result = await run()
            return self.result
        except AnalysisError as e:
            self.error = e.message
            raise
        finally:
            self.is_loading = False
