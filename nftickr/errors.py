"""
NFTickr - Error Taxonomy

Every failure the core can surface is an NFTickrError carrying one
human-readable sentence in `message`. Upstream HTTP failures are mapped onto
the taxonomy by raise_for_upstream() / network_error().
"""

from __future__ import annotations

import httpx


class NFTickrError(Exception):
    """Base class for all NFTickr failures."""

    default_message = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInputError(NFTickrError):
    """Malformed address, URL or missing required field. Raised before any network call."""

    default_message = "Invalid input."


class NotFoundError(NFTickrError):
    """Upstream reports no such resource, or a search came back empty."""

    default_message = "NFT not found. Please check the contract address and token ID."


class UnauthorizedError(NFTickrError):
    default_message = "Invalid API key. Please check your API configuration."


class RateLimitedError(NFTickrError):
    default_message = "Rate limit exceeded. Please try again in a moment."


class NetworkError(NFTickrError):
    """No response was received from the upstream service."""

    default_message = "Network error. Please check your internet connection."


class UpstreamError(NFTickrError):
    """Any other non-2xx response. Keeps status and body for diagnostics."""

    def __init__(self, status_code: int, body: str, service: str = "Upstream") -> None:
        self.status_code = status_code
        self.body = body
        self.service = service
        super().__init__(f"{service} API error: {status_code} - {body}")


class DecodeError(NFTickrError):
    """Model output could not be decoded. Absorbed by the prediction fallback."""

    default_message = "Unable to decode model response."


class AnalysisError(NFTickrError):
    """Terminal failure of one analyze operation, reduced to a single sentence."""

    default_message = "An error occurred during analysis"


class AnalysisInProgressError(NFTickrError):
    default_message = "An analysis is already in progress. Please wait for it to finish."


# ---------------------------------------------------------------------------
# HTTP mapping
# ---------------------------------------------------------------------------


def raise_for_upstream(response: httpx.Response, service: str) -> None:
    """
    Raise the taxonomy error matching a non-2xx response. No-op on success.

    404 -> NotFoundError, 429 -> RateLimitedError, 401 -> UnauthorizedError,
    anything else -> UpstreamError(status, body).
    """
    if response.is_success:
        return

    status = response.status_code
    if status == 404:
        raise NotFoundError()
    if status == 429:
        raise RateLimitedError()
    if status == 401:
        raise UnauthorizedError(
            f"Invalid API key. Please check your {service} API configuration."
        )
    raise UpstreamError(status, response.text, service=service)


def network_error(exc: httpx.RequestError) -> NetworkError:
    """Wrap a transport-level failure (no response received)."""
    error = NetworkError()
    error.__cause__ = exc
    return error
