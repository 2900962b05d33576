# =============================================================================
# Error Taxonomy
# =============================================================================
#
#   AdvisorError
#   ├── DataFetchError          — network failure, timeout, non-success upstream
#   ├── PayloadValidationError  — upstream answered, but the payload is malformed
#   └── SchemaError             — the final response breaks the output contract
#
# "Not found" is never an exception: lookups return None or an empty list.
# Per-item fetch failures are caught by the orchestrator and turned into
# missing data; SchemaError is caught by the assembler and turned into the
# fallback response.
# =============================================================================

from __future__ import annotations


class AdvisorError(Exception):
    """Base class for all advisor errors."""


class DataFetchError(AdvisorError):
    """An upstream market data call failed or timed out."""

    def __init__(
        self,
        message: str,
        symbol: str | None = None,
        endpoint: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.symbol = symbol
        self.endpoint = endpoint
        self.status_code = status_code


class PayloadValidationError(AdvisorError):
    """An upstream payload is missing the fields needed to interpret it."""

    def __init__(self, message: str, payload: object | None = None) -> None:
        super().__init__(message)
        self.payload = payload


class SchemaError(AdvisorError):
    """The assembled chat response does not satisfy the response schema."""
