"""Domain exceptions for the streaming analysis engine.

Each exception carries a stable `error_code`. The code travels on `error`
chunks so consumers and dashboards can tell provider failures apart from
unusable model output without parsing messages.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, eq=False)
class AnalysisStreamError(Exception):
    """Base class for analysis streaming errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class ProviderError(AnalysisStreamError):
    """Transport, auth, or quota failure reported by the LLM provider."""

    def __init__(self, message: str = "LLM provider request failed") -> None:
        super().__init__(message=message, error_code="provider_error")


class ProviderConfigurationError(AnalysisStreamError):
    """No usable provider could be built from the current configuration."""

    def __init__(self, message: str = "LLM provider is not configured") -> None:
        super().__init__(message=message, error_code="provider_config")


class MalformedOutputError(AnalysisStreamError):
    """The provider finished but its output is not a valid analysis."""

    def __init__(self, message: str = "Model output is not valid JSON") -> None:
        super().__init__(message=message, error_code="malformed_output")


class CheckpointStoreError(AnalysisStreamError):
    def __init__(self, message: str = "Checkpoint store operation failed") -> None:
        super().__init__(message=message, error_code="checkpoint_failed")


class PayloadTooLargeError(AnalysisStreamError):
    """The finished analysis does not fit in one wire frame."""

    def __init__(self, message: str = "Analysis result exceeds the frame size limit") -> None:
        super().__init__(message=message, error_code="payload_too_large")
