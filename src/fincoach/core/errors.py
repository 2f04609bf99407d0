"""
Error types shared across the service layer.

External-call failures are classified by message content so that logs
and the failure log can distinguish rate limiting, timeouts and network
trouble from generic provider errors.
"""
from __future__ import annotations

import asyncio
import enum
from typing import Iterable, List

import httpx


class ConfigurationError(RuntimeError):
    """Required configuration is missing; no fallback content is produced."""

    code = "CONFIGURATION_ERROR"

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing: List[str] = list(missing)
        super().__init__(f"Missing required configuration: {', '.join(self.missing)}")


class NotebookStateError(RuntimeError):
    """An operation is not allowed in the notebook's current lifecycle state."""


class NotebookConflictError(RuntimeError):
    """The stored notebook revision is newer than the one being saved."""

    def __init__(self, notebook_id: str, stored_revision: int, local_revision: int) -> None:
        self.notebook_id = notebook_id
        self.stored_revision = stored_revision
        self.local_revision = local_revision
        super().__init__(
            f"Notebook {notebook_id} was saved elsewhere "
            f"(stored revision {stored_revision}, local revision {local_revision})"
        )


class ReportGenerationError(RuntimeError):
    """The report-generation capability failed or returned unusable output."""


class UnknownPersonaError(KeyError):
    """No persona is registered under the requested therapist id."""


class ErrorCategory(str, enum.Enum):
    """Observability buckets for external-call failures."""

    rate_limit = "rate_limit"
    timeout = "timeout"
    network = "network"
    api = "api"


def classify_error(exc: BaseException) -> ErrorCategory:
    """Bucket an external-call failure by its type and message."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return ErrorCategory.timeout
    if isinstance(exc, httpx.NetworkError):
        return ErrorCategory.network
    message = str(exc).lower()
    if "rate limit" in message or "ratelimit" in message or "429" in message or "too many requests" in message:
        return ErrorCategory.rate_limit
    if "timeout" in message or "timed out" in message:
        return ErrorCategory.timeout
    if "network" in message or "connection" in message:
        return ErrorCategory.network
    return ErrorCategory.api
