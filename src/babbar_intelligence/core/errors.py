"""Exception taxonomy for provider access and composite pipelines.

Transport errors are raised by the Babbar client and bubble to the caller of
a single operation. Pipelines wrap stage-level failures so that only a
critical stage aborts a composite analysis.
"""

from __future__ import annotations

from typing import Optional

SUPPORT_CONTACT = "support@babbar.tech"


class BabbarError(Exception):
    """Base error for everything raised while talking to the Babbar API."""

    def __init__(self, message: str, status_code: Optional[int] = None, endpoint: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class AuthError(BabbarError):
    """Missing or invalid API key. Never retried."""


class RateLimitError(BabbarError):
    """Provider kept signalling rate limiting after every allowed retry."""


class BadRequestError(BabbarError):
    """Provider rejected the parameters (HTTP 400)."""


class NotFoundError(BabbarError):
    """Unknown endpoint path (HTTP 404)."""


class UnknownTransportError(BabbarError):
    """Any other failure: unexpected status, network error, timeout, bad body."""


class PipelineStageError(Exception):
    """A non-critical stage of a composite pipeline failed.

    Never raised to tool callers; carried inside a degraded ``StageResult``.
    """

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage} failed: {cause}")
        self.stage = stage
        self.cause = cause


class PipelineError(Exception):
    """A critical pipeline stage failed and the analysis cannot continue."""

    def __init__(self, pipeline: str, stage: str, cause: BaseException):
        super().__init__(f"{pipeline} failed during {stage}: {cause}")
        self.pipeline = pipeline
        self.stage = stage
        self.cause = cause


class PerItemError(Exception):
    """Failure of one item in a batch loop; recorded next to the item."""

    def __init__(self, item: object, cause: BaseException):
        super().__init__(str(cause))
        self.item = item
        self.cause = cause

    def to_dict(self) -> dict:
        return {"success": False, "error": str(self.cause)}
