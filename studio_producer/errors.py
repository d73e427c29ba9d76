"""Exception taxonomy for the production pipeline.

Transient failures are retried by the recovery policy; precondition failures
and aborts are never retried.
"""

from typing import Optional

import httpx
import openai


class StudioError(Exception):
    """Base class for every pipeline error."""


class SessionNotFoundError(StudioError, KeyError):
    """Raised when a session id is not present in the session store."""

    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self):
        return f"Session not found: {self.session_id}"


class MissingSessionError(StudioError):
    """A stage that needs an existing session was invoked without one."""

    def __init__(self, stage: str):
        super().__init__(
            f"Subagent '{stage}' requires a sessionId from prior stages. Cannot proceed without it."
        )
        self.stage = stage


class StageIterationsExceededError(StudioError):
    """The reasoning loop spent its iteration budget without a completion signal."""

    def __init__(self, stage: str, max_iterations: int):
        super().__init__(f"{stage} exceeded maximum iterations ({max_iterations})")
        self.stage = stage
        self.max_iterations = max_iterations


class StageFailedError(StudioError):
    """A stage finished its loop but did not produce what it is responsible for."""


class ToolUnavailableError(StudioError):
    """A tool name was requested that is not bound for the current stage."""

    def __init__(self, tool_name: str, environment_limited: bool = False):
        if environment_limited:
            msg = f'Tool "{tool_name}" is not available in the current environment.'
        else:
            msg = f'Tool "{tool_name}" is not a known tool.'
        super().__init__(msg)
        self.tool_name = tool_name
        self.environment_limited = environment_limited


class ProductionAbort(StudioError):
    """Base for errors that must stop the whole run.

    The reasoning loop never absorbs these into a tool result.
    """


class StageAbortedError(ProductionAbort):
    """A non-degradable stage failed after exhausting its retries."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"Stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause


TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}

_TRANSIENT_MARKERS = (
    "timeout", "timed out", "rate limit", "network", "econnreset",
    "connection", "temporarily unavailable", "overloaded",
)


def _status_code(error: BaseException) -> Optional[int]:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return getattr(error, "status_code", None)


def classify_error(error: BaseException) -> str:
    """Return 'transient', 'recoverable' or 'fatal' for an exception."""
    if isinstance(error, (MissingSessionError, ProductionAbort)):
        return "fatal"
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return "fatal"
    if isinstance(error, (ConnectionError, TimeoutError, httpx.TransportError,
                          openai.APIConnectionError, openai.APITimeoutError,
                          openai.RateLimitError, openai.InternalServerError)):
        return "transient"
    status = _status_code(error)
    if status in TRANSIENT_STATUS_CODES:
        return "transient"
    if status in (401, 403):
        return "fatal"
    message = str(error).lower()
    if any(marker in message for marker in _TRANSIENT_MARKERS):
        return "transient"
    return "recoverable"
