"""Exception hierarchy for heliumai.

Session-level errors (what the orchestrator reports):
    - HeliumError (base)
        - ModelNotSelectedError: no model resolved before send
        - ConfigurationInvalidError: no provider/model resolvable at all
        - BackendUnavailableError: dispatch failed before any content arrived
        - StreamInterruptedError: dispatch failed after partial content
        - CancelledByUserError: explicit cancel, never shown to the user
        - ToolExecutionFailedError: one tool failed; recorded inline
        - SessionNotFoundError: cancel targeted an unknown/finished session
        - SessionInFlightError: send while another session is running
        - MaxToolIterationsError: agent loop did not converge

Backend-level errors (what a provider call raised, after classification):
    - BackendError (base, also a HeliumError)
        - TokenLimitError, RateLimitError, APIConnectionError,
          InvalidRequestError, AuthenticationError

Only RateLimitError and APIConnectionError are worth retrying.
"""


class HeliumError(Exception):
    """Base exception for heliumai."""

    pass


class ModelNotSelectedError(HeliumError):
    """Raised when a request is attempted without a selected model."""

    pass


class ConfigurationInvalidError(HeliumError):
    """Raised when configuration cannot produce any provider/model."""

    pass


class BackendUnavailableError(HeliumError):
    """Raised when the backend failed before delivering any content."""

    pass


class StreamInterruptedError(HeliumError):
    """Raised when the backend failed after partial content arrived."""

    def __init__(self, message: str, partial_content: str = ""):
        self.partial_content = partial_content
        super().__init__(message)


class CancelledByUserError(HeliumError):
    """Raised inside a session that the user cancelled."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} was cancelled by the user")


class ToolExecutionFailedError(HeliumError):
    """Raised by a tool executor when a single tool call fails."""

    def __init__(self, tool_name: str, reason: str):
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Tool '{tool_name}' failed: {reason}")


class SessionNotFoundError(HeliumError):
    """Raised when cancelling a session the backend no longer tracks."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SessionInFlightError(HeliumError):
    """Raised when a send is attempted while another session is active."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} is still in flight")


class MaxToolIterationsError(HeliumError):
    """Raised when the agent loop keeps requesting tools past its limit."""

    pass


class BackendError(HeliumError):
    """Base exception for classified provider errors."""

    pass


class TokenLimitError(BackendError):
    """Raised when token limit is exceeded."""

    pass


class RateLimitError(BackendError):
    """Raised when rate limit is hit."""

    pass


class APIConnectionError(BackendError):
    """Raised when there's a connection issue with the provider."""

    pass


class InvalidRequestError(BackendError):
    """Raised when the request is invalid (bad params, etc)."""

    pass


class AuthenticationError(BackendError):
    """Raised when authentication fails."""

    pass


_CLASSIFIERS: list[tuple[type[BackendError], str, tuple[str, ...]]] = [
    (
        TokenLimitError,
        "Token limit exceeded",
        ("context length", "token limit", "maximum context", "too many tokens", "context_length_exceeded"),
    ),
    (
        RateLimitError,
        "Rate limit hit",
        ("rate limit", "rate_limit", "too many requests", "quota exceeded", "resource exhausted", "throttled", "429"),
    ),
    (
        APIConnectionError,
        "Connection error",
        ("connection", "timeout", "timed out", "network", "unreachable", "refused", "503", "502", "504"),
    ),
    (
        AuthenticationError,
        "Authentication failed",
        ("unauthorized", "invalid api key", "authentication", "401", "403"),
    ),
    (
        InvalidRequestError,
        "Invalid request",
        ("invalid", "bad request", "400", "validation", "not found", "404"),
    ),
]


def classify_backend_error(error: Exception) -> BackendError:
    """Classify a provider exception into a BackendError subtype.

    The provider SDKs raise a zoo of exception types, so classification
    works on the message text, the same way for every provider.
    """
    if isinstance(error, BackendError):
        return error

    if isinstance(error, (ConnectionError, TimeoutError)):
        return APIConnectionError(f"Connection error: {error}")

    error_msg = str(error).lower()
    for error_type, label, keywords in _CLASSIFIERS:
        if any(keyword in error_msg for keyword in keywords):
            return error_type(f"{label}: {error}")

    return BackendError(f"Backend error ({type(error).__name__}): {error}")


def should_retry_error(error: Exception) -> bool:
    """Only transient failures (rate limits, connectivity) are retried."""
    return isinstance(error, (RateLimitError, APIConnectionError))
