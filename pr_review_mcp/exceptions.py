"""Exceptions raised by the review pipeline."""


class ReviewError(Exception):
    """Base class for review pipeline errors."""
    pass


class AgentTransportError(ReviewError):
    """Raised when a review agent call cannot start, communicate, or exits non-zero."""
    pass


class AgentTimeoutError(ReviewError):
    """Raised when a review agent call exceeds its deadline."""

    def __init__(self, agent: str, timeout: float):
        self.agent = agent
        self.timeout = timeout
        super().__init__(f"Review timed out after {timeout:g}s")


class ResultParseError(ReviewError):
    """Raised when an agent's output carries no usable JSON payload."""

    def __init__(self, message: str, raw: str = ""):
        self.raw = raw
        super().__init__(message)


class MutationError(ReviewError):
    """Raised when a fix target is missing or cannot be backed up."""
    pass


class PublishError(ReviewError):
    """Raised when commit, push, or comment publication fails."""
    pass


class SetupError(ReviewError):
    """Raised when the run workspace cannot be prepared (clone failure, etc.)."""
    pass
