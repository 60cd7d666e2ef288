class EngineError(Exception):
    """Base exception for the version engine.

    Each subclass carries the error code and HTTP status used by the API layer.
    """

    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(EngineError):
    """Raised when a referenced entity does not exist."""

    code = "NOT_FOUND"
    http_status = 404


class InvalidStateError(EngineError):
    """Raised when an operation is illegal given the entity's current status."""

    code = "INVALID_STATE"
    http_status = 409


class InvalidRequestError(EngineError):
    """Raised for malformed input or a dangling foreign id."""

    code = "INVALID_REQUEST"
    http_status = 400


class ProviderFailureError(EngineError):
    """Raised when the generative or rendering backend fails."""

    code = "PROVIDER_FAILURE"
    http_status = 502


class ProviderTimeoutError(ProviderFailureError):
    """Raised when a provider call exceeds its time budget."""

    def __init__(self, provider: str, timeout_seconds: float):
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{provider} timed out after {timeout_seconds:g} seconds")


class MalformedProviderResponseError(ProviderFailureError):
    """Raised when a provider answers with something that is not usable content."""

    pass


class InternalError(EngineError):
    """Raised on invariant violations."""

    pass


class ProposalNotReadyError(NotFoundError):
    """Raised when a proposal is requested for a job that has not completed."""

    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Job {job_id} is {status}; no proposal yet")


class ProposalMissingError(InternalError):
    """Raised when a completed job has no proposal attached."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is completed but has no proposal")
