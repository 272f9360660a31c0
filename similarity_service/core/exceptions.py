"""Service exceptions and their HTTP status codes."""


class SimilarityServiceError(Exception):
    """Base error for the similarity service."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(SimilarityServiceError):
    """Requested document, record or job does not exist."""
    status_code = 404


class ValidationError(SimilarityServiceError):
    """Input cannot be processed, e.g. a document with nothing to embed."""
    status_code = 422


class ConflictError(SimilarityServiceError):
    """State transition not allowed, e.g. deciding an already processed record."""
    status_code = 409


class QueueFullError(SimilarityServiceError):
    """Work queue is at capacity; callers should retry later."""
    status_code = 429


class QueueClosedError(SimilarityServiceError):
    """Work queue has been shut down."""
    status_code = 503
