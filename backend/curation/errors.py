"""
Error hierarchy for the curation pipeline.

Every error carries an HTTP status and a stable error code so the API layer
can render it without knowing the concrete type.
"""


class CurationError(Exception):
    """Base class for curation errors."""
    status_code: int = 400
    error_code: str = "CURATION_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidInputError(CurationError):
    """Malformed input rejected before processing."""
    status_code = 422
    error_code = "INVALID_INPUT"


class ConfigurationError(CurationError):
    """Invalid thresholds or curator settings."""
    status_code = 500
    error_code = "INVALID_CONFIGURATION"


class NotFoundError(CurationError):
    """Review item or watchlist entity not found."""
    status_code = 404
    error_code = "NOT_FOUND"


class DuplicateReviewError(CurationError):
    """An open review item already exists for this entity and article."""
    status_code = 409
    error_code = "DUPLICATE_REVIEW"

    def __init__(self, message: str, existing_id: str | None = None):
        super().__init__(message, {"existing_id": existing_id} if existing_id else None)
        self.existing_id = existing_id


class AlreadyResolvedError(CurationError):
    """Review item is already in a terminal state."""
    status_code = 409
    error_code = "ALREADY_RESOLVED"

    def __init__(self, message: str, item=None):
        details = None
        if item is not None:
            details = {
                "id": item.id,
                "status": item.status.value,
                "resolved_by": item.resolved_by,
                "resolved_at": item.resolved_at,
            }
        super().__init__(message, details)
        self.item = item


class CuratorError(CurationError):
    """The external curator could not produce a verdict."""
    status_code = 502
    error_code = "CURATOR_ERROR"


class CuratorTimeoutError(CuratorError):
    """Curator did not answer within the configured timeout."""
    error_code = "CURATOR_TIMEOUT"


class CuratorUnavailableError(CuratorError):
    """Transport or HTTP failure talking to the curator endpoint."""
    error_code = "CURATOR_UNAVAILABLE"


class CuratorParseError(CuratorError):
    """Curator answered but the response does not follow the grammar."""
    error_code = "CURATOR_UNPARSEABLE"


class StaleVersionError(CurationError):
    """Review item changed since the caller read it."""
    status_code = 409
    error_code = "STALE_VERSION"
