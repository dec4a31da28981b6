"""Error taxonomy shared by the stores, the moderation pipeline and the API.

Each error carries a ``category`` the moderation surface uses to tell
"fix your input" from "retry" from "run diagnostics".
"""


class VitrineError(Exception):
    category = "internal"
    status_code = 500
    retryable = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(VitrineError):
    category = "validation"
    status_code = 422


class UnauthenticatedError(VitrineError):
    category = "auth"
    status_code = 401

    def __init__(self, message: str = "No identity available for this operation") -> None:
        super().__init__(message)


class NotFoundError(VitrineError):
    category = "not_found"
    status_code = 404

    def __init__(self, resource: str, resource_id: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}")


class InvalidTransitionError(VitrineError):
    category = "conflict"
    status_code = 409

    def __init__(self, message: str = "Submission was already reviewed") -> None:
        super().__init__(message)


class StoreError(VitrineError):
    category = "store"


class StoreUnavailableError(StoreError):
    """Transient I/O failure (busy/locked/unreachable store). Safe to retry."""

    category = "transient"
    status_code = 503
    retryable = True


class SchemaDriftError(StoreError):
    """The store's shape does not match what the pipeline expects."""

    category = "structural"

    def __init__(self, message: str) -> None:
        super().__init__(f"{message} (run diagnostics)")
