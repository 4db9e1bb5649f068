"""Exceptions raised by the model settings service.

Each error carries the HTTP status it maps to; ``main.py`` turns them into
responses. Validation and protection errors are shown to the caller verbatim,
persistence errors are logged and reported as a generic 500.
"""


class ModelHubError(Exception):
    """Base exception for model settings errors."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ModelHubError):
    """A required identifier or operation is missing from the request."""

    status_code = 400


class NotFoundError(ModelHubError):
    """The project does not exist (or is not visible to the caller)."""

    status_code = 404


class DefaultModelProtected(ModelHubError):
    """Attempt to disable or delete the project's default model."""

    status_code = 400

    def __init__(self, message: str, model_id: str):
        self.model_id = model_id
        super().__init__(message)


class PersistenceError(ModelHubError):
    """The settings store failed (connectivity, constraint violation)."""

    status_code = 500


class CatalogFetchError(ModelHubError):
    """A provider could not list its models.

    Never aborts a read: it is reported through ``providerErrors``.
    """

    status_code = 502

    def __init__(self, message: str, provider: str):
        self.provider = provider
        super().__init__(message)
