"""Service layer — business logic orchestration."""


class ServiceError(Exception):
    """Base service exception.

    *code* is the stable machine-readable error identifier returned to API
    callers; *retryable* tells them whether trying again later can help.
    """

    code = "INTERNAL_ERROR"
    retryable = False


class NotFoundError(ServiceError):
    """Repository not indexed (-> HTTP 404)."""

    code = "REPO_NOT_FOUND"


class ValidationError(ServiceError):
    """Input or content validation error (-> HTTP 422)."""

    code = "INVALID_INPUT"


class InvalidScanParametersError(ValidationError):
    """Scan parameters rejected before any I/O (-> HTTP 422)."""


class ManifestUnreadableError(ValidationError):
    """Manifests exist but none could be read — likely archive corruption (-> HTTP 422)."""

    code = "NO_READABLE_MANIFESTS"


class ArchiveUnavailableError(ServiceError):
    """The repository archive is not ready or has expired (-> HTTP 409)."""

    code = "ARCHIVE_NOT_READY"


class UpstreamError(ServiceError):
    """The vulnerability registry failed before any findings existed."""

    code = "UPSTREAM_UNAVAILABLE"


class UpstreamRateLimitedError(UpstreamError):
    """Registry rate limit hit (-> HTTP 429); retry after *retry_after* seconds."""

    code = "UPSTREAM_RATE_LIMITED"
    retryable = True

    def __init__(self, message: str, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(message)


class UpstreamUnavailableError(UpstreamError):
    """Registry error other than rate limiting (-> HTTP 502)."""

    def __init__(self, message: str, status: int | None = None, detail: str = "") -> None:
        self.status = status
        self.detail = detail
        super().__init__(message)
