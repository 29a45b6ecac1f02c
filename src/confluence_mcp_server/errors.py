"""Domain error classes.

Every error raised by the remote client or the sync manager derives from
``DomainError`` and carries a machine-readable ``code``.  Remote errors also
carry the originating HTTP ``status`` (``None`` when no response was
received).  The sync manager attaches the paths of its operation log files
to ``log_files`` before re-raising, so callers can point users at the
forensic record without re-running anything.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for all domain-specific errors."""

    default_code = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status = status
        self.cause = cause
        self.log_files: list[str] = []

    def to_dict(self) -> dict:
        """Serialize for structured log records."""
        data: dict = {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
        }
        if self.status is not None:
            data["status"] = self.status
        if self.cause is not None:
            data["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return data


# ---------------------------------------------------------------------------
# Remote errors
# ---------------------------------------------------------------------------


class ExternalServiceError(DomainError):
    """Remote failure that does not fit a more specific class."""

    default_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        service: str,
        message: str,
        *,
        status: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            f"External service error ({service}): {message}",
            status=status,
            cause=cause,
        )
        self.service = service


class ServiceUnavailableError(ExternalServiceError):
    """Remote 5xx response."""

    default_code = "SERVICE_UNAVAILABLE"


class PageNotFoundError(DomainError):
    default_code = "PAGE_NOT_FOUND"

    def __init__(self, resource: str, status: int | None = 404) -> None:
        super().__init__(f"Page not found: {resource}", status=status)
        self.resource = resource


class AuthenticationError(DomainError):
    default_code = "AUTHENTICATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status: int | None = 401,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            f"Authentication failed: {message}", status=status, cause=cause
        )


class AuthorizationError(DomainError):
    default_code = "AUTHORIZATION_ERROR"

    def __init__(
        self,
        resource: str,
        message: str | None = None,
        *,
        status: int | None = 403,
    ) -> None:
        super().__init__(
            f"Authorization failed: {message or f'Access denied to {resource}'}",
            status=status,
        )
        self.resource = resource


class RateLimitError(DomainError):
    default_code = "RATE_LIMIT_ERROR"

    def __init__(
        self,
        service: str,
        retry_after: int | None = None,
        *,
        status: int | None = 429,
    ) -> None:
        suffix = f". Retry after {retry_after}s" if retry_after else ""
        super().__init__(
            f"Rate limit exceeded for {service}{suffix}", status=status
        )
        self.service = service
        self.retry_after = retry_after


class VersionConflictError(DomainError):
    """Remote version differs from the locally recorded one."""

    default_code = "VERSION_CONFLICT"

    def __init__(
        self,
        message: str,
        *,
        remote_version: int | None = None,
        local_version: int | None = None,
        status: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, status=status, cause=cause)
        self.remote_version = remote_version
        self.local_version = local_version


class InvalidUrlError(DomainError):
    default_code = "INVALID_URL_ERROR"

    def __init__(self, url: str, message: str | None = None) -> None:
        super().__init__(
            f"Invalid URL: {url}" + (f" - {message}" if message else "")
        )
        self.url = url


# ---------------------------------------------------------------------------
# Local state errors
# ---------------------------------------------------------------------------


class LocalMetadataMissingError(DomainError):
    default_code = "META_NOT_FOUND"

    def __init__(self, path: str) -> None:
        super().__init__(f"Metadata file not found: {path}")
        self.path = path


class LocalBodyFileMissingError(DomainError):
    default_code = "PAGE_FILE_NOT_FOUND"

    def __init__(self, path: str) -> None:
        super().__init__(f"Page body file not found: {path}")
        self.path = path


class LocalAttachmentMissingError(DomainError):
    default_code = "ATTACHMENT_FILE_NOT_FOUND"

    def __init__(self, title: str, path: str) -> None:
        super().__init__(f"Attachment file not found: {title} ({path})")
        self.title = title
        self.path = path


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class OperationAbortedError(DomainError):
    """Base for I/O that was stopped before the remote answered."""

    reason = "aborted"


class OperationCancelledError(OperationAbortedError):
    default_code = "CANCELLED"
    reason = "cancelled"

    def __init__(self, target: str) -> None:
        super().__init__(f"Operation cancelled: {target}")
        self.target = target


class OperationTimedOutError(OperationAbortedError):
    default_code = "TIMEOUT"
    reason = "timeout"

    def __init__(self, target: str, timeout: float) -> None:
        super().__init__(f"Operation timed out after {timeout:g}s: {target}")
        self.target = target
        self.timeout = timeout
