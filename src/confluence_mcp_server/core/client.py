import logging
import re
import threading
import time
from typing import Any

import requests

from ..config import Config
from ..errors import (
    AuthenticationError,
    AuthorizationError,
    DomainError,
    ExternalServiceError,
    InvalidUrlError,
    OperationTimedOutError,
    PageNotFoundError,
    RateLimitError,
    ServiceUnavailableError,
    VersionConflictError,
)
from .async_utils import DEFAULT_TIMEOUT_SECONDS
from .models import AttachmentInfo, ConfluencePage

logger = logging.getLogger(__name__)

_PAGE_URL_PATTERN = re.compile(r"/pages/(\d+)(?:/|$|\?|#)")

SERVICE = "confluence"


class ConfluenceClient:
    """Blocking client for the Confluence REST API.

    Every method accepts a ``timeout`` in seconds and classifies HTTP
    failures into ``DomainError`` subclasses.  Retries are deliberately
    not attempted here.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.api_url = self._get_api_url()

    @property
    def session(self) -> requests.Session:
        """Accessor for the current thread's session."""
        return self._get_session()

    def _get_api_url(self) -> str:
        return f"{self.config.confluence_url.rstrip('/')}/wiki/rest/api"

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.auth = (self.config.email, self.config.api_token)
        session.verify = not self.config.insecure
        session.headers.update({"Accept": "application/json"})
        return session

    def _request(
        self,
        method: str,
        path: str,
        *,
        target: str,
        operation: str,
        timeout: float,
        **kwargs: Any,
    ) -> requests.Response:
        """Send one request and classify any failure.

        Raises:
            OperationTimedOutError: If the HTTP layer timed out.
            DomainError: For any non-2xx response or transport failure.
        """
        url = f"{self.api_url}{path}"
        started = time.monotonic()
        logger.debug("%s %s started (timeout=%.1fs)", method, target, timeout)
        try:
            response = self._get_session().request(
                method, url, timeout=timeout, **kwargs
            )
        except requests.Timeout as exc:
            logger.warning("%s %s timed out after %.1fs", method, target, timeout)
            raise OperationTimedOutError(target, timeout) from exc
        except requests.RequestException as exc:
            raise ExternalServiceError(
                SERVICE,
                f"Unexpected error while trying to {operation} for {target}: {exc}",
                cause=exc,
            ) from exc

        duration_ms = (time.monotonic() - started) * 1000
        if not response.ok:
            error = self._classify_error(response, target, operation)
            logger.debug(
                "%s %s failed in %.0fms: %s",
                method,
                target,
                duration_ms,
                error,
            )
            raise error

        logger.info(
            "%s %s completed in %.0fms (status %d)",
            method,
            target,
            duration_ms,
            response.status_code,
        )
        return response

    @staticmethod
    def _classify_error(
        response: requests.Response, resource: str, operation: str
    ) -> DomainError:
        """Map an HTTP error response to a domain error."""
        status = response.status_code
        match status:
            case 401:
                return AuthenticationError(
                    "Invalid credentials or token", status=status
                )
            case 403:
                return AuthorizationError(
                    resource,
                    f"Insufficient permissions to {operation}",
                    status=status,
                )
            case 404:
                return PageNotFoundError(resource, status=status)
            case 409:
                return VersionConflictError(
                    f"Version conflict: {resource} was modified",
                    status=status,
                )
            case 429:
                retry_after = response.headers.get("Retry-After")
                return RateLimitError(
                    SERVICE,
                    int(retry_after)
                    if retry_after and retry_after.isdigit()
                    else None,
                    status=status,
                )
            case 500 | 502 | 503:
                return ServiceUnavailableError(
                    SERVICE, f"Server error: {status}", status=status
                )
            case _:
                return ExternalServiceError(
                    SERVICE,
                    f"Failed to {operation} for {resource}: {status} {response.reason or ''}".rstrip(),
                    status=status,
                )

    def validate_connection(
        self, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> str:
        """
        Validate credentials by fetching the current user.
        Returns the user's display name if successful.
        """
        response = self._request(
            "GET",
            "/user/current",
            target="user/current",
            operation="validate connection",
            timeout=timeout,
        )
        data = response.json()
        return str(data.get("displayName") or data.get("accountId") or "")

    def get_page(
        self, page_id: str, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> ConfluencePage:
        """
        Get a page with its storage-format body and version.
        """
        response = self._request(
            "GET",
            f"/content/{page_id}",
            target=f"page/{page_id}",
            operation="get page",
            timeout=timeout,
            params={"expand": "body.storage,version"},
        )
        return ConfluencePage.from_api(response.json())

    def update_page(
        self,
        page_id: str,
        title: str,
        content: str,
        version: int,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        message: str | None = None,
    ) -> ConfluencePage:
        """
        Replace the page body.

        Args:
            page_id: Confluence page ID
            title: Page title (required by the API even if unchanged)
            content: Body in storage format
            version: Version the update is based on; the request carries
                ``version + 1``
            timeout: Seconds before the request times out
            message: Optional version comment

        Returns:
            The updated page (body may be empty in the response)

        Raises:
            VersionConflictError: If the server rejects the version (409)
        """
        payload = {
            "id": page_id,
            "type": "page",
            "title": title,
            "body": {
                "storage": {"value": content, "representation": "storage"}
            },
            "version": {
                "number": version + 1,
                "message": message or "Updated by confluence-mcp-server",
            },
        }
        response = self._request(
            "PUT",
            f"/content/{page_id}",
            target=f"page/{page_id}",
            operation="update page",
            timeout=timeout,
            json=payload,
        )
        data = response.json()
        if not (data.get("body") or {}).get("storage"):
            data = {**data, "body": payload["body"]}
        return ConfluencePage.from_api(data)

    def list_attachments(
        self, page_id: str, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> list[AttachmentInfo]:
        """
        List the attachments of a page, in the order returned by the server.
        """
        response = self._request(
            "GET",
            f"/content/{page_id}/child/attachment",
            target=f"page/{page_id}/attachments",
            operation="get attachments",
            timeout=timeout,
            params={"limit": 1000, "expand": "version"},
        )
        results = response.json().get("results") or []
        return [AttachmentInfo.from_api(item) for item in results]

    def upload_attachment(
        self,
        page_id: str,
        filename: str,
        data: bytes,
        content_type: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> AttachmentInfo:
        """
        Upload an attachment. Re-uploading an existing file name creates a
        new version of the same attachment.
        """
        response = self._request(
            "PUT",
            f"/content/{page_id}/child/attachment",
            target=f"page/{page_id}/attachment/{filename}",
            operation="upload attachment",
            timeout=timeout,
            files={"file": (filename, data, content_type)},
            headers={"X-Atlassian-Token": "no-check"},
        )
        body = response.json()
        results = body.get("results")
        item = results[0] if results else body
        return AttachmentInfo.from_api(item)

    def download_attachment(
        self,
        page_id: str,
        attachment_id: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> bytes:
        """
        Download the raw bytes of an attachment.
        """
        response = self._request(
            "GET",
            f"/content/{page_id}/child/attachment/{attachment_id}/download",
            target=f"page/{page_id}/attachment/{attachment_id}",
            operation="download attachment",
            timeout=timeout,
        )
        return response.content

    @staticmethod
    def extract_page_id(page_ref: str) -> str:
        """
        Resolve a page URL or bare numeric ID to the page ID.

        Supports URLs with or without trailing path segments, e.g.
        ``https://x.atlassian.net/wiki/spaces/DOC/pages/12345/Title``.

        Raises:
            InvalidUrlError: If no page ID can be found.
        """
        ref = (page_ref or "").strip()
        if ref.isdigit():
            return ref
        match = _PAGE_URL_PATTERN.search(ref)
        if not match:
            raise InvalidUrlError(ref, "Cannot extract page ID from URL")
        return match.group(1)
