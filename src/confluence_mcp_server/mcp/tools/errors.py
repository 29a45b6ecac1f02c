"""Error response builders for MCP tool handlers.

This module provides structured error responses with corrective actions
to help AI agents recover from errors without human intervention.
"""

import mcp.types as types

from ...errors import (
    AuthenticationError,
    AuthorizationError,
    DomainError,
    InvalidUrlError,
    LocalAttachmentMissingError,
    LocalBodyFileMissingError,
    LocalMetadataMissingError,
    OperationCancelledError,
    OperationTimedOutError,
    PageNotFoundError,
    RateLimitError,
    ServiceUnavailableError,
    VersionConflictError,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, permission_denied, version_conflict, validation_error, server_error, ...)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Page not found: page/1", "Check the page URL.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_domain_error(error: DomainError) -> types.CallToolResult:
    """Translate a domain error to a structured error response.

    The paths of the operation log, when the error carries any, are
    appended to the message so the agent can point the user at them.
    """
    match error:
        case PageNotFoundError():
            error_type = "not_found"
            action = "Check the page URL or ID; the page may have been deleted or moved."
        case InvalidUrlError():
            error_type = "validation_error"
            action = "Pass a numeric page ID or a URL containing /pages/<id>."
        case AuthenticationError():
            error_type = "authentication_failed"
            action = "Check CONFLUENCE_EMAIL and CONFLUENCE_API_TOKEN."
        case AuthorizationError():
            error_type = "permission_denied"
            action = "Ask a space administrator for access to this page."
        case RateLimitError():
            error_type = "rate_limited"
            action = (
                f"Wait {error.retry_after}s, then retry."
                if error.retry_after
                else "Wait a moment, then retry."
            )
        case VersionConflictError():
            error_type = "version_conflict"
            action = (
                "The page changed remotely. Run page_body_download to fetch the "
                "current version, re-apply local edits, then upload again."
            )
        case LocalMetadataMissingError():
            error_type = "local_state_missing"
            action = "Run page_body_download or page_attachments_download first."
        case LocalBodyFileMissingError():
            error_type = "local_state_missing"
            action = "Run page_body_download to recreate the body file."
        case LocalAttachmentMissingError():
            error_type = "local_state_missing"
            action = (
                "Restore the file, or run page_attachments_download to fetch it again."
            )
        case OperationCancelledError():
            error_type = "cancelled"
            action = "The operation was cancelled; retry when ready."
        case OperationTimedOutError():
            error_type = "timeout"
            action = "Retry with a larger timeout_seconds value."
        case ServiceUnavailableError():
            error_type = "server_error"
            action = "Confluence is unavailable; retry later."
        case _:
            error_type = "server_error"
            action = "Check Confluence connectivity or retry later."

    message = error.message
    if error.log_files:
        message += "\n\nOperation log:\n" + "\n".join(
            f"  {path}" for path in error.log_files
        )
    return build_error_response(error_type, message, action)
