"""
Error taxonomy shared by the analyzer, the platform adapters and the orchestrator.
"""

import time
from typing import Any, Dict, Optional

import requests
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError


class SendItError(Exception):
    """Base class for every error raised by sendit."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SendItError):
    """Bad input: malformed repository URL, unsupported host, bad config."""

    kind = "validation"


class RateLimitExceeded(SendItError):
    """The upstream API quota is exhausted; carries seconds until reset."""

    kind = "rate_limit"

    def __init__(self, message: str, retry_after: float):
        super().__init__(message)
        self.retry_after = retry_after


class NotFound(SendItError):
    """A manifest or remote resource does not exist."""

    kind = "not_found"


class ManifestParseError(SendItError):
    """The manifest was found but could not be parsed."""

    kind = "parse"


class TransientNetworkError(SendItError):
    """Connection failure or 5xx; worth retrying."""

    kind = "transient"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AuthError(SendItError):
    """401/403 from a platform; the caller has to re-authenticate."""

    kind = "auth"


class ProviderTerminalError(SendItError):
    """The platform reported the deployment as failed or canceled."""

    kind = "provider"


class CircuitOpenError(SendItError):
    """Submissions to a platform are suspended after repeated failures."""

    kind = "circuit_open"

    def __init__(self, message: str, retry_after: float):
        super().__init__(message)
        self.retry_after = retry_after


def is_transient(error: BaseException) -> bool:
    """Return True when an error is worth retrying with backoff."""
    return isinstance(error, TransientNetworkError)


def _response_message(response: requests.Response) -> str:
    """Pull the provider's own error message out of a response body."""
    try:
        body = response.json()
    except ValueError:
        return (response.text or "").strip()[:500] or response.reason or ""

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        # Cloudflare wraps errors in a list
        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            if isinstance(first, dict) and first.get("message"):
                return str(first["message"])
        for key in ("message", "error_message"):
            if body.get(key):
                return str(body[key])
    return (response.text or "").strip()[:500] or response.reason or ""


def error_from_response(response: requests.Response, service: str) -> SendItError:
    """
    Map a failed HTTP response to the error taxonomy.

    Args:
        response: The non-2xx response
        service: Name of the upstream service, used in the message

    Returns:
        The matching SendItError (not raised)
    """
    status = response.status_code
    detail = _response_message(response)
    message = f"{service} API error {status}: {detail}" if detail else f"{service} API error {status}"

    if status in (401, 403):
        headers = response.headers or {}
        if headers.get("x-ratelimit-remaining") == "0" and headers.get("x-ratelimit-reset"):
            try:
                reset_at = float(headers["x-ratelimit-reset"])
            except ValueError:
                reset_at = 0.0
            return RateLimitExceeded(message, retry_after=max(0.0, reset_at - time.time()))
        return AuthError(message)
    if status == 404:
        return NotFound(message)
    if status in (408, 429) or 500 <= status < 600:
        return TransientNetworkError(message, status=status)
    return ValidationError(message)


def error_from_request_exception(error: requests.exceptions.RequestException, service: str) -> SendItError:
    """Map a requests exception raised before any response arrived."""
    if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return TransientNetworkError(f"{service} request failed: {error}")
    return ValidationError(f"{service} request rejected: {error}")


# botocore error codes grouped by taxonomy
_AWS_AUTH_CODES = {
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedException",
    "UnrecognizedClientException",
    "InvalidClientTokenId",
    "ExpiredTokenException",
}
_AWS_TRANSIENT_CODES = {
    "Throttling",
    "ThrottlingException",
    "TooManyRequestsException",
    "LimitExceededException",
    "InternalFailure",
    "InternalFailureException",
    "ServiceUnavailable",
    "ServiceUnavailableException",
}


def error_from_boto(error: Exception, service: str = "AWS") -> SendItError:
    """Map a botocore exception to the error taxonomy."""
    if isinstance(error, ClientError):
        details: Dict[str, Any] = error.response.get("Error", {})
        code = details.get("Code", "")
        message = f"{service} error {code}: {details.get('Message', str(error))}"
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        if code in _AWS_AUTH_CODES:
            return AuthError(message)
        if code == "NotFoundException":
            return NotFound(message)
        if code in _AWS_TRANSIENT_CODES or status >= 500:
            return TransientNetworkError(message, status=status or None)
        return ValidationError(message)
    if isinstance(error, EndpointConnectionError):
        return TransientNetworkError(f"{service} endpoint unreachable: {error}")
    if isinstance(error, BotoCoreError):
        return ValidationError(f"{service} client error: {error}")
    return SendItError(f"{service} error: {error}")
