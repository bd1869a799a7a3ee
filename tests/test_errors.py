import pytest
import requests
from botocore.exceptions import ClientError, EndpointConnectionError

from sendit.errors import (
    AuthError,
    CircuitOpenError,
    NotFound,
    RateLimitExceeded,
    TransientNetworkError,
    ValidationError,
    error_from_boto,
    error_from_request_exception,
    error_from_response,
    is_transient,
)

from conftest import make_response


@pytest.mark.parametrize("status, expected", [
    (400, ValidationError),
    (401, AuthError),
    (403, AuthError),
    (404, NotFound),
    (408, TransientNetworkError),
    (422, ValidationError),
    (429, TransientNetworkError),
    (500, TransientNetworkError),
    (503, TransientNetworkError),
])
def test_status_mapping(status, expected):
    error = error_from_response(make_response(status, {"message": "nope"}), "Vercel")
    assert type(error) is expected
    assert error.message == f"Vercel API error {status}: nope"


def test_forbidden_with_exhausted_quota_is_rate_limit():
    response = make_response(403, {"message": "API rate limit exceeded"}, headers={
        "x-ratelimit-remaining": "0",
        "x-ratelimit-reset": "9999999999",
    })
    error = error_from_response(response, "GitHub")
    assert isinstance(error, RateLimitExceeded)
    assert error.retry_after > 0


@pytest.mark.parametrize("body, detail", [
    ({"error": {"code": "forbidden", "message": "Not authorized"}}, "Not authorized"),
    ({"errors": [{"code": 8000000, "message": "Project not found"}], "success": False}, "Project not found"),
    ({"error_message": "Site is locked"}, "Site is locked"),
    ({"error": "invalid_token"}, "invalid_token"),
])
def test_provider_message_is_preserved(body, detail):
    assert error_from_response(make_response(400, body), "X").message.endswith(detail)


def test_non_json_body():
    error = error_from_response(make_response(502, text="<html>Bad gateway</html>"), "Netlify")
    assert isinstance(error, TransientNetworkError)
    assert error.status == 502
    assert "Bad gateway" in error.message


def test_request_exceptions():
    assert isinstance(error_from_request_exception(requests.exceptions.ConnectionError("refused"), "X"),
                      TransientNetworkError)
    assert isinstance(error_from_request_exception(requests.exceptions.ReadTimeout("slow"), "X"),
                      TransientNetworkError)
    assert isinstance(error_from_request_exception(requests.exceptions.InvalidURL("bad"), "X"),
                      ValidationError)


def client_error(code, status=400):
    return ClientError(
        {"Error": {"Code": code, "Message": "boom"}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "StartJob",
    )


@pytest.mark.parametrize("code, status, expected", [
    ("AccessDeniedException", 403, AuthError),
    ("NotFoundException", 404, NotFound),
    ("LimitExceededException", 429, TransientNetworkError),
    ("InternalFailure", 500, TransientNetworkError),
    ("SomethingNew", 503, TransientNetworkError),
    ("BadRequestException", 400, ValidationError),
])
def test_boto_mapping(code, status, expected):
    error = error_from_boto(client_error(code, status), "Amplify")
    assert type(error) is expected
    assert code in error.message


def test_boto_connection_error_is_transient():
    error = error_from_boto(EndpointConnectionError(endpoint_url="https://amplify.test"))
    assert isinstance(error, TransientNetworkError)


def test_only_network_errors_are_transient():
    assert is_transient(TransientNetworkError("x"))
    assert not is_transient(AuthError("x"))
    assert not is_transient(CircuitOpenError("x", retry_after=5))
    assert not is_transient(ValueError("x"))
