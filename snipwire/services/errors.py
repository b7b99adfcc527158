"""
Service layer exceptions.
"""


class SnipRESTError(Exception):
    """Base exception for Snipcart REST layer errors."""

    def __init__(self, message: str, message_key: str | None = None):
        self.message_key = message_key
        super().__init__(message)


class AuthNotConfiguredError(SnipRESTError):
    """Authorization headers are missing, no request was made."""

    pass


class MissingIdentifierError(SnipRESTError):
    """A required token, id or URL argument is empty."""

    pass


class InvalidDateError(SnipRESTError):
    """A date argument is not an ISO 8601 string."""

    pass


class ProductNotFoundError(SnipRESTError):
    """No product matches the given user defined id."""

    def __init__(self, user_defined_id: str, reason: str | None = None):
        self.user_defined_id = user_defined_id
        msg = f"No Snipcart product found for userDefinedId '{user_defined_id}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, message_key="product_not_found")


class RemoteCallFailedError(SnipRESTError):
    """Snipcart answered with a non-success status or the request failed."""

    def __init__(self, result_key: str, http_code: int | None, error: str | None):
        self.result_key = result_key
        self.http_code = http_code
        self.error = error
        super().__init__(
            f"Request for '{result_key}' failed (HTTP {http_code}): {error}",
            message_key="connection_failed",
        )


class DecodeError(Exception):
    """Response body could not be decoded as JSON."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid JSON response from {url}: {reason}")
