"""
Errors raised while authorizing against Hatena or signing requests.  Every
error derives from `OAuthException` so callers can handle them together.
Nothing in this package retries; recovery is up to the caller.
"""


class OAuthException(Exception):
    pass


class InsufficientSecret(OAuthException):
    """The consumer key or consumer secret is missing."""

    def __init__(self, message="Consumer key or consumer secret is not set"):
        super().__init__(message)


class RequestFailure(OAuthException):
    """
    The request never produced an HTTP response (DNS, TLS, connection reset,
    timeout).  The underlying `requests` exception is kept on `error` and
    chained as the cause.
    """

    def __init__(self, error):
        super().__init__("Request failed: {}".format(error))
        self.error = error


class InvalidRequest(OAuthException):
    """The provider answered with a non-2xx status."""

    def __init__(self, problem, status_code=None):
        super().__init__("Invalid request ({}): {!r}".format(status_code, problem))
        self.problem = problem
        self.status_code = status_code


class InvalidResponse(OAuthException):
    """A 2xx response could not be parsed or lacks a required field."""

    def __init__(self, response):
        super().__init__("Invalid response format: {!r}".format(response))
        self.response = response


class PermissionDenied(OAuthException):
    """
    The user did not grant access, or no verifier could be read.  The request
    token may no longer be exchangeable, so authorization has to start over.
    """

    def __init__(self, message="Permission was not granted"):
        super().__init__(message)
