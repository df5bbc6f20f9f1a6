"""
A set of stateless functions that can be used to complete the individual legs
of an OAuth handshake with Hatena.

:Example:
    .. code-block:: python

        import requests
        from hatenaoauth import ConsumerToken, Scope, authorize, complete, initiate

        consumer_token = ConsumerToken(config.consumer_key, config.consumer_secret)
        session = requests.Session()

        # Step 1: Initialize -- ask Hatena for a temporary key/secret
        request_token = initiate(session, consumer_token, [Scope.READ_PUBLIC])

        # Step 2: Authorize -- send the user to Hatena to approve access
        print("Point your browser to: %s" % authorize(request_token))
        verifier = input("Verifier: ")

        # Step 3: Complete -- obtain an authorized key/secret for the user
        access_token = complete(session, consumer_token, request_token, verifier)
        print("Authorized as {0}.".format(access_token.display_name))
"""
import logging

from oauthlib.common import urldecode
from oauthlib.oauth1.rfc5849.utils import escape
from requests.exceptions import RequestException
from urllib.parse import urlencode

from . import settings
from .errors import InvalidRequest, InvalidResponse, RequestFailure
from .signing import CONTENT_TYPE_FORM_URLENCODED, OAuthSigner
from .tokens import AccessToken, RequestToken, scope_string

logger = logging.getLogger(__name__)

REQUEST_TOKEN_FIELDS = ("oauth_token", "oauth_token_secret")
ACCESS_TOKEN_FIELDS = (
    "oauth_token",
    "oauth_token_secret",
    "url_name",
    "display_name",
)


def parse_token_response(content, fields):
    """
    Decode a form-encoded token response and make sure every one of `fields`
    is present.  Fields may be empty (a user without a nickname gets
    ``display_name=``), except the token and its secret, which nothing can
    be signed without.

    :Returns:
        A `dict` of the decoded response.
    """
    try:
        credentials = dict(urldecode(content))
    except ValueError:
        raise InvalidResponse(content)

    missing = [
        field
        for field in fields
        if field not in credentials
        or (field in REQUEST_TOKEN_FIELDS and not credentials[field])
    ]
    if missing:
        logger.warning(
            "Token response lacks {}.".format(", ".join(missing))
        )
        raise InvalidResponse(content)

    return credentials


def send(session, url, auth, data=None, headers=None, timeout=None):
    """
    POST a signed request to one of the token endpoints.  Transport errors
    become `RequestFailure`, non-2xx answers become `InvalidRequest`.
    """
    try:
        r = session.post(url, data=data, headers=headers, auth=auth, timeout=timeout)
    except RequestException as e:
        logger.warning("Request to {} failed: {}".format(url, e))
        raise RequestFailure(e) from e

    if not 200 <= r.status_code < 300:
        logger.warning(
            "Request to {} was answered with status {}.".format(url, r.status_code)
        )
        raise InvalidRequest(r.text, status_code=r.status_code)

    return r


def initiate(session, consumer_token, scopes,
             request_token_url=settings.REQUEST_TOKEN_URL, timeout=None):
    """
    Asks Hatena for a request token covering `scopes`.  The callback is
    always ``oob``: the user is shown a verifier instead of being redirected.

    :Parameters:
        session : :class:`requests.Session`
            The session to send the request with.
        consumer_token : :class:`~hatenaoauth.ConsumerToken`
            A token representing you, the consumer.
        scopes : iterable of :class:`~hatenaoauth.Scope`
            The scopes to request.

    :Returns:
        A :class:`~hatenaoauth.RequestToken` representing a request for access
    """
    auth = OAuthSigner(consumer_token, oauth_params={"oauth_callback": "oob"})
    r = send(
        session,
        request_token_url,
        auth,
        data="scope={}".format(escape(scope_string(scopes))),
        headers={"Content-Type": CONTENT_TYPE_FORM_URLENCODED},
        timeout=timeout,
    )

    credentials = parse_token_response(r.text, REQUEST_TOKEN_FIELDS)
    return RequestToken(
        credentials["oauth_token"], credentials["oauth_token_secret"]
    )


def authorize(request_token, authorize_url=settings.AUTHORIZE_URL):
    """The page where the user approves `request_token`."""
    return "{}?{}".format(
        authorize_url, urlencode({"oauth_token": request_token.key})
    )


def complete(session, consumer_token, request_token, verifier,
             access_token_url=settings.ACCESS_TOKEN_URL, timeout=None):
    """
    Exchanges an approved request token and its verifier for an access token.

    :Parameters:
        session : :class:`requests.Session`
            The session to send the request with.
        consumer_token : :class:`~hatenaoauth.ConsumerToken`
            A key/secret pair representing you, the consumer.
        request_token : :class:`~hatenaoauth.RequestToken`
            The temporary token returned by `initiate()`.
        verifier : `str`
            The verifier Hatena showed the user.

    :Returns:
        An :class:`~hatenaoauth.AccessToken` containing an authorized
        key/secret pair and the user's names.
    """
    auth = OAuthSigner(
        consumer_token, request_token, oauth_params={"oauth_verifier": verifier}
    )
    r = send(session, access_token_url, auth, timeout=timeout)

    credentials = parse_token_response(r.text, ACCESS_TOKEN_FIELDS)
    return AccessToken(
        credentials["oauth_token"],
        credentials["oauth_token_secret"],
        credentials["url_name"],
        credentials["display_name"],
    )
