"""
HMAC-SHA1 request signing for OAuth 1.0a.

The provider recomputes every signature on its side, so the base string has
to match its construction byte for byte: parameters are gathered from the
query string, a form-encoded body and the ``oauth_*`` protocol parameters,
then percent-encoded with the strict unreserved set and sorted.  The
RFC 5849 pieces come from oauthlib; this module decides what goes into them
and lays out the ``Authorization`` header.

:Example:
    .. code-block:: python

        import requests
        from hatenaoauth import ConsumerToken
        from hatenaoauth.signing import OAuthSigner

        consumer_token = ConsumerToken(config.consumer_key, config.consumer_secret)
        auth = OAuthSigner(consumer_token, access_token)
        requests.get("https://f.hatena.ne.jp/atom/feed", auth=auth)
"""
import logging

from oauthlib.common import generate_timestamp, generate_token, urldecode
from oauthlib.oauth1.rfc5849 import signature, utils
from requests.auth import AuthBase
from urllib.parse import urlsplit

from .errors import InvalidRequest
from .tokens import SignatureContext

logger = logging.getLogger(__name__)

SIGNATURE_METHOD = "HMAC-SHA1"
OAUTH_VERSION = "1.0"
NONCE_LENGTH = 32
CONTENT_TYPE_FORM_URLENCODED = "application/x-www-form-urlencoded"


def collect_parameters(context):
    """Every parameter that takes part in the signature of `context`."""
    params = signature.collect_parameters(
        uri_query=urlsplit(context.url).query,
        body=list(context.body_params or ()),
    )
    # Added as is; collect_parameters would unescape oauth_* values.
    params.extend(
        (key, value)
        for key, value in context.oauth_params.items()
        if key != "oauth_signature"
    )
    return params


def base_string(context):
    return signature.signature_base_string(
        context.method.upper(),
        signature.base_string_uri(context.url),
        signature.normalize_parameters(collect_parameters(context)),
    )


def sign(context, consumer_secret, token_secret=None):
    """
    Compute the base64 encoded HMAC-SHA1 signature for `context`.  The
    request token leg has no token secret yet and signs with an empty one.
    """
    return signature.sign_hmac_sha1(
        base_string(context), consumer_secret, token_secret or ""
    )


def authorization_header(oauth_params):
    """
    Build the ``Authorization`` header value out of the ``oauth_*``
    parameters in `oauth_params`, sorted by name.
    """
    fields = sorted(
        '{}="{}"'.format(key, utils.escape(value))
        for key, value in oauth_params.items()
        if key.startswith("oauth_")
    )
    return "OAuth " + ", ".join(fields)


def oauth_parameters(consumer_key, token_key=None, extra=None, nonce=None,
                     timestamp=None):
    """
    The protocol parameters for one signing call.  A fresh nonce and the
    current time are used unless given.
    """
    params = {
        "oauth_consumer_key": consumer_key,
        "oauth_nonce": nonce or generate_token(NONCE_LENGTH),
        "oauth_signature_method": SIGNATURE_METHOD,
        "oauth_timestamp": str(timestamp or generate_timestamp()),
        "oauth_version": OAUTH_VERSION,
    }
    if token_key:
        params["oauth_token"] = token_key
    params.update(extra or {})
    return params


def body_parameters(body, content_type):
    """
    Decode a form-encoded body for signing.  Other bodies (XML uploads,
    multipart) don't take part in the signature.  A body labelled
    form-encoded that isn't raises `InvalidRequest` before anything is sent.
    """
    if not body or CONTENT_TYPE_FORM_URLENCODED not in (content_type or ""):
        return []
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    try:
        return list(urldecode(body))
    except ValueError as e:
        raise InvalidRequest(
            "Body is not x-www-form-urlencoded: {}".format(e)
        ) from e


class OAuthSigner(AuthBase):
    """
    Signs requests with a consumer token and, once there is one, a request
    or access token.

    :Parameters:
        consumer_token : :class:`~hatenaoauth.ConsumerToken`
            A token representing you, the consumer.
        token : :class:`~hatenaoauth.RequestToken` | :class:`~hatenaoauth.AccessToken`
            The token credential to sign with, if any.
        oauth_params : `dict`
            Additional protocol parameters, e.g. ``oauth_callback`` or
            ``oauth_verifier``.
    """

    def __init__(self, consumer_token, token=None, oauth_params=None):
        self.consumer_token = consumer_token
        self.token = token
        self.oauth_params = dict(oauth_params or {})

    def sign_request(self, method, url, body=None, content_type=None,
                     nonce=None, timestamp=None):
        """
        Sign a request and return the signature together with the matching
        ``Authorization`` header value.
        """
        params = oauth_parameters(
            self.consumer_token.key,
            token_key=self.token.key if self.token else None,
            extra=self.oauth_params,
            nonce=nonce,
            timestamp=timestamp,
        )
        context = SignatureContext(
            method, url, params, body_parameters(body, content_type)
        )
        oauth_signature = sign(
            context,
            self.consumer_token.secret,
            self.token.secret if self.token else None,
        )
        params["oauth_signature"] = oauth_signature
        return oauth_signature, authorization_header(params)

    def __call__(self, r):
        _, header = self.sign_request(
            r.method, r.url, r.body, r.headers.get("Content-Type")
        )
        r.headers["Authorization"] = header
        logger.debug("Signed {} request to {}.".format(r.method, r.url))
        return r
