"""
A set of tokens (key/secret pairs) used to identify actors during and after
an OAuth handshake with Hatena, plus the scopes an access token can carry.
"""
from collections import namedtuple
from enum import Enum

ConsumerToken = namedtuple("ConsumerToken", ["key", "secret"])
"""
Represents a consumer (you).  This key/secret pair is issued by Hatena when
you register an application in the Hatena developer center.

:Parameters:
    key : `str`
        The consumer key identifying your application
    secret : `str`
        The consumer secret used to sign communications
"""

RequestToken = namedtuple("RequestToken", ["key", "secret"])
"""
Represents a request for access during authorization.  This key/secret pair
is provided by Hatena via the request token endpoint.  Once the user
authorizes you, this token and the verifier they were shown can be traded for
an `AccessToken` exactly once.

:Parameters:
    key : `str`
        The temporary token identifying the pending authorization
    secret : `str`
        The temporary secret used to sign the access token request
"""

AccessToken = namedtuple(
    "AccessToken", ["key", "secret", "url_name", "display_name"]
)
"""
Represents an authorized user.  This key and secret is provided by Hatena via
the access token endpoint and later used to sign every API request.

:Parameters:
    key : `str`
        The access token
    secret : `str`
        The access token secret
    url_name : `str`
        The Hatena ID of the user that granted access
    display_name : `str`
        The nickname of the user that granted access
"""

SignatureContext = namedtuple(
    "SignatureContext", ["method", "url", "oauth_params", "body_params"]
)
"""
Everything that goes into a single signature: the HTTP method, the request
URL (query string included), the ``oauth_*`` protocol parameters and the
decoded form body parameters.  Built per request and thrown away afterwards.
"""


class Scope(Enum):
    """Capabilities that can be requested for an access token."""

    READ_PUBLIC = "read_public"
    READ_PRIVATE = "read_private"
    WRITE_PUBLIC = "write_public"
    WRITE_PRIVATE = "write_private"


def scope_string(scopes):
    """
    Join scopes into the comma separated form the request token endpoint
    expects.  The result does not depend on the order `scopes` came in.
    """
    order = list(Scope)
    return ",".join(
        scope.value for scope in sorted(set(scopes), key=order.index)
    )
