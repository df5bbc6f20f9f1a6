"""
A client for making signed requests to Hatena APIs.

:Example:
    .. code-block:: python

        from hatenaoauth import HatenaOAuth, Scope

        client = HatenaOAuth(
            config.consumer_key, config.consumer_secret,
            [Scope.READ_PUBLIC, Scope.WRITE_PUBLIC])

        # Opens a browser and asks for the verifier the first time around
        response = client.get("https://f.hatena.ne.jp/atom/feed")

        # Keep these around to skip authorization next time
        print(client.get_access_token())
"""
import logging

import requests
from requests.exceptions import RequestException

from . import settings
from .consent import BrowserConsent, CallbackConsent, ConsentChannel, StaticConsent
from .errors import InsufficientSecret, RequestFailure
from .flow import AuthorizationFlow
from .signing import OAuthSigner
from .store import TokenStore
from .tokens import AccessToken, ConsumerToken

logger = logging.getLogger(__name__)


def _access_token(token):
    """
    Turn a bootstrap access token into an `AccessToken`, or None when any of
    the key, secret or Hatena ID is blank so authorization runs instead.
    """
    if token is None:
        return None
    token = tuple(token)
    if len(token) not in (3, 4):
        raise InsufficientSecret(
            "access_token must be (key, secret, url_name[, display_name])"
        )
    if not all(token[:3]):
        logger.info("Ignoring incomplete access token.")
        return None
    if len(token) == 3:
        # Without a display name, the Hatena ID is the best we have.
        token = token + (token[2],)
    return AccessToken(*token)


def _consent_channel(consent, verifier):
    if consent is None:
        return StaticConsent(verifier) if verifier else BrowserConsent()
    if isinstance(consent, ConsentChannel):
        return consent
    if callable(consent):
        return CallbackConsent(consent)
    raise TypeError("consent must be a ConsentChannel or a callable")


class HatenaOAuth(object):
    """
    Signs requests with a cached access token, running the authorization
    flow first whenever there is none.

    :Parameters:
        consumer_key : `str`
            Your consumer key.
        consumer_secret : `str`
            Your consumer secret.
        scopes : iterable of :class:`~hatenaoauth.Scope`
            The scopes to request when authorizing.
        access_token : :class:`~hatenaoauth.AccessToken` | `tuple`
            A previously obtained access token, as an `AccessToken` or a
            ``(key, secret, url_name[, display_name])`` tuple.  Skips
            authorization until a request is forced.
        consent : :class:`~hatenaoauth.consent.ConsentChannel` | callable
            How to get the verifier from the user.  Defaults to opening a
            browser and prompting on stdin.
        verifier : `str`
            A verifier to use instead of asking the user.
        session : :class:`requests.Session`
            The session every request goes through.
        timeout : `float`
            Default seconds to wait on Hatena, for the token legs as well as
            for `get()` and `post()`.
    """

    def __init__(self, consumer_key, consumer_secret, scopes, access_token=None,
                 consent=None, verifier=None, session=None, timeout=None,
                 request_token_url=settings.REQUEST_TOKEN_URL,
                 authorize_url=settings.AUTHORIZE_URL,
                 access_token_url=settings.ACCESS_TOKEN_URL):
        if not consumer_key or not consumer_secret:
            raise InsufficientSecret()

        self.consumer_token = ConsumerToken(consumer_key, consumer_secret)
        self.scopes = frozenset(scopes)
        self.timeout = settings.DEFAULT_TIMEOUT if timeout is None else timeout
        self.session = requests.Session() if session is None else session
        self.store = TokenStore(_access_token(access_token))
        self.consent = _consent_channel(consent, verifier)
        self.flow = AuthorizationFlow(
            self.consumer_token,
            self.scopes,
            self.store,
            self.consent,
            self.session,
            timeout=self.timeout,
            request_token_url=request_token_url,
            authorize_url=authorize_url,
            access_token_url=access_token_url,
        )
        logger.info("Hatena OAuth client constructed.")

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        self.session.close()

    def get_access_token(self, force=False):
        """
        Return the cached access token, or authorize to get one.  With
        `force`, the whole request token -> consent -> access token flow is
        run again even if a token is cached.
        """
        return self.flow.obtain(force=force)

    def request(self, method, url, force=False, timeout=None, **kwargs):
        """
        Sign and send a request with the access token.  The response is
        returned as is; its status code is for the caller to interpret.
        Remaining keyword arguments go to :meth:`requests.Session.request`.
        """
        access_token = self.get_access_token(force=force)
        auth = OAuthSigner(self.consumer_token, access_token)
        timeout = self.timeout if timeout is None else timeout

        logger.info("Sending signed {} request to {}.".format(method, url))
        try:
            return self.session.request(
                method, url, auth=auth, timeout=timeout, **kwargs
            )
        except RequestException as e:
            logger.warning("{} request to {} failed: {}".format(method, url, e))
            raise RequestFailure(e) from e

    def get(self, url, params=None, force=False, timeout=None, **kwargs):
        return self.request(
            "GET", url, force=force, timeout=timeout, params=params, **kwargs
        )

    def post(self, url, data=None, force=False, timeout=None, headers=None,
             **kwargs):
        """
        POST `data` to `url`.  A `dict` (or a string sent with a form-encoded
        ``Content-Type``) takes part in the signature; any other body, like
        an XML upload, is sent without being signed over.
        """
        return self.request(
            "POST",
            url,
            force=force,
            timeout=timeout,
            data=data,
            headers=headers,
            **kwargs
        )
