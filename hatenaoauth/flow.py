"""
The three-legged authorization flow as an explicit state machine.

:Example:
    .. code-block:: python

        flow = AuthorizationFlow(consumer_token, [Scope.READ_PUBLIC],
                                 TokenStore(), BrowserConsent(),
                                 requests.Session())
        access_token = flow.obtain()
        print(flow.state)  # FlowState.AUTHORIZED
"""
import logging
from enum import Enum

from . import settings
from .errors import OAuthException, PermissionDenied
from .functions import authorize, complete, initiate

logger = logging.getLogger(__name__)


class FlowState(Enum):
    IDLE = "idle"
    REQUEST_TOKEN_PENDING = "request_token_pending"
    REQUEST_TOKEN_OBTAINED = "request_token_obtained"
    CONSENT_PENDING = "consent_pending"
    CONSENT_OBTAINED = "consent_obtained"
    ACCESS_TOKEN_PENDING = "access_token_pending"
    AUTHORIZED = "authorized"
    FAILED = "failed"


class AuthorizationFlow(object):
    """
    Runs request token -> consent -> access token, caching the results in a
    :class:`~hatenaoauth.store.TokenStore`.

    :Parameters:
        consumer_token : :class:`~hatenaoauth.ConsumerToken`
            A token representing you, the consumer.
        scopes : iterable of :class:`~hatenaoauth.Scope`
            The scopes to request.
        store : :class:`~hatenaoauth.store.TokenStore`
            Where tokens and the verifier are kept.
        consent : :class:`~hatenaoauth.consent.ConsentChannel`
            How the verifier is obtained from the user.
        session : :class:`requests.Session`
            The session the token requests go through.
    """

    def __init__(self, consumer_token, scopes, store, consent, session,
                 timeout=None, request_token_url=settings.REQUEST_TOKEN_URL,
                 authorize_url=settings.AUTHORIZE_URL,
                 access_token_url=settings.ACCESS_TOKEN_URL):
        self.consumer_token = consumer_token
        self.scopes = frozenset(scopes)
        self.store = store
        self.consent = consent
        self.session = session
        self.timeout = timeout
        self.request_token_url = request_token_url
        self.authorize_url = authorize_url
        self.access_token_url = access_token_url
        self.state = FlowState.IDLE
        self.failure = None

    def _transition(self, state):
        logger.info("Authorization flow: {} -> {}".format(
            self.state.value, state.value))
        self.state = state

    def _fail(self, reason):
        self.failure = reason
        self._transition(FlowState.FAILED)

    def obtain(self, force=False):
        """
        Return an access token, running the whole handshake if needed.

        A cached access token is returned as is unless `force` is set.
        Otherwise the flow always starts over from the request token leg; a
        leftover request token or verifier is never reused.

        :Returns:
            An :class:`~hatenaoauth.AccessToken`
        """
        if not force and self.store.access_token is not None:
            if self.state is not FlowState.AUTHORIZED:
                self._transition(FlowState.AUTHORIZED)
            return self.store.access_token

        self.store.invalidate_request_token()
        self.store.invalidate_verifier()
        self.failure = None
        self.state = FlowState.IDLE

        try:
            self.fetch_request_token()
            self.fetch_verifier()
            return self.fetch_access_token()
        except OAuthException as e:
            self._fail(e)
            raise

    def fetch_request_token(self):
        self._transition(FlowState.REQUEST_TOKEN_PENDING)
        request_token = initiate(
            self.session,
            self.consumer_token,
            self.scopes,
            request_token_url=self.request_token_url,
            timeout=self.timeout,
        )
        self.store.request_token = request_token
        logger.info("Obtained request token {}.".format(request_token.key))
        self._transition(FlowState.REQUEST_TOKEN_OBTAINED)
        return request_token

    def fetch_verifier(self):
        request_token = self.store.request_token
        self._transition(FlowState.CONSENT_PENDING)
        verifier = self.consent.obtain_verifier(
            authorize(request_token, self.authorize_url), request_token
        )
        if not verifier:
            raise PermissionDenied("No verifier was obtained")
        self.store.verifier = verifier
        self._transition(FlowState.CONSENT_OBTAINED)
        return verifier

    def fetch_access_token(self):
        self._transition(FlowState.ACCESS_TOKEN_PENDING)
        access_token = complete(
            self.session,
            self.consumer_token,
            self.store.request_token,
            self.store.verifier,
            access_token_url=self.access_token_url,
            timeout=self.timeout,
        )
        # A request token and its verifier are single use.
        self.store.invalidate_request_token()
        self.store.invalidate_verifier()
        self.store.access_token = access_token
        logger.info("Authorized as {}.".format(access_token.url_name))
        self._transition(FlowState.AUTHORIZED)
        return access_token
