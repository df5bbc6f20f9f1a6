"""
In-memory cache for the tokens of a single authorization session.
"""
import logging

logger = logging.getLogger(__name__)


class TokenStore(object):
    """
    Holds at most one request token, one verifier and one access token.

    Nothing here expires on its own: a stale access token is only noticed
    when Hatena rejects a request signed with it, at which point the caller
    has to force a new authorization.  Not safe to share between threads.
    """

    def __init__(self, access_token=None):
        self._request_token = None
        self._verifier = None
        self._access_token = access_token

    @property
    def request_token(self):
        return self._request_token

    @request_token.setter
    def request_token(self, token):
        self._request_token = token

    def invalidate_request_token(self):
        self._request_token = None

    @property
    def verifier(self):
        return self._verifier

    @verifier.setter
    def verifier(self, verifier):
        self._verifier = verifier

    def invalidate_verifier(self):
        self._verifier = None

    @property
    def access_token(self):
        return self._access_token

    @access_token.setter
    def access_token(self, token):
        if self._access_token is not None and token != self._access_token:
            logger.info("Replacing cached access token.")
        self._access_token = token

    def invalidate_access_token(self):
        self._access_token = None

    def clear(self):
        self.invalidate_request_token()
        self.invalidate_verifier()
        self.invalidate_access_token()
