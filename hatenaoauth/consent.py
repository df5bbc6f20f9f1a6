"""
Ways of getting the user's consent between the request token and access
token legs.  Hatena shows the user a verifier after they approve access;
a consent channel's only job is to hand that verifier back.

:Example:
    .. code-block:: python

        from hatenaoauth import CallbackConsent, HatenaOAuth, Scope

        # Headless: read the verifier from wherever your automation put it
        consent = CallbackConsent(lambda: read_verifier_from_somewhere())
        client = HatenaOAuth(key, secret, [Scope.READ_PUBLIC], consent=consent)
"""
import logging
import os
import sys
import webbrowser

from .errors import PermissionDenied
from .settings import ENV_OAUTH_VERIFIER

logger = logging.getLogger(__name__)


class ConsentChannel(object):
    """Base class for anything that can produce a verifier."""

    def obtain_verifier(self, authorize_url, request_token):
        """
        Get the user to approve `request_token` and return the verifier.

        :Parameters:
            authorize_url : `str`
                The Hatena page where the user approves access.
            request_token : :class:`~hatenaoauth.RequestToken`
                The token being approved.

        :Returns:
            The verifier as a `str`.  Raises
            :class:`~hatenaoauth.errors.PermissionDenied` if there is none.
        """
        raise NotImplementedError


class BrowserConsent(ConsentChannel):
    """
    Opens the authorize page in a browser and reads the verifier from a
    prompt.  An empty answer falls back to the ``HATENA_OAUTH_VERIFIER``
    environment variable.
    """

    def __init__(self, stdin=None, stdout=None, env_var=ENV_OAUTH_VERIFIER):
        self.stdin = stdin
        self.stdout = stdout
        self.env_var = env_var

    def obtain_verifier(self, authorize_url, request_token):
        self.open_consent_url(authorize_url)
        return self.await_verifier()

    def open_consent_url(self, url):
        """
        Try to show `url` in the user's browser.  Not being able to is fine,
        the URL is printed for the user to open by hand.
        """
        out = self.stdout or sys.stdout
        out.write("Open the following URL to authorize access:\n{}\n".format(url))
        out.flush()
        try:
            opened = webbrowser.open(url)
        except webbrowser.Error as e:
            logger.warning("Could not launch a browser: {}".format(e))
            return False
        if not opened:
            logger.warning("No browser available, continuing with manual entry.")
        return opened

    def await_verifier(self):
        out = self.stdout or sys.stdout
        out.write(
            "Input the verifier shown in the browser "
            "(or set {}=<verifier> and press Enter): ".format(self.env_var)
        )
        out.flush()

        line = (self.stdin or sys.stdin).readline()
        verifier = line.strip()
        if not verifier:
            verifier = os.environ.get(self.env_var, "").strip()
        if not verifier:
            raise PermissionDenied("No verifier was entered")
        return verifier


class CallbackConsent(ConsentChannel):
    """
    Wraps a zero-argument callable returning the verifier, for headless and
    automated runs.
    """

    def __init__(self, func):
        self.func = func

    def obtain_verifier(self, authorize_url, request_token):
        try:
            verifier = self.func()
        except PermissionDenied:
            raise
        except Exception as e:
            raise PermissionDenied("Consent callback failed: {}".format(e)) from e
        if not verifier:
            raise PermissionDenied("Consent callback returned no verifier")
        return verifier


class StaticConsent(ConsentChannel):
    """Always answers with a verifier supplied up front."""

    def __init__(self, verifier):
        self.verifier = verifier

    def obtain_verifier(self, authorize_url, request_token):
        if not self.verifier:
            raise PermissionDenied("No verifier was configured")
        return self.verifier
