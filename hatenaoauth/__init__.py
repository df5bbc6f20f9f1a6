"""Provides a collection of utilities for easily working with Hatena's
OAuth1.0a implementation."""
from .version import __version__
from .client import HatenaOAuth
from .consent import BrowserConsent, CallbackConsent, ConsentChannel, StaticConsent
from .errors import (
    InsufficientSecret,
    InvalidRequest,
    InvalidResponse,
    OAuthException,
    PermissionDenied,
    RequestFailure,
)
from .flow import AuthorizationFlow, FlowState
from .functions import authorize, complete, initiate
from .signing import OAuthSigner
from .store import TokenStore
from .tokens import AccessToken, ConsumerToken, RequestToken, Scope

__all__ = [
    "__version__",
    "AccessToken",
    "AuthorizationFlow",
    "authorize",
    "BrowserConsent",
    "CallbackConsent",
    "complete",
    "ConsentChannel",
    "ConsumerToken",
    "FlowState",
    "HatenaOAuth",
    "initiate",
    "InsufficientSecret",
    "InvalidRequest",
    "InvalidResponse",
    "OAuthException",
    "OAuthSigner",
    "PermissionDenied",
    "RequestFailure",
    "RequestToken",
    "Scope",
    "StaticConsent",
    "TokenStore",
]
