"""
Defaults for talking to Hatena.  Values that make sense to tweak per
deployment can be set through environment variables; everything can also be
overridden per client at construction.
"""
import os

# We're going to hand this config to the logging module on request only.
import logging.config

# ENDPOINTS
# ------------------------------------------------------------------------------

REQUEST_TOKEN_URL = "https://www.hatena.com/oauth/initiate"
AUTHORIZE_URL = "https://www.hatena.ne.jp/oauth/authorize"
ACCESS_TOKEN_URL = "https://www.hatena.com/oauth/token"

# REQUESTS
# ------------------------------------------------------------------------------

# Seconds to wait on the provider for each leg and each signed request.
def float_from_env(name, default):
    """Read a number from the environment, keeping `default` if it isn't one."""
    value = os.environ.get(name)
    if value is None:
        return float(default)
    try:
        return float(value)
    except ValueError:
        logging.getLogger(__name__).warning(
            "{}={!r} is not a number, using {}.".format(name, value, default)
        )
        return float(default)


DEFAULT_TIMEOUT = float_from_env("HATENA_OAUTH_TIMEOUT", 30)

# CONSENT
# ------------------------------------------------------------------------------

# Read when the user submits an empty line at the verifier prompt.
ENV_OAUTH_VERIFIER = "HATENA_OAUTH_VERIFIER"

# LOGGING CONFIGURATION
# ------------------------------------------------------------------------------
# The package only ever logs through logging.getLogger(__name__). Embedders
# that don't have a logging setup of their own can apply this one.

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "hatenaoauth": {
            "format": "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        }
    },
    "handlers": {
        "console": {
            "level": "DEBUG",
            "class": "logging.StreamHandler",
            "formatter": "hatenaoauth",
        },
    },
    "loggers": {
        "hatenaoauth": {
            "handlers": ["console"],
            "level": os.environ.get("HATENA_OAUTH_LOG_LEVEL", "INFO"),
        },
    },
}


def configure_logging():
    logging.config.dictConfig(LOGGING)
