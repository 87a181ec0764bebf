"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire

from betsync import __version__
from betsync.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings) -> bool:
    """
    Initialize Logfire for the betsync process.

    Must be called ONCE at startup, before the engine opens its clients.

    Instruments:
    - HTTPX clients (REST snapshot/mutation calls and the event stream)
    - Python logging (bridges to Logfire)

    Args:
        settings: Application settings containing Logfire token

    Returns:
        True when Logfire was configured, False when disabled or failed.
    """
    if not settings.logfire_token:
        logger.debug("Logfire token not set - observability disabled")
        return False

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="betsync",
            service_version=__version__,
        )

        logfire.instrument_httpx()

        # Bridge Python logging to Logfire
        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("✓ Logfire cloud tracking initialized")
        return True

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        # Continue running - observability is optional
        return False
