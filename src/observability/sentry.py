"""Sentry error reporting for workspace deployments."""

import logging
import os

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from src.notion.client import NOTION_VERSION


def init_sentry(command: str | None = None) -> bool:
    """Initialise Sentry when SENTRY_DSN is set.

    Per-item deployment failures are logged at ERROR, so each one is
    reported as an event alongside any fatal error.

    :param command: CLI command being run, attached as a tag.
    :returns: Whether Sentry was initialised.
    """
    dsn = os.environ.get("SENTRY_DSN")
    if not dsn:
        return False

    logging_integration = LoggingIntegration(
        level=logging.INFO,  # breadcrumbs
        event_level=logging.ERROR,  # events
    )

    sentry_sdk.init(
        dsn=dsn,
        integrations=[logging_integration],
        environment=os.environ.get("APP_ENV", "local"),
        send_default_pii=False,
        traces_sample_rate=float(os.environ.get("SENTRY_TRACES_SAMPLE_RATE", "0")),
    )
    sentry_sdk.set_tag("notion_version", NOTION_VERSION)
    if command:
        sentry_sdk.set_tag("command", command)
    return True
