"""
Slack webhook notifications.
"""

import logging
from typing import Optional

import httpx

from team51.clients.base import APIError
from team51.config import Settings, get_settings

logger = logging.getLogger(__name__)


class SlackAPIError(APIError):
    provider = "Slack"


def log_to_slack(
    message: str,
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.Client] = None,
) -> bool:
    """
    Post a message to the team's Slack workflow webhook.

    Returns False (with a warning) when no webhook is configured.

    Raises:
        SlackAPIError: If Slack rejects the message
    """
    settings = settings or get_settings()
    if not settings.slack_webhook_url:
        logger.warning("⚠️  SLACK_WEBHOOK_URL is not set, skipping Slack notification")
        return False

    client = http_client or httpx.Client()
    try:
        response = client.post(settings.slack_webhook_url, json={"message": message}, timeout=settings.http_timeout)
    finally:
        if http_client is None:
            client.close()

    if response.status_code >= 400:
        logger.error(f"❌ Slack API error: {response.status_code} {response.text}")
        raise SlackAPIError(response.status_code, response.text or "Unknown error")

    logger.info("💬 Logged to Slack")
    return True
