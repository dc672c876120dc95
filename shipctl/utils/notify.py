"""Slack notifications for finished provisioning passes."""
import logging

import requests

logger = logging.getLogger("shipctl.notify")


def send_slack_alert(webhook_url: str, message: str, timeout: int = 10) -> bool:
    """Post ``message`` to a Slack incoming webhook. Failures are logged, not raised."""
    try:
        response = requests.post(webhook_url, json={"text": message}, timeout=timeout)
    except requests.RequestException as e:
        logger.error(f"Slack webhook error: {e}")
        return False
    if response.status_code != 200:
        logger.error(f"Slack webhook failed: {response.status_code} {response.text}")
        return False
    logger.info("Slack alert sent successfully.")
    return True
