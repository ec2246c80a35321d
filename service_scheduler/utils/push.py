import logging

import requests

from service_scheduler.core.config import settings

logger = logging.getLogger(__name__)


def push_configured() -> bool:
    return bool((settings.push_webhook_url or "").strip())


def send_push_notification(payload: dict) -> bool:
    """
    Fire-and-forget delivery of one member notification to the push webhook.
    Returns True if the webhook accepted it, False otherwise.
    """
    url = (settings.push_webhook_url or "").strip()
    if not url:
        logger.debug("push webhook not configured; skipping notification_id=%s", payload.get("id"))
        return False

    headers = {"accept": "application/json", "content-type": "application/json"}
    try:
        resp = requests.post(url, json=payload, headers=headers, timeout=settings.push_timeout_seconds)
        if resp.status_code // 100 == 2:
            return True
        logger.warning("push send failed: status=%s body=%s", resp.status_code, resp.text[:200])
        return False
    except requests.RequestException as e:
        logger.warning("push send exception: %s", e)
        return False
