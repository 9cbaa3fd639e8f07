"""
Messages to people on Slack.
"""

import logging

from automation_webhooks.auth import get_slack_session
from automation_webhooks.utils import RequestFailed, log_check_response

logger = logging.getLogger(__name__)


def send_user_message(user_id: str, text: str) -> None:
    """
    Send a direct message to the Slack user with id `user_id`.

    See https://api.slack.com/methods/chat.postMessage
    """
    resp = get_slack_session().post("chat.postMessage", json={"channel": user_id, "text": text})
    log_check_response(resp)
    # Slack reports most failures with a 200 status and "ok": false.
    data = resp.json()
    if not data.get("ok"):
        raise RequestFailed(f"Slack couldn't message {user_id}: {data.get('error')}")


def report_error(user_id: str, message: str) -> None:
    """
    Tell a person something went wrong, then log it.
    """
    send_user_message(user_id, message)
    logger.error(message)


def report_info(user_id: str, message: str) -> None:
    """
    Tell a person how things are going, then log it.
    """
    send_user_message(user_id, message)
    logger.info(message)
