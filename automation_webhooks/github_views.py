"""
These are the views that process webhook events coming from Github.
"""

import logging

from flask import current_app as app
from flask import Blueprint, jsonify, request

from automation_webhooks.tasks.github import (
    check_run_completed_task,
    check_suite_completed_task,
    create_release_task,
    pull_request_closed_task,
    pull_request_converted_to_draft_task,
    pull_request_ready_for_review_task,
    pull_request_reviewed_task,
)
from automation_webhooks.utils import (
    is_valid_payload, queue_task, requires_auth, sentry_extra_context
)

github_bp = Blueprint('github_views', __name__)
logger = logging.getLogger(__name__)


@github_bp.route('/hook-receiver', methods=('POST',))
def hook_receiver():
    """
    Process incoming GitHub webhook events.

    1.  Make sure the payload hashes to the proper signature. If not,
        reject the request with http status of 403.
    2.  Send a job to the queue with details of the event.
    3.  Respond with http status 202.

    Returns:
        A response, or Tuple[str, int]: Message payload and HTTP status code
    """
    signature = request.headers.get("X-Hub-Signature")
    secret = app.config.get('GITHUB_WEBHOOKS_SECRET')
    if not is_valid_payload(secret, signature, request.data):   # type: ignore[arg-type]
        msg = "Rejecting because signature doesn't match!"
        logger.info(msg)
        return msg, 403

    event = request.get_json()

    action = event.get("action")
    repo = event.get("repository", {}).get("full_name")
    who = event.get("sender", {}).get("login", "someone")
    keys = set(event.keys()) - {"action", "sender", "repository", "organization", "installation"}
    logger.info(f"Incoming GitHub event: {repo=!r}, {action=!r}, {who=!r}, keys: {' '.join(sorted(keys))}")

    sentry_extra_context({"event": event})

    match event:
        case {"action": "submitted", "review": review, "pull_request": pr}:
            return queue_task(pull_request_reviewed_task, pr, review)

        case {"pull_request": _}:
            return handle_pull_request_event(event)

        case {"action": "completed", "check_suite": check_suite, "repository": {"name": repo_name}}:
            return queue_task(check_suite_completed_task, check_suite, repo_name)

        case {"action": "completed", "check_run": check_run, "repository": {"name": repo_name}}:
            return queue_task(check_run_completed_task, check_run, repo_name)

        case {"zen": _, "hook": _}:
            # this is a ping
            logger.info(f"ping from {repo}")
            return "PONG"

        case _:
            # Ignore all other events.
            return "Thank you", 202


# Pull request actions, and the tasks that handle them.
PR_ACTION_TASKS = {
    "closed": pull_request_closed_task,
    "converted_to_draft": pull_request_converted_to_draft_task,
    "ready_for_review": pull_request_ready_for_review_task,
}

def handle_pull_request_event(event):
    """Handle a webhook event about a pull request."""

    pr = event["pull_request"]
    pr_number = pr["number"]
    repo = event["repository"]["full_name"]
    action = event["action"]

    pr_activity = f"{repo} #{pr_number} {action!r}"
    task = PR_ACTION_TASKS.get(action)
    if task is not None:
        logger.info(f"{pr_activity}, processing...")
        return queue_task(task, pr)
    else:
        logger.info(f"{pr_activity}, ignoring...")
        return "Nothing for me to do", 200


@github_bp.route("/create-release", methods=("POST",))
@requires_auth
def create_release():
    """
    Open or refresh the release pull request for a repository.

    The person named by `email` is told how it went on Slack.
    """
    email = request.form.get("email", "")
    repo = request.form.get("repo", "")
    if not email or not repo:
        resp = jsonify({"error": "Both email and repo are required"})
        resp.status_code = 400
        return resp
    return queue_task(create_release_task, email, repo)
