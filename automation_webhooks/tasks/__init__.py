"""
Helpers for Celery tasks, and a blueprint to see how queued tasks went.
"""

from celery.utils.log import get_task_logger
from flask import Blueprint, jsonify

from automation_webhooks import celery, log_level
from automation_webhooks.utils import requires_auth


# Set up Celery logging.
logger = get_task_logger(__name__)
logger.setLevel(log_level)

tasks = Blueprint('tasks', __name__)


def _task_info(result):
    # A failed task's info is the exception, which isn't JSON.
    if result.failed():
        return result.traceback
    return result.info


@tasks.route('/status/<task_id>')
@requires_auth
def status(task_id):
    """The state of a queued task, with its result or its traceback."""
    result = celery.AsyncResult(task_id)
    return jsonify({
        "status": result.state,
        "info": _task_info(result),
    })


@tasks.route('/statusrepr/<task_id>')
@requires_auth
def statusrepr(task_id):
    """Get the status of a task, but repr() everything so we can see JSON failures from /status/<task_id>"""
    result = celery.AsyncResult(task_id)
    return jsonify({
        "status": repr(result.state),
        "info": repr(result.info),
    })
