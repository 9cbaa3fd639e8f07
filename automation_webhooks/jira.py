"""
Operations on Jira data.
"""

import logging
from typing import List, Optional, Sequence

import arrow
from glom import glom
from urlobject import URLObject

from automation_webhooks import settings
from automation_webhooks.auth import get_jira_session
from automation_webhooks.types import JiraDict, JiraVersionDict
from automation_webhooks.utils import log_check_response, memoize, memoize_timed

logger = logging.getLogger(__name__)

# Statuses of our Jira workflows.  Board columns are named after them.
JIRA_STATUS_DONE = "Done"
JIRA_STATUS_HAS_ISSUES = "Has Issues"
JIRA_STATUS_VALIDATED = "Validated"

# Some boards use "Review" rather than "Tech Review".
REVIEW_COLUMNS = ("Tech Review", "Review")


class AmbiguousJiraRelease(Exception):
    """More than one Jira release has the name we're looking for."""


class NoSuchTransition(Exception):
    """A Jira issue can't be moved to the requested status."""


def issue_url(key: str) -> str:
    return f"https://{settings.JIRA_HOST}/browse/{key}"


def _get_or_none(url) -> Optional[JiraDict]:
    resp = get_jira_session().get(url)
    if resp.status_code == 404:
        return None
    log_check_response(resp)
    return resp.json()


# Project ids never change.
@memoize
def get_project(project_key: str) -> Optional[JiraDict]:
    return _get_or_none(f"/rest/api/3/project/{project_key}")


def get_issue(key: str) -> Optional[JiraDict]:
    """
    Get the dictionary for a Jira issue, from its key.

    Returns None if the issue doesn't exist.
    """
    return _get_or_none(f"/rest/api/3/issue/{key}")


def find_release_version(project_key: str, name: str) -> Optional[JiraVersionDict]:
    """
    Find the release named `name` in a project.

    Returns None if there is no such release.  Raises AmbiguousJiraRelease if
    there is more than one.
    """
    url = (
        URLObject(f"/rest/api/3/project/{project_key}/version")
        .set_query_params(orderBy="-sequence", query=name)
    )
    resp = get_jira_session().get(url)
    log_check_response(resp)
    # The query is a substring match.
    versions = [v for v in resp.json()["values"] if v["name"] == name]
    if not versions:
        return None
    if len(versions) > 1:
        raise AmbiguousJiraRelease(f"Found multiple Jira releases with the name {name!r} in {project_key}")
    return versions[0]


def create_release_version(project_key: str, name: str, description: str) -> JiraVersionDict:
    """
    Create a released version in a Jira project.
    """
    project = get_project(project_key)
    if project is None:
        raise ValueError(f"Jira project {project_key!r} doesn't exist")
    logger.info(f"Creating Jira release {name!r} in {project_key}")
    resp = get_jira_session().post("/rest/api/3/version", json={
        "name": name,
        "description": description,
        "projectId": int(project["id"]),
        "released": True,
        "releaseDate": arrow.utcnow().format("YYYY-MM-DD"),
    })
    log_check_response(resp)
    return resp.json()


def attach_issue_to_version(issue_key: str, version_id: str) -> None:
    """Add a release to the fix versions of an issue."""
    resp = get_jira_session().put(f"/rest/api/3/issue/{issue_key}", json={
        "update": {"fixVersions": [{"add": {"id": version_id}}]},
    })
    log_check_response(resp)


@memoize_timed(minutes=15)
def get_board_columns(project_key: str) -> List[str]:
    """
    The column names of the project's agile board, or [] if it has none.
    """
    url = URLObject("/rest/agile/1.0/board").set_query_params(projectKeyOrId=project_key)
    resp = get_jira_session().get(url)
    log_check_response(resp)
    boards = resp.json()["values"]
    if not boards:
        return []
    config = _get_or_none(f"/rest/agile/1.0/board/{boards[0]['id']}/configuration")
    if config is None:
        return []
    return [column["name"] for column in glom(config, "columnConfig.columns", default=[])]


def find_column(project_key: str, candidates: Sequence[str]) -> str:
    """
    Choose the status to move an issue to, from the names a column might have.

    The first candidate the project's board has is chosen, or the first
    candidate if the board has none of them.
    """
    columns = {_status_key(name): name for name in get_board_columns(project_key)}
    for candidate in candidates:
        if _status_key(candidate) in columns:
            return columns[_status_key(candidate)]
    return candidates[0]


def _status_key(name: Optional[str]) -> str:
    # Boards and workflows don't agree on capitalization.
    return (name or "").casefold()


def transition_issue(issue_key: str, status_name: str, issue: Optional[JiraDict] = None) -> None:
    """
    Move an issue to the status named `status_name`.

    Does nothing if the issue is already in that status.  Pass `issue` if
    it has already been fetched.
    """
    if issue is None:
        issue = get_issue(issue_key)
    if issue is None:
        raise ValueError(f"Jira issue {issue_key} doesn't exist")
    if _status_key(glom(issue, "fields.status.name", default=None)) == _status_key(status_name):
        logger.info(f"Jira issue {issue_key} is already in {status_name!r}")
        return

    url = f"/rest/api/3/issue/{issue_key}/transitions"
    resp = get_jira_session().get(url)
    log_check_response(resp)
    transitions = resp.json()["transitions"]
    for transition in transitions:
        if _status_key(glom(transition, "to.name", default=transition["name"])) == _status_key(status_name):
            break
    else:
        raise NoSuchTransition(f"Jira issue {issue_key} can't move to {status_name!r}")

    resp = get_jira_session().post(url, json={"transition": {"id": transition["id"]}})
    log_check_response(resp)
