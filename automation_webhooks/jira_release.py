"""
Jira releases for merged release pull requests.
"""

from __future__ import annotations

import concurrent.futures
import logging
import re
from typing import Dict, List

from automation_webhooks import github, jira
from automation_webhooks.credentials import fetch_repository
from automation_webhooks.utils import MAX_CONCURRENT_REQUESTS, first_line, sentry_extra_context

logger = logging.getLogger(__name__)

ISSUE_KEY_RE = re.compile(r"\[([A-Z]+-\d+)\]")


def issue_keys_by_project(messages: List[str]) -> Dict[str, List[str]]:
    """
    Find the Jira issue keys in commit messages, grouped by project.

    Only the first line of each message is examined.  The result looks like
    ``{"PROJ": ["PROJ-1200", "PROJ-1201"]}``, with keys in first-seen order.
    """
    grouped: Dict[str, List[str]] = {}
    for message in messages:
        match = ISSUE_KEY_RE.search(first_line(message))
        if match is None:
            continue
        key = match[1]
        project = key.partition("-")[0]
        keys = grouped.setdefault(project, [])
        if key not in keys:
            keys.append(key)
    return grouped


def release_project(project_key: str, release_name: str, description: str, issue_keys: List[str]) -> None:
    """
    Find or create the release in one project, and move its issues into it.
    """
    logger.info(f"Releasing project {project_key}...")
    logger.info(f"Looking for an existing release with the name '{release_name}' in project {project_key}...")
    version = jira.find_release_version(project_key, release_name)
    if version is None:
        logger.info("No existing release found - creating one...")
        version = jira.create_release_version(project_key, release_name, description)
        logger.info(f"Created a new release with ID {version['id']}")
    else:
        logger.info(f"Found an existing release with ID {version['id']}")

    logger.info(f"Adding {len(issue_keys)} Jira issue(s) to the release...")
    for issue_key in issue_keys:
        logger.info(f"Adding {issue_key} to the release...")
        jira.attach_issue_to_version(issue_key, version["id"])
        logger.info(f"Moving {issue_key} to '{jira.JIRA_STATUS_DONE}'...")
        jira.transition_issue(issue_key, jira.JIRA_STATUS_DONE)


def create_jira_release(repo: str, pr_number: int, release_version: str, release_name: str) -> None:
    """
    Create Jira releases for a merged release pull request.

    Every Jira project with an issue mentioned in the pull request's commits
    gets a release named like "v2021-01-12-0426 (Energetic Eagle)", and the
    issues are added to it and marked done.  Projects are released
    independently: if some fail, the others still finish, and the failures
    are raised together afterwards.
    """
    pr_name = f"{repo}#{pr_number}"
    sentry_extra_context({"release_pr": pr_name, "release_version": release_version})

    logger.info(f"Fetching the release pull request {pr_name}")
    pull = github.get_pull_request(repo, pr_number)
    if pull is None:
        logger.error(f"Could not fetch the release pull request {pr_name}")
        return

    commits = github.list_pull_request_commits(repo, pr_number)
    if commits is None:
        logger.error(f"Could not list commits for the release pull request {pr_name}")
        return

    grouped = issue_keys_by_project([commit["commit"]["message"] for commit in commits])
    if grouped:
        logger.info(f"Found {len(grouped)} Jira project(s) to release ({', '.join(grouped)})")
    else:
        logger.info("Found no Jira projects - looking for a default project for this repository...")
        repo_settings = fetch_repository(repo)
        if repo_settings is None or not repo_settings.jira_project_key:
            logger.info(f"There's no default Jira project for {repo} - no Jira release will be made")
            return
        logger.info(f"Assuming the default project '{repo_settings.jira_project_key}'")
        grouped = {repo_settings.jira_project_key: []}

    full_release_name = f"{release_version} ({release_name})"
    description = f"See {github.pull_request_url(repo, pr_number)}"

    exceptions: List[Exception] = []
    workers = min(MAX_CONCURRENT_REQUESTS, len(grouped))
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(release_project, project_key, full_release_name, description, keys): project_key
            for project_key, keys in grouped.items()
        }
        for future in concurrent.futures.as_completed(futures):
            try:
                future.result()
            except Exception as exc:    # pylint: disable=broad-exception-caught
                logger.exception(f"Couldn't release Jira project {futures[future]}")
                exceptions.append(exc)

    if exceptions:
        raise ExceptionGroup(f"Some Jira releases for {pr_name} failed", exceptions)
