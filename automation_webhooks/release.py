"""
Release pull requests, and the branch and tag that go with them.

A release is prepared on a long-lived release branch, which is kept at the
tip of the develop branch.  A single open pull request from the release
branch into master carries the release notes.  When it is merged, the
release is tagged on GitHub.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

import arrow
from glom import glom

from automation_webhooks import github, settings
from automation_webhooks.credentials import fetch_credentials
from automation_webhooks.jira import issue_url
from automation_webhooks.labels import IN_PROGRESS_LABEL, RELEASE_LABEL, LabelReconciler
from automation_webhooks.release_names import generate_release_name
from automation_webhooks.slack import report_error, report_info, send_user_message
from automation_webhooks.types import BranchDict, CommitDict, PrDict
from automation_webhooks.utils import first_line, map_concurrently

logger = logging.getLogger(__name__)

# The compare API returns at most this many commits.
COMPARE_COMMIT_LIMIT = 250

# Creating or deleting-then-creating the branch needs at most two writes.
MAX_BRANCH_WRITES = 2

# Titles look like "Release Candidate 2021-01-12-0426 (Energetic Eagle)".
RELEASE_TITLE_RE = re.compile(r"^Release Candidate ([0-9-]+) \(([A-Za-z\s]+)\)$")

# Pull requests made by dependency bots are listed from their commits.
DEPENDENCY_BUMP_TITLE_RE = re.compile(r"Bump .+ from .+ to .*$")
DEPENDENCY_BOT_LOGINS = ("dependabot",)


class PreconditionFailed(Exception):
    """Something the release process relies on isn't there."""


def release_date_stamp() -> str:
    """The date-stamp of a release made now, like "2021-01-12-0426"."""
    return arrow.utcnow().format("YYYY-MM-DD-HHmm")


def release_title(release_date: str, release_name: str) -> str:
    return f"Release Candidate {release_date} ({release_name})"


def parse_release_title(title: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Get the version tag and release name from a release pull request title.

    "Release Candidate 2021-01-12-0426 (Energetic Eagle)" gives
    ("v2021-01-12-0426", "Energetic Eagle").  Returns None for other titles.
    """
    match = RELEASE_TITLE_RE.match(title or "")
    if match is None:
        return None
    return f"v{match[1]}", match[2]


def ensure_release_branch(repo: str, sha: str) -> BranchDict:
    """
    Make sure the release branch exists, pointing at `sha`.

    A missing branch is created.  A branch pointing elsewhere is deleted and
    created again.  The branch returned is always as read from GitHub.
    """
    branch_name = settings.RELEASE_BRANCH_NAME
    logger.info(f"Looking for an existing release branch ({branch_name})...")
    for writes in range(MAX_BRANCH_WRITES + 1):
        branch = github.get_branch(repo, branch_name)
        if branch is not None and glom(branch, "commit.sha") == sha:
            logger.info(f"The release branch exists, and is up to date ({sha})")
            return branch
        if writes == MAX_BRANCH_WRITES:
            break
        if branch is None:
            logger.info("Existing release branch not found - creating it...")
            github.create_branch(repo, branch_name, sha)
        else:
            logger.info("The release branch exists, but is out of date - re-creating it...")
            github.delete_branch(repo, branch_name)

    raise PreconditionFailed(f"The release branch {repo}:{branch_name} didn't move to {sha}")


def is_dependency_bump(commit: CommitDict) -> bool:
    login = glom(commit, "author.login", default=None) or ""
    return login.startswith(DEPENDENCY_BOT_LOGINS) and "Bump " in commit["commit"]["message"]


def release_notes(
    repo: str,
    release_date: str,
    release_name: str,
    commits: List[CommitDict],
) -> str:
    """
    Write the Markdown release notes for a list of commits.

    Pull requests are found from "[#123]" in commit messages, and listed in
    the order their commits appear.  Commits from dependency bots are listed
    separately.
    """
    logger.info(f"Making release notes from {len(commits)} commits...")
    dependencies = [commit for commit in commits if is_dependency_bump(commit)]

    pr_numbers: List[int] = []
    for commit in commits:
        number = github.extract_pull_request_number(commit["commit"]["message"])
        if number is not None and number not in pr_numbers:
            pr_numbers.append(number)

    def _get_pull(number: int) -> Optional[PrDict]:
        pull = github.get_pull_request(repo, number)
        if pull is None:
            logger.error(f"Couldn't find the pull request {repo}#{number} for release notes. Here's the commit list:")
            for commit in commits:
                logger.error(f"  {first_line(commit['commit']['message'])}")
        return pull

    pulls = [
        pull for pull in map_concurrently(_get_pull, pr_numbers)
        if pull is not None and not DEPENDENCY_BUMP_TITLE_RE.search(pull["title"])
    ]

    notes = f"## {release_title(release_date, release_name)}\n\n"

    if len(commits) == COMPARE_COMMIT_LIMIT:
        notes += (
            f":warning: This release contains more than {COMPARE_COMMIT_LIMIT} commits, "
            "so the release notes may not be complete :warning:\n\n"
        )

    if pulls:
        notes += "### Pull Requests\n\n"
        for pull in pulls:
            title = re.sub(r"\[[^\]]+\]", "", pull["title"]).strip()
            notes += f"- #{pull['number']} {title}"
            jira_key = github.get_issue_key(pull)
            if jira_key is not None:
                notes += f" ([{jira_key}]({issue_url(jira_key)}))"
            notes += "\n"
        notes += "\n"

    if dependencies:
        notes += "### Dependency updates\n\n"
        for commit in dependencies:
            sha = commit["sha"]
            link = f"[{sha[:7]}]({github.commit_url(repo, sha)})"
            notes += f"- {link} {first_line(commit['commit']['message'])}\n"

    return notes


def ensure_release_pull_request(
    repo: str,
    base: str,
    release_date: str,
    release_name: str,
    body: str,
) -> PrDict:
    """
    Open the release pull request, or update the one that is already open.
    """
    logger.info("Searching for an existing release pull request...")
    head = settings.RELEASE_BRANCH_NAME
    title = release_title(release_date, release_name)
    pull = github.find_open_pull_request(repo, head, base)
    if pull is None:
        logger.info("No existing release pull request was found - creating it...")
        return github.create_pull_request(repo, base, head, title, body, settings.GITHUB_WRITE_TOKEN)

    logger.info(
        f"An existing release pull request was found ({repo}#{pull['number']}) - updating the release notes..."
    )
    return github.update_pull_request(repo, pull["number"], title=title, body=body)


def create_release_pull_request(email: str, repo: str, reconciler: Optional[LabelReconciler] = None) -> None:
    """
    Open or refresh the release pull request for `repo`, for the person with
    this email.  They hear how it went on Slack.
    """
    logger.info(f"Creating a release pull request for repository {repo}")
    logger.info(f"Fetching credentials for user '{email}'...")
    credentials = fetch_credentials(email)
    slack_id = credentials.slack_id

    send_user_message(
        slack_id,
        f"Creating a release for *<{github.repository_url(repo)}|{settings.GITHUB_ORGANIZATION}/{repo}>*...",
    )
    try:
        _create_release_pull_request(credentials.github_username, repo, slack_id, reconciler or LabelReconciler())
    except Exception as exc:
        report_error(slack_id, f"Something went wrong creating a release for repository {repo}: {exc}")
        raise


def _create_release_pull_request(
    github_username: Optional[str],
    repo: str,
    slack_id: str,
    reconciler: LabelReconciler,
) -> None:
    develop_name = settings.DEVELOP_BRANCH_NAME
    logger.info(f"Looking for a '{develop_name}' branch...")
    develop = github.get_branch(repo, develop_name)
    if develop is None:
        report_error(slack_id, f"Branch '{develop_name}' could not be found for repository {repo} - giving up")
        return

    master = github.get_master_branch(repo)
    if master is None:
        report_error(slack_id, f"Master branch could not be found for repository {repo} - giving up")
        return

    master_sha = glom(master, "commit.sha")
    develop_sha = glom(develop, "commit.sha")
    logger.info(f"Checking if '{develop_name}' is ahead of '{master['name']}' ({master_sha}..{develop_sha})")
    diff = github.compare_commits(repo, master_sha, develop_sha)
    if diff["total_commits"] == 0:
        report_info(slack_id, f"Branch '{master['name']}' already contains the latest release - nothing to do")
        return
    logger.info(f"Found {diff['total_commits']} commits to release")

    # An open release pull request keeps its name when it is refreshed.  Read
    # it before moving the branch: GitHub closes a pull request whose head
    # branch is deleted.
    release_name = None
    existing = github.find_open_pull_request(repo, settings.RELEASE_BRANCH_NAME, master["name"])
    if existing is not None and (parsed := parse_release_title(existing["title"])) is not None:
        release_name = parsed[1]
    release_name = release_name or generate_release_name()

    ensure_release_branch(repo, develop_sha)
    release_date = release_date_stamp()

    body = release_notes(repo, release_date, release_name, diff["commits"])
    pull = ensure_release_pull_request(repo, master["name"], release_date, release_name, body)

    if not pull.get("assignees"):
        if github_username is None:
            logger.info("The requester doesn't have a GitHub account linked, so we can't assign an owner")
        else:
            logger.info(f"Assigning @{github_username} as the owner...")
            github.assign_owners(repo, pull["number"], [github_username])

    if not pull.get("labels"):
        logger.info(f"Adding labels '{IN_PROGRESS_LABEL}' and '{RELEASE_LABEL}'...")
        reconciler.add_labels(repo, pull["number"], [IN_PROGRESS_LABEL, RELEASE_LABEL])

    report_info(
        slack_id,
        f"Here's your release PR: *<{github.pull_request_url(repo, pull['number'])}|{repo}#{pull['number']}>*",
    )


def create_release_tag(repo: str, tag_name: str, release_name: str, notes: str) -> Optional[dict]:
    """
    Create a GitHub release for a merged release pull request.

    `tag_name` is like "v2021-01-12-0426", `release_name` like "Energetic Eagle".
    Returns None if there's no master branch to tag.
    """
    master = github.get_master_branch(repo)
    if master is None:
        logger.error(f"Master branch could not be found for repository {repo} - giving up release tagging")
        return None

    return github.create_release(repo, tag_name, f"{tag_name} ({release_name})", notes, master["name"])
