"""
Operations on GitHub data.

Absent objects (branches, pull requests) are returned as None, never raised.
Any other failure from the API is raised as RequestFailed.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Set

from glom import glom

from automation_webhooks import settings
from automation_webhooks.auth import get_github_session
from automation_webhooks.types import BranchDict, CommitDict, PrDict
from automation_webhooks.utils import (
    RequestFailed,
    log_check_response,
    paginated_get,
    text_summary,
)

logger = logging.getLogger(__name__)


def _repo_path(repo: str) -> str:
    return f"/repos/{settings.GITHUB_ORGANIZATION}/{repo}"


def _is_not_found(exc: RequestFailed) -> bool:
    response = getattr(exc.__cause__, "response", None)
    return response is not None and response.status_code == 404


def _get_or_none(url: str) -> Optional[Dict]:
    """GET a GitHub url, returning None if it doesn't exist."""
    resp = get_github_session().get(url)
    if resp.status_code == 404:
        return None
    log_check_response(resp)
    return resp.json()


def _get_all_or_none(url: str) -> Optional[List[Dict]]:
    """GET every page of a GitHub list, returning None if it doesn't exist."""
    try:
        return list(paginated_get(url, session=get_github_session()))
    except RequestFailed as exc:
        if _is_not_found(exc):
            return None
        raise


def repository_url(repo: str) -> str:
    return f"https://github.com/{settings.GITHUB_ORGANIZATION}/{repo}"


def pull_request_url(repo: str, number: int) -> str:
    return f"{repository_url(repo)}/pull/{number}"


def commit_url(repo: str, sha: str) -> str:
    return f"{repository_url(repo)}/commit/{sha}"


def extract_pull_request_number(message: str) -> Optional[int]:
    """
    Find the pull request number in a commit message like "[#123] Fix it".
    """
    match = re.search(r"\[#(\d+)\]", message or "")
    if match is None:
        return None
    return int(match[1])


def get_issue_key(pr: PrDict) -> Optional[str]:
    """
    Find the Jira issue key for a pull request.

    Look for "[PROJ-123]" in the title first, then for "PROJ-123" in the
    name of the head branch.
    """
    match = re.search(r"\[([A-Z]+-\d+)\]", pr.get("title") or "")
    if match:
        return match[1]
    match = re.search(r"([A-Za-z]+-\d+)", glom(pr, "head.ref", default="") or "")
    if match:
        return match[1].upper()
    return None


# Labels

def get_labels(repo: str, number: int) -> Optional[Set[str]]:
    """
    Get the names of the labels on an issue or pull request.

    Returns None if the issue or pull request doesn't exist.
    """
    labels = _get_all_or_none(f"{_repo_path(repo)}/issues/{number}/labels")
    if labels is None:
        return None
    return {lbl["name"] for lbl in labels}


def replace_labels(repo: str, number: int, labels: Iterable[str]) -> Set[str]:
    """
    Set the labels on an issue or pull request, replacing all existing ones.
    """
    labels = list(labels)
    logger.info(f"Setting labels on {repo}#{number}: {labels}")
    resp = get_github_session().put(
        f"{_repo_path(repo)}/issues/{number}/labels",
        json={"labels": labels},
    )
    log_check_response(resp)
    return {lbl["name"] for lbl in resp.json()}


# Branches

def get_branch(repo: str, branch: str) -> Optional[BranchDict]:
    """Fetch a branch, or None if it doesn't exist."""
    return _get_or_none(f"{_repo_path(repo)}/branches/{branch}")


def get_master_branch(repo: str) -> Optional[BranchDict]:
    """
    Fetch the branch that releases are merged into.

    Newer repositories call it "main" rather than "master".
    """
    for name in [settings.MASTER_BRANCH_NAME, "main"]:
        branch = get_branch(repo, name)
        if branch is not None:
            return branch
    return None


def create_branch(repo: str, branch: str, sha: str) -> Dict:
    """Create a branch pointing at `sha`. Returns the git ref data."""
    logger.info(f"Creating branch {repo}:{branch} at {sha}")
    resp = get_github_session().post(
        f"{_repo_path(repo)}/git/refs",
        json={"ref": f"refs/heads/{branch}", "sha": sha},
    )
    log_check_response(resp)
    return resp.json()


def delete_branch(repo: str, branch: str) -> None:
    logger.info(f"Deleting branch {repo}:{branch}")
    resp = get_github_session().delete(f"{_repo_path(repo)}/git/refs/heads/{branch}")
    log_check_response(resp)


# Pull requests

def get_pull_request(repo: str, number: int) -> Optional[PrDict]:
    """Fetch a pull request, or None if it doesn't exist."""
    return _get_or_none(f"{_repo_path(repo)}/pulls/{number}")


def find_open_pull_request(repo: str, head: str, base: str) -> Optional[PrDict]:
    """
    Find the most recently created open pull request from `head` into `base`.
    """
    url = (
        f"{_repo_path(repo)}/pulls?state=open"
        f"&head={settings.GITHUB_ORGANIZATION}:{head}&base={base}"
        "&sort=created&direction=desc&per_page=1"
    )
    resp = get_github_session().get(url)
    log_check_response(resp)
    pulls = resp.json()
    if not pulls:
        return None
    return pulls[0]


def create_pull_request(
    repo: str,
    base: str,
    head: str,
    title: str,
    body: str,
    token: Optional[str] = None,
) -> PrDict:
    """
    Open a new draft pull request.

    `token` is the GitHub token of the user who will be the author.
    """
    logger.info(f"Creating pull request in {repo}: {head} -> {base}: {title!r}")
    resp = get_github_session(token).post(
        f"{_repo_path(repo)}/pulls",
        json={"base": base, "head": head, "title": title, "body": body, "draft": True},
    )
    log_check_response(resp)
    return resp.json()


def update_pull_request(
    repo: str,
    number: int,
    title: Optional[str] = None,
    body: Optional[str] = None,
) -> PrDict:
    patch = {}
    if title is not None:
        patch["title"] = title
    if body is not None:
        patch["body"] = body
    logger.info(f"Updating pull request {repo}#{number}: {text_summary(repr(patch), 90)}")
    resp = get_github_session().patch(f"{_repo_path(repo)}/pulls/{number}", json=patch)
    log_check_response(resp)
    return resp.json()


def list_pull_request_commits(repo: str, number: int) -> Optional[List[CommitDict]]:
    """The commits in a pull request, or None if the pull request doesn't exist."""
    return _get_all_or_none(f"{_repo_path(repo)}/pulls/{number}/commits")


def list_reviews(repo: str, number: int) -> Optional[List[Dict]]:
    """
    The reviews submitted on a pull request, oldest first, or None if the
    pull request doesn't exist.
    """
    return _get_all_or_none(f"{_repo_path(repo)}/pulls/{number}/reviews")


def request_reviewers(repo: str, number: int, usernames: List[str]) -> PrDict:
    logger.info(f"Requesting reviews of {repo}#{number} from {usernames}")
    resp = get_github_session().post(
        f"{_repo_path(repo)}/pulls/{number}/requested_reviewers",
        json={"reviewers": usernames},
    )
    log_check_response(resp)
    return resp.json()


def assign_owners(repo: str, number: int, usernames: List[str]) -> PrDict:
    logger.info(f"Assigning {usernames} to {repo}#{number}")
    resp = get_github_session().post(
        f"{_repo_path(repo)}/issues/{number}/assignees",
        json={"assignees": usernames},
    )
    log_check_response(resp)
    return resp.json()


# Repositories

def compare_commits(repo: str, base: str, head: str) -> Dict:
    """
    Compare two commits.

    The result has "total_commits", and "commits": the commits in `head`
    that are not in `base`, oldest first.  GitHub returns at most 250 commits.
    """
    resp = get_github_session().get(f"{_repo_path(repo)}/compare/{base}...{head}")
    log_check_response(resp)
    return resp.json()


def create_release(repo: str, tag_name: str, name: str, body: str, target: str) -> Dict:
    """Create a published GitHub release, tagging `target`."""
    logger.info(f"Creating release {name!r} in {repo}")
    resp = get_github_session().post(
        f"{_repo_path(repo)}/releases",
        json={
            "tag_name": tag_name,
            "target_commitish": target,
            "name": name,
            "body": body,
            "draft": False,
        },
    )
    log_check_response(resp)
    return resp.json()
