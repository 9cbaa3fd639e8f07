"""Types specific to automation_webhooks."""

from __future__ import annotations

import dataclasses
from typing import Dict, List, Optional

# A pull request as described by a JSON object.
PrDict = Dict

# A branch as described by a JSON object, with "name" and "commit.sha".
BranchDict = Dict

# A commit as returned by the compare and pull request commits APIs.
CommitDict = Dict

# A Jira issue described by a JSON object.
JiraDict = Dict

# A Jira project version (a "release" in the Jira UI).
JiraVersionDict = Dict


@dataclasses.dataclass(frozen=True)
class PrId:
    """An id of a pull request, with a repo name and a number."""
    repo: str
    number: int

    def __str__(self):
        return f"{self.repo}#{self.number}"


@dataclasses.dataclass(frozen=True)
class Credentials:
    """A person's identities across the services we talk to."""
    email: str
    slack_id: str
    github_username: Optional[str] = None
    leads: List[str] = dataclasses.field(default_factory=list)
    reviews: List[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass(frozen=True)
class RepositorySettings:
    """Per-repository settings kept by the credential service."""
    name: str

    # The Jira project to release when no commit mentions an issue.
    jira_project_key: Optional[str] = None

    # Some repositories are released without a Jira release.
    skip_jira_release: bool = False

    # GitHub usernames asked to review pull requests when they are ready.
    reviewers: List[str] = dataclasses.field(default_factory=list)

    # A pull request passes review once this many senior reviewers approve it.
    senior_reviewers: List[str] = dataclasses.field(default_factory=list)
    minimum_senior_reviewers: int = 1
