"""Settings for how the automation should behave."""

import os


GITHUB_ORGANIZATION = os.environ.get("GITHUB_ORGANIZATION", "Shuttlerock")

# Token used for reading, and for most writes.
GITHUB_PERSONAL_TOKEN = os.environ.get("GITHUB_PERSONAL_TOKEN", None)

# Release pull requests are opened with this token, so that the pull request
# author is a real user whose actions trigger further workflows.
GITHUB_WRITE_TOKEN = os.environ.get("GITHUB_WRITE_TOKEN", None)

# The GitHub user our write token belongs to.
GITHUB_WRITE_USER = os.environ.get("GITHUB_WRITE_USER", "sr-devops")

# Standard branch names.
DEVELOP_BRANCH_NAME = os.environ.get("DEVELOP_BRANCH_NAME", "develop")
MASTER_BRANCH_NAME = os.environ.get("MASTER_BRANCH_NAME", "master")
RELEASE_BRANCH_NAME = f"{GITHUB_WRITE_USER}/release-candidate"

JIRA_HOST = os.environ.get("JIRA_HOST", "shuttlerock.atlassian.net")
JIRA_EMAIL = os.environ.get("JIRA_EMAIL", None)
JIRA_TOKEN = os.environ.get("JIRA_TOKEN", None)

SLACK_TOKEN = os.environ.get("SLACK_TOKEN", None)

# The credential service maps people to their Slack and GitHub identities,
# and repositories to their Jira projects.  People are at "users/{id}" and
# repositories at "repositories/{name}" under the prefix.
CREDENTIALS_API_PREFIX = os.environ.get("CREDENTIALS_API_PREFIX", "https://credentials.example.com/api/")
CREDENTIALS_API_SECRET = os.environ.get("CREDENTIALS_API_SECRET", "")
