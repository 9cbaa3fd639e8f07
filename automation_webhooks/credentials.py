"""
Look up people and repositories in the credential service.
"""

import base64
import hashlib
import hmac
import logging
from typing import Dict, List, Optional

from automation_webhooks import settings
from automation_webhooks.auth import get_credentials_session
from automation_webhooks.types import Credentials, RepositorySettings
from automation_webhooks.utils import log_check_response, memoize_timed

logger = logging.getLogger(__name__)


class CredentialsError(Exception):
    """The credential service wouldn't tell us about a person."""


def _signature_headers(subject: str) -> Dict[str, str]:
    """Requests are signed with an HMAC of the thing being looked up."""
    signature = hmac.new(
        settings.CREDENTIALS_API_SECRET.encode(),
        msg=subject.encode(),
        digestmod=hashlib.sha256,
    ).hexdigest()
    return {"Shuttlerock-Signature": f"sha256={signature}"}


def fetch_credentials(email: str) -> Credentials:
    """
    Find the Slack and GitHub identities of the person with this email.

    Raises CredentialsError if the person is unknown, or we aren't allowed
    to know about them.
    """
    user_id = base64.urlsafe_b64encode(email.encode()).decode()
    resp = get_credentials_session().get(f"users/{user_id}", headers=_signature_headers(email))
    log_check_response(resp, raise_for_status=False)
    data = resp.json() if resp.ok else {"status": f"http {resp.status_code}"}
    if data.get("status") != "ok":
        raise CredentialsError(f"Could not get credentials for the user {email} ({data.get('status')})")

    return Credentials(
        email=email,
        slack_id=data["slack_id"],
        github_username=data.get("github_username"),
        leads=data.get("leads") or [],
        reviews=data.get("reviews") or [],
    )


# Repository settings change rarely, and every merged pull request reads them.
@memoize_timed(minutes=15)
def fetch_repository(repo: str) -> Optional[RepositorySettings]:
    """
    Get the settings for a repository, or None if it isn't registered.
    """
    resp = get_credentials_session().get(f"repositories/{repo}", headers=_signature_headers(repo))
    if resp.status_code == 404:
        logger.info(f"The repository {repo} has no settings")
        return None
    log_check_response(resp)
    data = resp.json()
    return RepositorySettings(
        name=repo,
        jira_project_key=data.get("jira_project_key"),
        skip_jira_release=bool(data.get("skip_jira_release", False)),
        reviewers=_github_usernames(data.get("reviewers")),
        senior_reviewers=_github_usernames(data.get("senior_reviewers")),
        minimum_senior_reviewers=int(data.get("minimum_senior_reviewers") or 1),
    )


def _github_usernames(users: Optional[List[Dict]]) -> List[str]:
    """The GitHub usernames of a list of users, skipping people without one."""
    return [user["github_username"] for user in users or [] if user.get("github_username")]
