"""
Create authenticated sessions for access to GitHub, Jira and Slack.
"""

from typing import Optional

import requests
from urlobject import URLObject

from automation_webhooks import settings


class BaseUrlSession(requests.Session):
    """
    A requests Session class that applies a base URL to the requested URL.
    """
    def __init__(self, base_url):
        super().__init__()
        self.base_url = URLObject(base_url)

    def request(self, method, url, data=None, headers=None, **kwargs):
        return super().request(
            method=method,
            url=self.base_url.relative(url),
            data=data,
            headers=headers,
            **kwargs
        )


def get_github_session(token: Optional[str] = None):
    """
    Get the GitHub session to use.

    `token` overrides the default personal token, for the few writes that
    must be made as a particular user.
    """
    session = BaseUrlSession(base_url="https://api.github.com")
    session.headers["Authorization"] = f"token {token or settings.GITHUB_PERSONAL_TOKEN}"
    session.headers["Accept"] = "application/vnd.github.v3+json"
    session.trust_env = False   # prevent reading the local .netrc
    return session


def get_jira_session():
    """
    Get the Jira session to use, in an easily test-patchable way.
    """
    session = BaseUrlSession(base_url=f"https://{settings.JIRA_HOST}")
    session.auth = (settings.JIRA_EMAIL, settings.JIRA_TOKEN)
    session.trust_env = False   # prevent reading the local .netrc
    return session


def get_slack_session():
    """
    Get the Slack Web API session to use.
    """
    session = BaseUrlSession(base_url="https://slack.com/api/")
    session.headers["Authorization"] = f"Bearer {settings.SLACK_TOKEN}"
    session.trust_env = False
    return session


def get_credentials_session():
    """
    Get a session for the credential service.

    Requests to it are signed per-request, see `credentials.py`.
    """
    session = BaseUrlSession(base_url=settings.CREDENTIALS_API_PREFIX)
    session.trust_env = False
    return session
