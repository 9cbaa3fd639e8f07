"""Automatically run by pytest to set up test infrastructure."""

import pytest
import requests_mock

import automation_webhooks
import automation_webhooks.utils

from . import settings as test_settings
from .fake_credentials import FakeCredentials
from .fake_github import FakeGitHub
from .fake_jira import FakeJira
from .fake_slack import FakeSlack


@pytest.fixture
def requests_mocker():
    """Make requests_mock available as a fixture."""
    mocker = requests_mock.Mocker(real_http=False, case_sensitive=True)
    mocker.start()
    try:
        yield mocker
    finally:
        mocker.stop()


@pytest.fixture(autouse=True)
def settings_for_tests(mocker):
    for name, value in vars(test_settings).items():
        if name.isupper():
            mocker.patch(f"automation_webhooks.settings.{name}", value)


@pytest.fixture
def fake_github(requests_mocker):
    the_fake_github = FakeGitHub(login="sr-bot", owner=test_settings.GITHUB_ORGANIZATION)
    the_fake_github.token_users[f"token {test_settings.GITHUB_WRITE_TOKEN}"] = test_settings.GITHUB_WRITE_USER
    the_fake_github.install_mocks(requests_mocker)
    return the_fake_github


@pytest.fixture
def fake_jira(requests_mocker):
    the_fake_jira = FakeJira(f"https://{test_settings.JIRA_HOST}")
    the_fake_jira.install_mocks(requests_mocker)
    return the_fake_jira


@pytest.fixture
def fake_slack(requests_mocker):
    the_fake_slack = FakeSlack()
    the_fake_slack.install_mocks(requests_mocker)
    return the_fake_slack


@pytest.fixture
def fake_credentials(requests_mocker):
    the_fake_credentials = FakeCredentials(
        host="https://credentials.example.com",
        secret=test_settings.CREDENTIALS_API_SECRET,
    )
    the_fake_credentials.install_mocks(requests_mocker)
    return the_fake_credentials


@pytest.fixture(autouse=True)
def configure_flask_app():
    """
    Needed to make the app understand it's running under HTTPS, and have Flask
    initialized properly.
    """
    app = automation_webhooks.create_app(config="testing")
    with app.test_request_context('/', base_url="https://automation-webhooks.herokuapp.com"):
        yield app


@pytest.fixture(autouse=True)
def reset_all_memoized_functions():
    """Clears the values cached by @memoize before each test. Applied automatically."""
    automation_webhooks.utils.clear_memoized_values()


@pytest.fixture(params=[
    pytest.param(False, id="pr:closed"),
    pytest.param(True, id="pr:merged"),
])
def is_merged(request):
    """Makes tests try both merged and closed pull requests."""
    return request.param
