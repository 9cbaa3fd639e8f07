"""
Queuable background tasks for GitHub events.
"""

from typing import Dict, List, Optional, Sequence

from glom import glom

from automation_webhooks import celery, github, jira, settings
from automation_webhooks.credentials import CredentialsError, fetch_credentials, fetch_repository
from automation_webhooks.jira_release import create_jira_release
from automation_webhooks.labels import (
    HAS_ISSUES_LABEL,
    IN_PROGRESS_LABEL,
    PASSED_REVIEW_LABEL,
    PLEASE_REVIEW_LABEL,
    LabelChange,
    LabelReconciler,
)
from automation_webhooks.release import create_release_pull_request, create_release_tag, parse_release_title
from automation_webhooks.slack import send_user_message
from automation_webhooks.tasks import logger
from automation_webhooks.types import JiraDict, PrDict, PrId
from automation_webhooks.utils import RequestFailed, log_rate_limit, sentry_extra_context


def _pr_id(pr: PrDict) -> PrId:
    return PrId(pr["base"]["repo"]["name"], pr["number"])


def _add_labels(prid: PrId, labels: List[str], reconciler: Optional[LabelReconciler]) -> LabelChange:
    reconciler = reconciler or LabelReconciler()
    logger.info(f"Adding {labels} to {prid}...")
    return reconciler.add_labels(prid.repo, prid.number, labels)


def _move_jira_issue(pr: PrDict, columns: Sequence[str]) -> Optional[JiraDict]:
    """
    Move the Jira issue of a pull request to a column of its board.

    `columns` are the names the column might have on the board.  Returns the
    issue, or None if the pull request has no Jira issue.
    """
    prid = _pr_id(pr)
    issue_key = github.get_issue_key(pr)
    if issue_key is None:
        logger.info(f"{prid} doesn't name a Jira issue")
        return None
    issue = jira.get_issue(issue_key)
    if issue is None:
        logger.info(f"Jira issue {issue_key} of {prid} doesn't exist")
        return None
    status = jira.find_column(glom(issue, "fields.project.key"), columns)
    logger.info(f"Moving {issue_key} to {status!r}...")
    jira.transition_issue(issue_key, status, issue=issue)
    return issue


@celery.task(bind=True)
def pull_request_ready_for_review_task(_, pull_request):
    """A bound Celery task to call pull_request_ready_for_review."""
    try:
        pull_request_ready_for_review(pull_request)
        log_rate_limit()
    except Exception:
        logger.exception("Couldn't pull_request_ready_for_review_task")
        raise


def pull_request_ready_for_review(pr: PrDict, reconciler: Optional[LabelReconciler] = None) -> LabelChange:
    """
    A pull request is ready for review: ask for one.

    The repository's reviewers are requested, and the Jira issue moves to
    the review column.
    """
    prid = _pr_id(pr)
    change = _add_labels(prid, [PLEASE_REVIEW_LABEL], reconciler)

    repo_settings = fetch_repository(prid.repo)
    author = glom(pr, "user.login", default=None)
    reviewers = [login for login in (repo_settings.reviewers if repo_settings else []) if login != author]
    if reviewers:
        github.request_reviewers(prid.repo, prid.number, reviewers)
    else:
        logger.info(f"No reviewers are set up for {prid.repo}")

    _move_jira_issue(pr, jira.REVIEW_COLUMNS)
    return change


@celery.task(bind=True)
def pull_request_converted_to_draft_task(_, pull_request):
    """A bound Celery task to call pull_request_converted_to_draft."""
    try:
        pull_request_converted_to_draft(pull_request)
        log_rate_limit()
    except Exception:
        logger.exception("Couldn't pull_request_converted_to_draft_task")
        raise


def pull_request_converted_to_draft(pr: PrDict, reconciler: Optional[LabelReconciler] = None) -> LabelChange:
    """A pull request went back to being a draft: it's being worked on."""
    return _add_labels(_pr_id(pr), [IN_PROGRESS_LABEL], reconciler)


@celery.task(bind=True)
def pull_request_reviewed_task(_, pull_request, review):
    """A bound Celery task to call pull_request_reviewed."""
    try:
        pull_request_reviewed(pull_request, review)
        log_rate_limit()
    except Exception:
        logger.exception("Couldn't pull_request_reviewed_task")
        raise


def pull_request_reviewed(
    pr: PrDict,
    review: Dict,
    reconciler: Optional[LabelReconciler] = None,
) -> Optional[LabelChange]:
    """
    A review was submitted.

    A pull request passes review once enough of the repository's senior
    reviewers approve it.  Each reviewer's latest approval or request for
    changes counts; comments don't change their verdict.
    """
    prid = _pr_id(pr)
    state = (review.get("state") or "").lower()
    if state != "approved":
        logger.info(f"Review of {prid} is {state!r} - ignoring")
        return None

    repo_settings = fetch_repository(prid.repo)
    if repo_settings is None or not repo_settings.senior_reviewers:
        logger.info(f"No senior reviewers are set up for {prid.repo} - ignoring")
        return None

    seniors = {login.lower() for login in repo_settings.senior_reviewers}
    verdicts = {}
    for rev in github.list_reviews(prid.repo, prid.number) or []:
        login = (glom(rev, "user.login", default=None) or "").lower()
        rev_state = (rev.get("state") or "").upper()
        if login in seniors and rev_state in ("APPROVED", "CHANGES_REQUESTED", "DISMISSED"):
            verdicts[login] = rev_state
    approvals = sum(1 for verdict in verdicts.values() if verdict == "APPROVED")

    needed = repo_settings.minimum_senior_reviewers
    if approvals < needed:
        logger.info(f"{prid} has {approvals} of {needed} senior approvals")
        return None
    return _add_labels(prid, [PASSED_REVIEW_LABEL], reconciler)


def _tell_assignee_about_failure(issue: JiraDict, pr: PrDict) -> None:
    """
    Send the assignee of a Jira issue a Slack message about a failed check.
    """
    email = glom(issue, "fields.assignee.emailAddress", default=None)
    if not email:
        logger.info(f"Jira issue {issue['key']} has no assignee to tell about the failure")
        return
    try:
        credentials = fetch_credentials(email)
        if credentials.github_username == settings.GITHUB_WRITE_USER:
            logger.info(f"{email} is our own GitHub user - not sending a message")
            return
        send_user_message(credentials.slack_id, f"A check has failed for _<{pr['html_url']}|{pr['title']}>_")
    except (CredentialsError, RequestFailed):
        logger.exception(f"Couldn't tell {email} about the failed check on {_pr_id(pr)}")


def _checks_failed(what: str, check: Dict, repo: str, reconciler: Optional[LabelReconciler]) -> List[LabelChange]:
    """
    Mark the pull requests of a failed check suite or check run as having
    issues.  Their Jira issues move to "Has Issues", and the assignees hear
    about it.
    """
    conclusion = check.get("conclusion")
    if conclusion != "failure":
        logger.info(f"{what} {check.get('id')} in {repo} concluded {conclusion!r} - ignoring")
        return []

    pulls = check.get("pull_requests") or []
    if not pulls:
        logger.info(f"There are no pull requests associated with {what} {check.get('id')} - ignoring")
        return []

    changes = []
    for pull in pulls:
        pr = github.get_pull_request(repo, pull["number"])
        if pr is None:
            logger.info(f"Pull request {repo}#{pull['number']} doesn't exist - ignoring")
            continue
        changes.append(_add_labels(_pr_id(pr), [HAS_ISSUES_LABEL], reconciler))
        issue = _move_jira_issue(pr, [jira.JIRA_STATUS_HAS_ISSUES])
        if issue is not None:
            _tell_assignee_about_failure(issue, pr)
    return changes


@celery.task(bind=True)
def check_suite_completed_task(_, check_suite, repo):
    """A bound Celery task to call check_suite_completed."""
    try:
        check_suite_completed(check_suite, repo)
        log_rate_limit()
    except Exception:
        logger.exception("Couldn't check_suite_completed_task")
        raise


def check_suite_completed(
    check_suite: Dict,
    repo: str,
    reconciler: Optional[LabelReconciler] = None,
) -> List[LabelChange]:
    """
    A check suite finished.  Pull requests with failed suites get marked.
    """
    return _checks_failed("Check suite", check_suite, repo, reconciler)


@celery.task(bind=True)
def check_run_completed_task(_, check_run, repo):
    """A bound Celery task to call check_run_completed."""
    try:
        check_run_completed(check_run, repo)
        log_rate_limit()
    except Exception:
        logger.exception("Couldn't check_run_completed_task")
        raise


def check_run_completed(
    check_run: Dict,
    repo: str,
    reconciler: Optional[LabelReconciler] = None,
) -> List[LabelChange]:
    """
    A check run finished.  Pull requests with failed runs get marked.
    """
    return _checks_failed("Check run", check_run, repo, reconciler)


@celery.task(bind=True)
def pull_request_closed_task(_, pull_request):
    """A bound Celery task to call pull_request_closed."""
    try:
        pull_request_closed(pull_request)
        log_rate_limit()
    except Exception:
        logger.exception("Couldn't pull_request_closed_task")
        raise


def pull_request_closed(pr: PrDict) -> Optional[Dict]:
    """
    A pull request was closed.

    When a release pull request is merged, the release is made in Jira
    (unless the repository opts out), and then tagged on GitHub.  Returns
    the GitHub release, if one was made.

    When any other pull request is merged, its Jira issue moves to the
    validated column.
    """
    prid = _pr_id(pr)
    sentry_extra_context({"pull_request": str(prid)})

    if not pr.get("merged"):
        logger.info(f"{prid} was closed without merging - ignoring")
        return None

    if pr["head"]["ref"] != settings.RELEASE_BRANCH_NAME:
        logger.info(f"{prid} was merged - moving its Jira issue to '{jira.JIRA_STATUS_VALIDATED}'...")
        _move_jira_issue(pr, [jira.JIRA_STATUS_VALIDATED])
        return None

    parsed = parse_release_title(pr["title"])
    if parsed is None:
        logger.error(f"Couldn't get a release version and name from the title of {prid}: {pr['title']!r}")
        return None
    release_version, release_name = parsed

    repo_settings = fetch_repository(prid.repo)
    if repo_settings is not None and repo_settings.skip_jira_release:
        logger.info(f"Jira releases are turned off for {prid.repo}")
    else:
        logger.info(f"Creating a Jira release for {prid}...")
        create_jira_release(prid.repo, prid.number, release_version, release_name)

    # The first line of the release notes repeats the title.
    notes = (pr.get("body") or "").partition("\n")[2].strip()
    logger.info(f"Creating a GitHub release for {prid}...")
    return create_release_tag(prid.repo, release_version, release_name, notes)


@celery.task(bind=True)
def create_release_task(_, email, repo):
    """A bound Celery task to call create_release_pull_request."""
    try:
        create_release_pull_request(email, repo)
        log_rate_limit()
    except Exception:
        logger.exception("Couldn't create_release_task")
        raise
