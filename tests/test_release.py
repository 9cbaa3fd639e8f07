"""Tests of making release pull requests and tags."""

import pytest
from freezegun import freeze_time

from automation_webhooks import github
from automation_webhooks.credentials import CredentialsError
from automation_webhooks.release import (
    COMPARE_COMMIT_LIMIT,
    PreconditionFailed,
    create_release_pull_request,
    create_release_tag,
    ensure_release_branch,
    ensure_release_pull_request,
    parse_release_title,
    release_notes,
    release_title,
)
from automation_webhooks.utils import RequestFailed

from .helpers import check_good_markdown

RELEASE_BRANCH = "sr-devops/release-candidate"
RELEASE_REF_URL = f"/repos/Shuttlerock/a-repo/git/refs/heads/{RELEASE_BRANCH}"


@pytest.fixture
def repo(fake_github):
    """A repo with a master branch, and a develop branch a few commits ahead."""
    r = fake_github.make_repo("a-repo")
    r.make_branch("master")
    r.make_commit("[#100] [PROJ-12] Fix the bug\n\nIt was bad.")
    r.make_commit("Bump foo from 1.0 to 2.0", author="dependabot[bot]")
    r.make_branch("develop")
    r.make_pull_request(number=100, title="[PROJ-12] Fix the bug", head="PROJ-12-fix-bug")
    return r


@pytest.fixture
def requester(fake_credentials):
    return fake_credentials.make_user("dev@example.com", slack_id="U123", github_username="dev")


@pytest.fixture
def eagle(mocker):
    """Release names are always Energetic Eagle."""
    return mocker.patch("automation_webhooks.release.generate_release_name", return_value="Energetic Eagle")


def test_release_title():
    assert release_title("2021-01-12-0426", "Energetic Eagle") == "Release Candidate 2021-01-12-0426 (Energetic Eagle)"


@pytest.mark.parametrize("title, parsed", [
    ("Release Candidate 2021-01-12-0426 (Energetic Eagle)", ("v2021-01-12-0426", "Energetic Eagle")),
    ("Release Candidate 2021-01-12-0426 (Energetic Eagle) again", None),
    ("Release Candidate 2021-01-12-0426", None),
    ("[PROJ-12] Fix the bug", None),
    ("", None),
    (None, None),
])
def test_parse_release_title(title, parsed):
    assert parse_release_title(title) == parsed


class TestEnsureReleaseBranch:
    def test_creates_missing_branch(self, repo):
        sha = repo.branches["develop"]
        branch = ensure_release_branch("a-repo", sha)
        assert branch == {"name": RELEASE_BRANCH, "commit": {"sha": sha}}
        assert repo.branches[RELEASE_BRANCH] == sha

    def test_up_to_date_branch_is_left_alone(self, fake_github, repo):
        repo.branches[RELEASE_BRANCH] = "abc123"
        branch = ensure_release_branch("a-repo", "abc123")
        assert branch == {"name": RELEASE_BRANCH, "commit": {"sha": "abc123"}}
        fake_github.assert_readonly()

    def test_convergence(self, fake_github, repo):
        s1 = repo.branches["master"]
        s2 = repo.branches["develop"]
        for sha in [s1, s1, s2, s2]:
            ensure_release_branch("a-repo", sha)
        assert fake_github.writes_made() == [
            ("/repos/Shuttlerock/a-repo/git/refs", "POST"),
            (RELEASE_REF_URL, "DELETE"),
            ("/repos/Shuttlerock/a-repo/git/refs", "POST"),
        ]
        assert repo.branches[RELEASE_BRANCH] == s2

    def test_server_never_converges(self, mocker):
        get_branch = mocker.patch(
            "automation_webhooks.github.get_branch",
            return_value={"name": RELEASE_BRANCH, "commit": {"sha": "stuck"}},
        )
        delete_branch = mocker.patch("automation_webhooks.github.delete_branch")
        create_branch = mocker.patch("automation_webhooks.github.create_branch")
        with pytest.raises(PreconditionFailed, match="didn't move to abc123"):
            ensure_release_branch("a-repo", "abc123")
        assert get_branch.call_count == 3
        assert delete_branch.call_count == 2
        assert create_branch.call_count == 0


def _commit_dicts(repo, base_branch="master", head_branch="develop"):
    return github.compare_commits("a-repo", repo.branches[base_branch], repo.branches[head_branch])["commits"]


class TestReleaseNotes:
    def test_scenario(self, repo):
        commits = _commit_dicts(repo)
        bump_sha = commits[1]["sha"]
        notes = release_notes("a-repo", "2021-01-12-0426", "Energetic Eagle", commits)
        assert notes == (
            "## Release Candidate 2021-01-12-0426 (Energetic Eagle)\n\n"
            "### Pull Requests\n\n"
            "- #100 Fix the bug ([PROJ-12](https://test.atlassian.net/browse/PROJ-12))\n\n"
            "### Dependency updates\n\n"
            f"- [{bump_sha[:7]}](https://github.com/Shuttlerock/a-repo/commit/{bump_sha}) Bump foo from 1.0 to 2.0\n"
        )
        check_good_markdown(notes)

    def test_deterministic(self, repo):
        commits = _commit_dicts(repo)
        notes1 = release_notes("a-repo", "2021-01-12-0426", "Energetic Eagle", commits)
        notes2 = release_notes("a-repo", "2021-01-12-0426", "Energetic Eagle", commits)
        assert notes1 == notes2

    def test_pull_requests_in_commit_order(self, fake_github):
        r = fake_github.make_repo("a-repo")
        r.make_branch("master")
        for number in [300, 100, 200, 100]:
            r.make_commit(f"[#{number}] Change number {number}")
            r.make_pull_request(number=number, title=f"Change number {number}")
        r.make_branch("develop")
        notes = release_notes("a-repo", "2021-01-12-0426", "Energetic Eagle", _commit_dicts(r))
        lines = [line for line in notes.splitlines() if line.startswith("- #")]
        assert lines == ["- #300 Change number 300", "- #100 Change number 100", "- #200 Change number 200"]
        # Each pull request is fetched once.
        assert len(fake_github.requests_made(r"/pulls/100$")) == 1

    def test_dependency_pull_requests_are_only_commits(self, fake_github, repo):
        repo.make_commit("[#101] Bump bar from 3 to 4", author="dependabot[bot]")
        repo.make_pull_request(number=101, title="Bump bar from 3 to 4", head="dependabot/bar")
        repo.make_branch("develop")
        notes = release_notes("a-repo", "2021-01-12-0426", "Energetic Eagle", _commit_dicts(repo))
        assert "- #101" not in notes
        assert ") [#101] Bump bar from 3 to 4\n" in notes

    def test_bumps_by_people_are_not_dependencies(self, fake_github):
        r = fake_github.make_repo("a-repo")
        r.make_branch("master")
        r.make_commit("Bump the version to 1.2", author="someone")
        r.make_branch("develop")
        notes = release_notes("a-repo", "2021-01-12-0426", "Energetic Eagle", _commit_dicts(r))
        assert "Dependency updates" not in notes

    def test_missing_pull_request(self, repo, caplog):
        repo.make_commit("[#555] This pull request went away")
        repo.make_branch("develop")
        notes = release_notes("a-repo", "2021-01-12-0426", "Energetic Eagle", _commit_dicts(repo))
        assert "#555" not in notes
        assert "- #100 Fix the bug" in notes
        assert "Couldn't find the pull request a-repo#555" in caplog.text

    def test_too_many_commits(self):
        commits = [
            {"sha": f"{i:040x}", "commit": {"message": "Tidy up"}, "author": {"login": "someone"}}
            for i in range(COMPARE_COMMIT_LIMIT)
        ]
        notes = release_notes("a-repo", "2021-01-12-0426", "Energetic Eagle", commits)
        assert ":warning: This release contains more than 250 commits" in notes

    def test_not_too_many_commits(self, repo):
        notes = release_notes("a-repo", "2021-01-12-0426", "Energetic Eagle", _commit_dicts(repo))
        assert ":warning:" not in notes


class TestEnsureReleasePullRequest:
    def test_create_then_update(self, fake_github, repo):
        repo.make_branch(RELEASE_BRANCH, repo.branches["develop"])
        pr1 = ensure_release_pull_request("a-repo", "master", "2021-01-12-0426", "Energetic Eagle", "## Notes 1\n")
        pr2 = ensure_release_pull_request("a-repo", "master", "2021-01-12-0430", "Energetic Eagle", "## Notes 2\n")
        assert pr1["number"] == pr2["number"]
        assert fake_github.writes_made(r"/pulls") == [
            ("/repos/Shuttlerock/a-repo/pulls", "POST"),
            (f"/repos/Shuttlerock/a-repo/pulls/{pr1['number']}", "PATCH"),
        ]
        pr = repo.get_pull_request(pr1["number"])
        assert pr.title == "Release Candidate 2021-01-12-0430 (Energetic Eagle)"
        assert pr.body == "## Notes 2\n"
        assert pr.draft
        assert pr.user.login == "sr-devops"
        assert (pr.head, pr.base) == (RELEASE_BRANCH, "master")

    def test_closed_pull_requests_are_not_reused(self, fake_github, repo):
        repo.make_branch(RELEASE_BRANCH, repo.branches["develop"])
        old = repo.make_pull_request(head=RELEASE_BRANCH, base="master", title="Release Candidate old (Old Owl)")
        old.close(merge=True)
        pr = ensure_release_pull_request("a-repo", "master", "2021-01-12-0426", "Energetic Eagle", "## Notes\n")
        assert pr["number"] != old.number
        assert old.title == "Release Candidate old (Old Owl)"


class TestCreateReleasePullRequest:
    @freeze_time("2021-01-12 04:26:00")
    def test_new_release(self, fake_github, fake_slack, repo, requester, eagle):
        create_release_pull_request("dev@example.com", "a-repo")

        develop_sha = repo.branches["develop"]
        assert repo.branches[RELEASE_BRANCH] == develop_sha
        (pr,) = [pr for pr in repo.pull_requests.values() if pr.head == RELEASE_BRANCH]
        assert pr.title == "Release Candidate 2021-01-12-0426 (Energetic Eagle)"
        assert pr.body.startswith("## Release Candidate 2021-01-12-0426 (Energetic Eagle)\n\n### Pull Requests\n")
        assert pr.draft
        assert pr.user.login == "sr-devops"
        assert pr.assignees == ["dev"]
        assert pr.labels == {"in-progress", "release"}

        assert fake_slack.messages_to("U123") == [
            "Creating a release for *<https://github.com/Shuttlerock/a-repo|Shuttlerock/a-repo>*...",
            f"Here's your release PR: *<https://github.com/Shuttlerock/a-repo/pull/{pr.number}|a-repo#{pr.number}>*",
        ]

    def test_refresh_keeps_the_name(self, fake_github, fake_slack, repo, requester, eagle):
        with freeze_time("2021-01-12 04:26:00"):
            create_release_pull_request("dev@example.com", "a-repo")
        repo.make_commit("[#200] Another change")
        repo.make_pull_request(number=200, title="Another change")
        repo.make_branch("develop")
        eagle.return_value = "Zany Zebra"
        fake_github.reset_mock()

        with freeze_time("2021-01-13 09:15:00"):
            create_release_pull_request("dev@example.com", "a-repo")

        # Moving the branch closed the old pull request, but its name lives on.
        (old, pr) = [pr for pr in repo.pull_requests.values() if pr.head == RELEASE_BRANCH]
        assert old.state == "closed"
        assert pr.state == "open"
        assert pr.title == "Release Candidate 2021-01-13-0915 (Energetic Eagle)"
        assert "- #200 Another change" in pr.body
        assert pr.assignees == ["dev"]
        assert pr.labels == {"in-progress", "release"}
        assert repo.branches[RELEASE_BRANCH] == repo.branches["develop"]
        assert eagle.call_count == 1
        # The name was read before the branch moved.
        paths = [path.partition("?")[0] for path, _ in fake_github.requests_made()]
        assert paths.index("/repos/Shuttlerock/a-repo/pulls") < paths.index(RELEASE_REF_URL)
        assert fake_github.writes_made()[:2] == [
            (RELEASE_REF_URL, "DELETE"),
            ("/repos/Shuttlerock/a-repo/git/refs", "POST"),
        ]

    def test_refresh_of_an_open_pull_request(self, fake_github, fake_slack, repo, requester, eagle):
        # A release branch already at the develop tip isn't moved, so the pull
        # request stays open and is updated.
        repo.make_branch(RELEASE_BRANCH, repo.branches["develop"])
        old = repo.make_pull_request(
            title="Release Candidate 2021-01-01-0000 (Old Owl)", head=RELEASE_BRANCH, base="master",
            labels={"release"}, assignees=["someone"],
        )
        with freeze_time("2021-01-12 04:26:00"):
            create_release_pull_request("dev@example.com", "a-repo")

        assert old.state == "open"
        assert old.title == "Release Candidate 2021-01-12-0426 (Old Owl)"
        assert eagle.call_count == 0
        assert fake_github.writes_made() == [
            (f"/repos/Shuttlerock/a-repo/pulls/{old.number}", "PATCH"),
        ]

    def test_main_instead_of_master(self, fake_github, fake_slack, requester, eagle):
        r = fake_github.make_repo("a-repo")
        r.make_branch("main")
        r.make_commit("Change the thing")
        r.make_branch("develop")
        create_release_pull_request("dev@example.com", "a-repo")
        (pr,) = r.pull_requests.values()
        assert pr.base == "main"

    def test_requester_without_github(self, fake_github, fake_slack, fake_credentials, repo, eagle):
        fake_credentials.make_user("pm@example.com", slack_id="U456")
        create_release_pull_request("pm@example.com", "a-repo")
        (pr,) = [pr for pr in repo.pull_requests.values() if pr.head == RELEASE_BRANCH]
        assert pr.assignees == []
        assert pr.labels == {"in-progress", "release"}

    def test_nothing_to_release(self, fake_github, fake_slack, repo, requester):
        repo.make_branch("master", repo.branches["develop"])
        create_release_pull_request("dev@example.com", "a-repo")
        fake_github.assert_readonly()
        assert fake_slack.messages_to("U123")[-1] == (
            "Branch 'master' already contains the latest release - nothing to do"
        )

    def test_no_develop_branch(self, fake_github, fake_slack, requester):
        r = fake_github.make_repo("a-repo")
        r.make_branch("master")
        create_release_pull_request("dev@example.com", "a-repo")
        fake_github.assert_readonly()
        assert fake_slack.messages_to("U123")[-1] == (
            "Branch 'develop' could not be found for repository a-repo - giving up"
        )

    def test_no_master_branch(self, fake_github, fake_slack, requester):
        r = fake_github.make_repo("a-repo")
        r.make_branch("develop")
        create_release_pull_request("dev@example.com", "a-repo")
        fake_github.assert_readonly()
        assert fake_slack.messages_to("U123")[-1] == (
            "Master branch could not be found for repository a-repo - giving up"
        )

    def test_unknown_requester(self, fake_github, fake_slack, fake_credentials, repo):
        with pytest.raises(CredentialsError, match="nobody@example.com"):
            create_release_pull_request("nobody@example.com", "a-repo")
        assert fake_slack.messages == []
        fake_github.assert_readonly()

    def test_failure_is_reported(self, mocker, fake_github, fake_slack, repo, requester):
        mocker.patch("automation_webhooks.github.compare_commits", side_effect=RequestFailed("GitHub is down"))
        with pytest.raises(RequestFailed):
            create_release_pull_request("dev@example.com", "a-repo")
        assert fake_slack.messages_to("U123")[-1] == (
            "Something went wrong creating a release for repository a-repo: GitHub is down"
        )


class TestCreateReleaseTag:
    def test_create_release_tag(self, fake_github, repo):
        release = create_release_tag("a-repo", "v2021-01-12-0426", "Energetic Eagle", "### Pull Requests\n")
        (rel,) = repo.releases
        assert release["id"] == rel.id
        assert rel.tag_name == "v2021-01-12-0426"
        assert rel.name == "v2021-01-12-0426 (Energetic Eagle)"
        assert rel.target_commitish == "master"
        assert rel.body == "### Pull Requests\n"
        assert not rel.draft

    def test_no_master_branch(self, fake_github, caplog):
        r = fake_github.make_repo("a-repo")
        r.make_branch("develop")
        assert create_release_tag("a-repo", "v2021-01-12-0426", "Energetic Eagle", "") is None
        assert r.releases == []
        assert "Master branch could not be found for repository a-repo" in caplog.text
