"""
Labels the automation manages on pull requests, and how adding one label
can displace others.

Some labels describe mutually exclusive states of a pull request: a pull
request can't be both "in-progress" and "please-review".  These are grouped
into exclusion groups.  Adding any label of a group removes the other
members of the group that are present.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import FrozenSet, Iterable, List, Sequence

from automation_webhooks import github

logger = logging.getLogger(__name__)

DEPENDENCIES_LABEL = "dependencies"
EPIC_LABEL = "epic"
HAS_CONFLICTS_LABEL = "has-conflicts"
HAS_FAILURES_LABEL = "has-failures"
HAS_ISSUES_LABEL = "has-issues"
IN_PROGRESS_LABEL = "in-progress"
PASSED_REVIEW_LABEL = "passed-review"
PLEASE_REVIEW_LABEL = "please-review"
RELEASE_LABEL = "release"
SECURITY_LABEL = "security"
UNDER_DISCUSSION_LABEL = "under-discussion"

# The work-state of a pull request.  Only one of these should be on a pull
# request at a time.
EXCLUSION_GROUPS: List[FrozenSet[str]] = [
    frozenset({
        HAS_CONFLICTS_LABEL,
        HAS_FAILURES_LABEL,
        HAS_ISSUES_LABEL,
        IN_PROGRESS_LABEL,
        PLEASE_REVIEW_LABEL,
    }),
]


@dataclasses.dataclass(frozen=True)
class LabelChange:
    """
    The result of reconciling labels.
    """
    # The complete, sorted list of labels the issue should have.
    to_apply: List[str]
    # Does `to_apply` differ from the labels the issue has now?
    changed: bool


def reconcile_labels(
    existing: Iterable[str],
    to_add: Iterable[str],
    exclusion_groups: Sequence[Iterable[str]] = EXCLUSION_GROUPS,
) -> LabelChange:
    """
    Compute the labels an issue should have after adding `to_add`.

    For every exclusion group with a member in `to_add`, the other members
    of the group that are present in `existing` are removed.  Labels not in
    any group are never removed.  The result doesn't depend on the order of
    the groups or of the labels.
    """
    existing = set(existing)
    to_add = set(to_add)

    to_remove = set()
    for group in exclusion_groups:
        group = set(group)
        if group & to_add:
            to_remove.update((group - to_add) & existing)

    to_apply = sorted((existing - to_remove) | to_add)
    return LabelChange(to_apply=to_apply, changed=(sorted(existing) != to_apply))


class LabelReconciler:
    """
    Adds labels to issues and pull requests, honoring exclusion groups.
    """

    def __init__(self, exclusion_groups: Sequence[Iterable[str]] = EXCLUSION_GROUPS) -> None:
        self.exclusion_groups = [frozenset(group) for group in exclusion_groups]

    def reconcile(self, existing: Iterable[str], to_add: Iterable[str]) -> LabelChange:
        return reconcile_labels(existing, to_add, self.exclusion_groups)

    def add_labels(self, repo: str, number: int, labels: Iterable[str]) -> LabelChange:
        """
        Add `labels` to `repo`#`number`, removing the labels they exclude.

        The current labels are always read from GitHub first, since people
        and other automation change labels too.  The labels are written with
        one replace-all call, and only if they changed.
        """
        labels = set(labels)
        existing = github.get_labels(repo, number)
        if existing is None:
            raise LookupError(f"Couldn't find {repo}#{number} to add labels {sorted(labels)}")

        change = self.reconcile(existing, labels)
        if not change.changed:
            logger.info(f"Labels on {repo}#{number} are already correct: {change.to_apply}")
            return change

        github.replace_labels(repo, number, change.to_apply)
        return change
