"""Helpers for tests."""

import re


def check_good_markdown(text: str) -> None:
    """
    Make some checks of Markdown written for release notes and pull requests.

    Raises ValueError with a failure message if something is wrong.
    """
    if text.startswith((" ", "\n", "\t")):
        raise ValueError(f"Markdown shouldn't start with whitespace: {text!r}")

    # A link to something called "None" means a missing value was formatted.
    if re.search(r"\[None\]\(", text):
        raise ValueError(f"Markdown has a link to None: {text!r}")
    if re.search(r"\]\([^)]*/None[/)]", text):
        raise ValueError(f"Markdown has a link to a None url: {text!r}")

    # Release notes list items should name something.
    for line in text.splitlines():
        if re.match(r"^- \s*$", line):
            raise ValueError(f"Markdown has an empty list item: {text!r}")
