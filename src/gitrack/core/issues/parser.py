"""
Issue file parsing and serialization.

Issue files are Markdown with YAML front matter:

    ---
    id: is-01hq3k5v7w8x9y0z1a2b3c4d5e
    title: Fix login
    ...
    ---

    Description body here.

    ## Notes

    Working notes here.

Serialization is canonical (sorted keys, fixed layout) so that the same
issue always produces byte-identical files and git diffs stay minimal.
"""

from __future__ import annotations

import re

import frontmatter
import yaml
from pydantic import ValidationError

from gitrack.core.errors import GitrackError
from gitrack.core.issues.models import Issue

NOTES_HEADING = "## Notes"

_NOTES_RE = re.compile(r"(?:^|\n)## Notes[ \t]*\n", re.IGNORECASE)


class IssueParseError(GitrackError, ValueError):
    """Raised when an issue file cannot be parsed."""


def split_body(body: str) -> tuple[str | None, str | None]:
    """Split a Markdown body into (description, notes)."""
    body = body.strip()
    match = _NOTES_RE.search(body)
    if match is None:
        return body or None, None
    description = body[: match.start()].strip()
    notes = body[match.end() :].strip()
    return description or None, notes or None


def parse_issue(content: str) -> Issue:
    """
    Parse an issue from Markdown file content.

    Raises:
        IssueParseError: If front matter is missing or the fields are invalid.
    """
    content = content.replace("\r\n", "\n")
    if not content.lstrip().startswith("---"):
        raise IssueParseError("Invalid format: missing front matter")

    try:
        post = frontmatter.loads(content)
    except yaml.YAMLError as e:
        raise IssueParseError(f"Invalid front matter: {e}") from e

    description, notes = split_body(post.content)
    try:
        return Issue.model_validate({**post.metadata, "description": description, "notes": notes})
    except ValidationError as e:
        raise IssueParseError(f"Invalid issue fields: {e}") from e


def serialize_issue(issue: Issue) -> str:
    """Serialize an issue to canonical Markdown file content."""
    parts: list[str] = []
    if issue.description:
        parts.append(issue.description.strip())
    if issue.notes:
        parts.append(f"{NOTES_HEADING}\n\n{issue.notes.strip()}")

    post = frontmatter.Post("\n\n".join(parts), **issue.metadata())
    return frontmatter.dumps(post, sort_keys=True, width=10_000).rstrip("\n") + "\n"
